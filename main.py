#!/usr/bin/env python3
"""
Vendor Bill Review Pipeline - Main Entry Point.

Processes bill images into review cases and prints each case as JSON.

Usage:
    Command Line:
        python main.py --input bill.png --vendor acme
        python main.py --input ./bills/ --sequential --save
        python main.py --input bill.png --set review.soft_confidence_floor=75

    Python:
        from main import run_pipeline
        results = run_pipeline("bill.png")

Author: ML Engineering Team
Version: 1.0.0
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

# Import project modules
from config import ConfigurationManager, parse_override
from bill_review.utils.exceptions import BillReviewError
from bill_review.utils.helpers import is_supported_image
from bill_review.utils.logger import ROOT_LOGGER_NAME, get_logger, setup_logger_from_config


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Vendor Bill Extraction & Review Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Process a single bill:
        python main.py --input bill.png --vendor acme

    Process a directory and persist the cases:
        python main.py --input ./bills/ --save
        """
    )

    parser.add_argument(
        "--input", "-i",
        type=str,
        required=True,
        help="Bill image or directory of bill images"
    )

    parser.add_argument(
        "--vendor", "-v",
        type=str,
        default=None,
        help="Vendor id used for shield rules and calibration"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to custom configuration file"
    )

    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a setting, e.g. --set budget.max_passes_per_zone=2 (repeatable)"
    )

    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Run OCR passes one after another (enables confidence early stop)"
    )

    parser.add_argument(
        "--save",
        action="store_true",
        help="Persist cases as JSON under paths.repository_dir"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def collect_inputs(input_path: str) -> List[Path]:
    """
    Resolve the input argument to a sorted list of images.

    Raises:
        FileNotFoundError: If input path doesn't exist.
        ValueError: If a single file is not a supported image.
    """
    path = Path(input_path)

    if not path.exists():
        raise FileNotFoundError(f"Input path not found: {path}")

    if path.is_file():
        if not is_supported_image(path):
            raise ValueError(f"Unsupported file type: {path.suffix}")
        return [path]

    return sorted(p for p in path.iterdir() if p.is_file() and is_supported_image(p))


def run_pipeline(
    input_path: str,
    vendor_id: Optional[str] = None,
    config_path: Optional[str] = None,
    sequential: bool = False,
    save: bool = False
) -> List[Dict[str, Any]]:
    """
    Run the bill pipeline over a file or directory.

    Returns:
        One case dictionary per successfully processed bill.
    """
    logger = get_logger(__name__)
    ConfigurationManager(config_path)

    from bill_review.pipeline import BillPipeline
    from bill_review.review import JsonFileRepository, ReviewCaseService

    inputs = collect_inputs(input_path)
    repository = JsonFileRepository() if save else None
    pipeline = BillPipeline(
        case_service=ReviewCaseService(repository=repository),
        parallel=False if sequential else None,
    )

    results = []
    for file_path in inputs:
        try:
            result = pipeline.process(file_path, vendor_id=vendor_id)
        except BillReviewError as e:
            logger.error(f"Error processing {file_path.name}: {e}")
            continue
        results.append(result.case.to_dict())

    logger.info(f"Processed {len(results)} bills")
    return results


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    try:
        args = parse_arguments(argv)
        config = ConfigurationManager(args.config)
        for assignment in args.overrides:
            config.override(parse_override(assignment))
        setup_logger_from_config()
        if args.debug:
            logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.DEBUG)

        results = run_pipeline(
            input_path=args.input,
            vendor_id=args.vendor,
            config_path=args.config,
            sequential=args.sequential,
            save=args.save,
        )
        print(json.dumps(results, indent=2, ensure_ascii=False))
        return 0 if results else 1

    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except BillReviewError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
