"""
Logging for the bill review pipeline.

All loggers hang under the "bill_review" namespace. Console output goes
to stderr so that the CLI can print review cases as JSON on stdout.
Per-bill work logs through BillLogAdapter, which prefixes each message
with the bill and vendor it concerns.

Usage:
    from bill_review.utils.logger import get_logger, setup_logger_from_config

    setup_logger_from_config()          # once, at startup
    logger = get_logger(__name__)
    logger.info("Running OCR pass...")
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

import colorama
from colorama import Fore, Style

colorama.init()

ROOT_LOGGER_NAME = "bill_review"

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class ColoredFormatter(logging.Formatter):
    """Console formatter colouring each record by level."""

    LEVEL_COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, '')
        return f"{color}{super().format(record)}{Style.RESET_ALL}"


class BillLogAdapter(logging.LoggerAdapter):
    """
    Prefix messages with the bill being processed.

    Example:
        >>> log = BillLogAdapter(logger, bill="march.png", vendor="acme")
        >>> log.info("3 shields applied")
        ... | [bill=march.png vendor=acme] 3 shields applied
    """

    def __init__(self, logger: logging.Logger, bill: str, vendor: Optional[str] = None) -> None:
        super().__init__(logger, {"bill": bill, "vendor": vendor})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        context = f"bill={self.extra['bill']}"
        if self.extra.get("vendor"):
            context += f" vendor={self.extra['vendor']}"
        return f"[{context}] {msg}", kwargs


def _parse_level(level: str) -> int:
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown logging level: {level}")
    return value


def setup_logger(
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = 5,
    colorize: bool = True
) -> logging.Logger:
    """
    Configure the "bill_review" logger.

    Calling it again replaces the previous handlers, so the CLI can
    reconfigure after loading a custom settings file.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Record format; DEFAULT_FORMAT when omitted.
        date_format: Timestamp format; DEFAULT_DATE_FORMAT when omitted.
        log_file: Rotating log file. None disables file logging.
        max_bytes: File size that triggers rotation.
        backup_count: Rotated files to keep.
        colorize: Colour console records by level.

    Returns:
        The configured "bill_review" logger.

    Raises:
        ValueError: If the level name is unknown.
    """
    numeric_level = _parse_level(level)
    log_format = log_format or DEFAULT_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    pipeline_logger = logging.getLogger(ROOT_LOGGER_NAME)
    pipeline_logger.setLevel(numeric_level)
    for handler in list(pipeline_logger.handlers):
        pipeline_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    formatter_class = ColoredFormatter if colorize else logging.Formatter
    console_handler.setFormatter(formatter_class(log_format, datefmt=date_format))
    pipeline_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        pipeline_logger.addHandler(file_handler)

    pipeline_logger.propagate = False

    pipeline_logger.debug(f"Logging initialized at {logging.getLevelName(numeric_level)}")
    return pipeline_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the "bill_review" namespace.

    Example:
        >>> get_logger("tests.utils").name
        'bill_review.tests.utils'
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logger_from_config() -> logging.Logger:
    """Configure logging from the `logging` section of settings.yaml."""
    from config import ConfigurationManager

    settings = ConfigurationManager().section("logging")
    file_settings = settings.get("file") or {}
    console_settings = settings.get("console") or {}

    log_file = file_settings.get("path") if file_settings.get("enabled", False) else None

    return setup_logger(
        level=settings.get("level", "INFO"),
        log_format=settings.get("format"),
        date_format=settings.get("date_format"),
        log_file=log_file,
        max_bytes=file_settings.get("max_bytes", DEFAULT_MAX_BYTES),
        backup_count=file_settings.get("backup_count", 5),
        colorize=console_settings.get("colorize", True)
    )


__all__ = [
    'ROOT_LOGGER_NAME',
    'BillLogAdapter',
    'ColoredFormatter',
    'setup_logger',
    'get_logger',
    'setup_logger_from_config',
]
