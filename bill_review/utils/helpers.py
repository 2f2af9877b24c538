"""
Helper Utilities Module.

This module provides common utility functions used throughout the
pipeline. Functions here should be generic and reusable across
different modules.

Functions:
    - ensure_directory: Create directory if it doesn't exist
    - get_file_extension: Extract file extension safely
    - generate_id: Generate a unique identifier string
    - to_iso / from_iso: Datetime <-> ISO-8601 string conversion
"""

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from dateutil import parser as date_parser


# Image formats the preprocessor and OCR engine accept
SUPPORTED_IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.tiff', '.tif', '.bmp'}


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        Path object pointing to the directory.

    Example:
        >>> ensure_directory("outputs/preprocessed")
        PosixPath('outputs/preprocessed')
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def get_file_extension(filepath: Union[str, Path]) -> str:
    """
    Extract the file extension from a filepath.

    Returns the extension in lowercase, including the dot.
    Returns empty string if no extension exists.

    Example:
        >>> get_file_extension("bill.PNG")
        ".png"
    """
    return Path(filepath).suffix.lower()


def is_supported_image(filepath: Union[str, Path]) -> bool:
    """Check whether a path has an image extension the pipeline accepts."""
    return get_file_extension(filepath) in SUPPORTED_IMAGE_EXTENSIONS


def generate_id() -> str:
    """
    Generate a unique identifier for cases, sessions and shields.

    Returns:
        Random UUID4 string.
    """
    return str(uuid.uuid4())


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a datetime to an ISO-8601 string.

    Args:
        value: Datetime to serialize, or None.

    Returns:
        ISO-8601 string, or None when value is None.
    """
    if value is None:
        return None
    return value.isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string produced by to_iso.

    Naive timestamps are assumed to be UTC.

    Example:
        >>> from_iso("2026-01-21T14:30:22+00:00").year
        2026
    """
    if value is None:
        return None
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
