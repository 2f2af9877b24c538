"""
Utility Module for the Bill Review Pipeline.

This module provides common utilities used across all other modules:
    - Logging configuration
    - Exception hierarchy
    - Clock abstraction for budgets and timestamps
    - Reader/writer locking for shared tables
    - Common helpers
"""

from .logger import setup_logger, get_logger
from .helpers import ensure_directory, get_file_extension, generate_id
from .clock import Clock, SystemClock, ManualClock
from .locks import ReadWriteLock, KeyedLocks

__all__ = [
    'setup_logger',
    'get_logger',
    'ensure_directory',
    'get_file_extension',
    'generate_id',
    'Clock',
    'SystemClock',
    'ManualClock',
    'ReadWriteLock',
    'KeyedLocks',
]
