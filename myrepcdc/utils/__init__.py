"""
Utilities for MySQL binlog CDC
"""

from .binary import BinaryReader, bitmap_size
from .logger import setup_logging, get_logger
from .retry import retry, RetryConfig, retry_on_connection_error

__all__ = [
    'BinaryReader',
    'bitmap_size',
    'setup_logging',
    'get_logger',
    'retry',
    'RetryConfig',
    'retry_on_connection_error',
]
