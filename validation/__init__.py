"""
Validation module for KashflowSync.

Provides configuration validation and upstream error classification.
"""

from validation.errors import ErrorKind, classify_exception, classify_http_error
from validation.config import SyncSettings, get_settings

__all__ = [
    'ErrorKind',
    'classify_exception',
    'classify_http_error',
    'SyncSettings',
    'get_settings',
]
