"""
Centralized error classification for upstream API calls.

Provides consistent classification of failures to determine whether they
should be retried (transient) or surfaced immediately (fatal). The result is
an explicit ErrorKind value that callers inspect, rather than an exception
hierarchy used for control flow.
"""

import logging
from enum import Enum

import httpx


class ErrorKind(Enum):
    """Classification of a failed upstream call."""
    RETRIABLE = "retriable"
    FATAL = "fatal"


# HTTP status codes that indicate transient (retry-able) errors
# 429: Rate limited - retry after backoff
# 5xx: Server errors - usually temporary
TRANSIENT_CODES = frozenset({429, 500, 502, 503, 504})

# HTTP status codes that indicate permanent (non-retry-able) errors
# 400: Bad request - parameter issue
# 401: Unauthorized - session token rejected
# 403: Forbidden - permission issue
# 404: Not found - endpoint or record doesn't exist
# 405: Method not allowed - API misuse
# 422: Unprocessable entity - validation failure
PERMANENT_CODES = frozenset({400, 401, 403, 404, 405, 422})

# Module logger
logger = logging.getLogger(__name__)


def classify_http_error(status_code: int) -> ErrorKind:
    """
    Classify an HTTP status code as retriable or fatal.

    Args:
        status_code: HTTP response status code

    Returns:
        ErrorKind.RETRIABLE for retry-able errors
        ErrorKind.FATAL for non-retry-able errors
    """
    if status_code in TRANSIENT_CODES:
        logger.debug(f"HTTP {status_code} classified as retriable")
        return ErrorKind.RETRIABLE

    if status_code in PERMANENT_CODES:
        logger.debug(f"HTTP {status_code} classified as fatal")
        return ErrorKind.FATAL

    if 400 <= status_code < 500:
        # Unknown 4xx = fatal (client error, unlikely to change)
        logger.debug(f"HTTP {status_code} (unknown 4xx) classified as fatal")
        return ErrorKind.FATAL

    if status_code >= 500:
        # Unknown 5xx = retriable (server error, may recover)
        logger.debug(f"HTTP {status_code} (unknown 5xx) classified as retriable")
        return ErrorKind.RETRIABLE

    # 1xx/3xx shouldn't reach here
    logger.debug(f"HTTP {status_code} (unexpected) classified as retriable")
    return ErrorKind.RETRIABLE


def classify_exception(exc: Exception) -> ErrorKind:
    """
    Classify an exception raised while talking to the upstream API.

    Handles various exception types:
    - HTTP status errors: classified by status code
    - Network errors and timeouts: retriable
    - Decoding/validation errors: fatal
    - Unknown: retriable (safer, allows retry)

    Args:
        exc: The exception to classify

    Returns:
        ErrorKind for the failure
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_http_error(exc.response.status_code)

    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        logger.debug(f"Network error classified as retriable: {type(exc).__name__}")
        return ErrorKind.RETRIABLE

    if isinstance(exc, (ConnectionError, TimeoutError)):
        logger.debug(f"Network error classified as retriable: {type(exc).__name__}")
        return ErrorKind.RETRIABLE

    # Response bodies that aren't JSON, bad parameters, etc.
    if isinstance(exc, (ValueError, TypeError, KeyError, AttributeError, httpx.InvalidURL)):
        logger.debug(f"Validation error classified as fatal: {type(exc).__name__}")
        return ErrorKind.FATAL

    logger.debug(f"Unknown exception classified as retriable: {type(exc).__name__}")
    return ErrorKind.RETRIABLE
