"""
Error code catalog for the session store.

This module defines all error codes raised or reported by the session
store, covering remote store failures, serialization failures,
configuration problems and provider registry misuse.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used by the session store.

    Each error code maps to the HTTP status code a serving layer should
    return when the error reaches a request boundary:
    - Remote store errors (5xx): Redis unreachable or failing
    - Serialization errors (5xx): values that cannot be encoded
    - Configuration and registry errors (5xx): startup problems
    """

    # Remote store errors (5xx)
    SESSION_STORE_UNAVAILABLE = "SESSION_STORE_UNAVAILABLE"
    """Redis unreachable or returned an error (HTTP 503)"""

    SESSION_PERSIST_FAILED = "SESSION_PERSIST_FAILED"
    """Session values could not be written to Redis (HTTP 503)"""

    # Serialization errors (5xx)
    SESSION_SERIALIZATION_FAILED = "SESSION_SERIALIZATION_FAILED"
    """Session values could not be encoded as JSON (HTTP 500)"""

    # Configuration and registry errors (5xx)
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    """Provider configuration is invalid (HTTP 500)"""

    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
    """No session provider registered under the requested name (HTTP 500)"""

    PROVIDER_ALREADY_REGISTERED = "PROVIDER_ALREADY_REGISTERED"
    """A session provider name was registered twice (HTTP 500)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.SESSION_STORE_UNAVAILABLE: 503,
    ErrorCode.SESSION_PERSIST_FAILED: 503,
    ErrorCode.SESSION_SERIALIZATION_FAILED: 500,
    ErrorCode.INVALID_CONFIGURATION: 500,
    ErrorCode.PROVIDER_NOT_FOUND: 500,
    ErrorCode.PROVIDER_ALREADY_REGISTERED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
