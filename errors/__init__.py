"""
Error handling module for the session store.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException class for session-store exceptions
- Factory functions for the common failure kinds
"""

from errors.codes import ErrorCode, get_default_status_code
from errors.exceptions import (
    AppException,
    internal_error,
    invalid_configuration,
    provider_already_registered,
    provider_not_found,
    session_persist_failed,
    session_serialization_failed,
    session_store_unavailable,
)

__all__ = [
    "ErrorCode",
    "get_default_status_code",
    "AppException",
    "internal_error",
    "invalid_configuration",
    "provider_already_registered",
    "provider_not_found",
    "session_persist_failed",
    "session_serialization_failed",
    "session_store_unavailable",
]
