"""
Error handling system for the leverage engine.

Provides structured error codes and typed exceptions. All errors surface
synchronously to the operation's caller.
"""

from .codes import ErrorCategory, ErrorCode, get_error_description, get_error_info
from .exceptions import (
    LeverageError,
    ValidationError,
    OracleError,
    ProtocolError,
    SwapError,
    ReconciliationError,
    ArithmeticGuardError,
    AuthError,
    ExecutionError,
)

__all__ = [
    # Codes
    "ErrorCode",
    "ErrorCategory",
    "get_error_info",
    "get_error_description",
    # Exceptions
    "LeverageError",
    "ValidationError",
    "OracleError",
    "ProtocolError",
    "SwapError",
    "ReconciliationError",
    "ArithmeticGuardError",
    "AuthError",
    "ExecutionError",
]
