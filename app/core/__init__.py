"""
Core Application - Infrastructure

Generic infrastructure shared by domain apps. No domain-specific logic goes
here.

Exceptions (import from core.exceptions):
    - ErrorCode: Closed set of machine-readable error codes
    - ApplicationError: The single exception type raised by domain code

Usage:
    from core.exceptions import ApplicationError, ErrorCode

    raise ApplicationError(ErrorCode.IO_ERROR, "File path invalid")
"""

from .exceptions import ApplicationError, ErrorCode

__all__ = [
    "ApplicationError",
    "ErrorCode",
]
