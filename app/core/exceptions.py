"""
Application error type shared by every layer of the preview pipeline.

Errors are not modelled as a class hierarchy. There is one exception type,
ApplicationError, and one closed set of machine-readable codes, ErrorCode.
Callers match on ``error.code``, never on message text.

Error Codes:
    InvalidParameter      - Inbound notification could not be decoded
    FailedToGetS3Object   - Object retrieval failed (transport fault, missing key)
    S3ObjectBodyEmpty     - Object retrieved but carried no payload
    FailedToPutS3Object   - Upload failed (including local read errors)
    CommandError          - External tool exited non-zero, timed out or is missing
    DimensionUnidentified - Dimension probe output could not be parsed
    IOError               - Local file outside the tracked set, or write failure
    InternalServerError   - Anything unclassified, wrapped at the handler boundary

Usage:
    from core.exceptions import ApplicationError, ErrorCode

    raise ApplicationError(
        ErrorCode.COMMAND_ERROR,
        "command exited with code 1",
        details={"returncode": 1, "command": "convert ..."},
    )

    try:
        ...
    except ApplicationError:
        raise
    except Exception as e:
        raise ApplicationError.wrap(e) from e
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""

    INVALID_PARAMETER = "InvalidParameter"
    FAILED_TO_GET_S3_OBJECT = "FailedToGetS3Object"
    S3_OBJECT_BODY_EMPTY = "S3ObjectBodyEmpty"
    FAILED_TO_PUT_S3_OBJECT = "FailedToPutS3Object"
    COMMAND_ERROR = "CommandError"
    DIMENSION_UNIDENTIFIED = "DimensionUnidentified"
    IO_ERROR = "IOError"
    INTERNAL_SERVER_ERROR = "InternalServerError"


class ApplicationError(Exception):
    """
    The single exception raised by the pipeline.

    Attributes:
        code: ErrorCode member identifying the failure kind
        message: Human-readable error description
        details: Additional diagnostic context (command line, exit code, paths)
        cause: The underlying exception, if this error wraps one

    Example:
        try:
            handle_event(message)
        except ApplicationError as e:
            if e.code is ErrorCode.FAILED_TO_PUT_S3_OBJECT:
                ...
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str = "",
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        """
        Initialize the error.

        Args:
            code: ErrorCode member or its string value
            message: Human-readable error description
            details: Additional error context
            cause: Underlying exception being wrapped

        Raises:
            ValueError: If code is not a known error code
        """
        self.code = ErrorCode(code)
        self.message = message
        self.details = details or {}
        self.cause = cause
        # Positional args stay (code, message) so result backends can rebuild us
        super().__init__(self.code.value, message)

    @property
    def error_code(self) -> str:
        """Return the string form of the code."""
        return self.code.value

    @classmethod
    def wrap(cls, exc: BaseException) -> ApplicationError:
        """
        Pass a classified error through, wrap anything else.

        Args:
            exc: Any exception caught at a boundary

        Returns:
            exc itself if it is an ApplicationError, otherwise a new
            InternalServerError carrying exc as its cause
        """
        if isinstance(exc, cls):
            return exc
        return cls(
            ErrorCode.INTERNAL_SERVER_ERROR,
            str(exc) or exc.__class__.__name__,
            details={"exception": exc.__class__.__name__},
            cause=exc,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a serializable dictionary.

        Returns:
            Dict with error, error_code and (when present) details keys
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )
