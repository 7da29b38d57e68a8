"""
API error definitions and exception classes.

Provides consistent error handling across all API endpoints.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard API error codes."""

    # Client errors (4xx)
    INVALID_REQUEST = "INVALID_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    SCOPE_LOCKED = "SCOPE_LOCKED"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    MIGRATION_FAILED = "MIGRATION_FAILED"


class APIError(Exception):
    """
    Base API exception with structured error response.

    Usage:
        raise APIError(
            code=ErrorCode.VALIDATION_ERROR,
            message="'network' must be a boolean",
            status=400,
        )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: int = 400,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert to API response format."""
        error_dict: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            error_dict["details"] = self.details
        if request_id:
            error_dict["request_id"] = request_id
        return {"error": error_dict}


class ValidationError(APIError):
    """Request validation error."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            status=400,
            details=details,
        )
