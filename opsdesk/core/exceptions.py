# opsdesk/core/exceptions.py
"""Custom exceptions for the OpsDesk chat service."""
from fastapi import HTTPException
from typing import Any, Dict, Optional


class OpsDeskException(HTTPException):
    """Base exception for OpsDesk application."""
    def __init__(
        self,
        status_code: int,
        detail: Any,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class UnauthenticatedError(OpsDeskException):
    """Raised when a request carries no valid session."""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            status_code=401,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(OpsDeskException):
    """Raised when the access resolver or a role rule denies the caller."""
    def __init__(self, message: str = "Forbidden"):
        self.reason = message
        super().__init__(status_code=403, detail=message)


class NotFoundError(OpsDeskException):
    """Raised when a referenced room or user does not exist."""
    def __init__(self, message: str = "Resource not found"):
        super().__init__(status_code=404, detail=message)


class ValidationError(OpsDeskException):
    """Exception raised for validation errors."""
    def __init__(self, message: str, field: Optional[str] = None):
        detail = {"error": "Validation Error", "message": message}
        if field:
            detail["field"] = field
        super().__init__(status_code=422, detail=detail)


class RateLimitError(OpsDeskException):
    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(status_code=429, detail=message)

