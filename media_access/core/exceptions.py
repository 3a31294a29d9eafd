"""
Custom Exceptions
Application-specific exception classes
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base application exception"""

    def __init__(
        self,
        message: str,
        code: str = "app_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)


class ValidationException(AppException):
    """Validation error exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="validation_error",
            status_code=400,
            details=details,
        )


class AuthenticationException(AppException):
    """Authentication error exception"""

    def __init__(
        self,
        message: str = "Authentication required",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="authentication_error",
            status_code=401,
            details=details,
        )


class NotFoundException(AppException):
    """Resource or access code does not exist"""

    def __init__(
        self,
        resource: str = "Resource",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.resource = resource
        super().__init__(
            message=f"{resource} not found",
            code="not_found",
            status_code=404,
            details=details,
        )


class AccessDeniedException(AppException):
    """
    The resource exists but the requested permission was not granted

    Rendered exactly like NotFoundException so callers cannot probe for
    existence. The internal denial reason stays on the exception (and in
    the audit trail) and is never put into the response.
    """

    def __init__(
        self,
        reason: str,
        user_message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.reason = reason
        self.user_message = user_message
        super().__init__(
            message="Resource not found",
            code="not_found",
            status_code=404,
            details=details,
        )


class ForbiddenException(AppException):
    """Caller is not allowed to manage the target (revoke, delete, share)"""

    def __init__(
        self,
        message: str = "Permission denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="forbidden",
            status_code=403,
            details=details,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code="conflict",
            status_code=409,
            details=details,
        )


class TransientException(AppException):
    """
    Backing store or audit sink unavailable

    No decision was reached. Callers must retry or answer with a 5xx;
    this is never a denial.
    """

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(
            message=message,
            code="transient_error",
            status_code=503,
            details=details,
        )
