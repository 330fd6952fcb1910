from typing import Any, Dict, Optional


class CustomException(Exception):
    """Base exception for every error the API renders as JSON."""

    code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    message: str = "An unexpected error occurred"
    data: Optional[Dict[str, Any]] = None

    def __init__(
        self,
        message: str = None,
        code: int = None,
        error_code: str = None,
        data: Dict[str, Any] = None
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.error_code = error_code or self.error_code
        self.data = data or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Response body for the exception handler."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "data": self.data,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code}, error_code={self.error_code}, message={self.message})"


class BadRequestException(CustomException):
    code = 400
    error_code = "BAD_REQUEST"
    message = "Bad request"


class UnauthorizedException(CustomException):
    code = 401
    error_code = "UNAUTHORIZED"
    message = "Unauthorized"


class ForbiddenException(CustomException):
    code = 403
    error_code = "FORBIDDEN"
    message = "Access forbidden"


class NotFoundException(CustomException):
    code = 404
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ConflictException(CustomException):
    """Conflicting state, surfaced to the admin UI as-is (409)."""

    code = 409
    error_code = "CONFLICT"
    message = "Resource conflict"


class ValidationException(CustomException):
    """Rejected input (422). Never retried."""

    code = 422
    error_code = "VALIDATION_ERROR"
    message = "Validation error"
