"""
Typed application errors.

Services raise these; `main.py` maps each class to one HTTP status and the
`{success: false, error, message}` envelope. Messages are safe to show to
clients. Anything that is not an `AppError` is treated as a server error.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    status_code = 500
    error = "Server error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.error,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class AuthenticationError(AppError):
    """Missing, malformed, invalid or expired credential.

    The message is deliberately the same for every cause.
    """

    status_code = 401
    error = "Authentication failed"
    default_message = "Could not verify your credentials. Please login again."

    def __init__(self) -> None:
        super().__init__()


class ValidationError(AppError):
    status_code = 400
    error = "Validation failed"
    default_message = "The request is invalid"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, details=[{"field": field, "message": message}])


class NotFoundError(AppError):
    """Resource absent or owned by someone else; the two are indistinguishable."""

    status_code = 404
    error = "Not found"
    default_message = "Resource not found"


class ServerError(AppError):
    pass
