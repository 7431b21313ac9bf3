"""
Error taxonomy shared by the API and its services.

Each error knows the HTTP status it maps to. ``main.py`` converts them to
``{"message": ..., **details}`` responses at the request boundary.
"""
from typing import Any, Dict, Optional


class StorefrontError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, **self.details}


class ValidationError(StorefrontError):
    status_code = 400
    default_message = "Invalid request"


class PaymentNotCompletedError(ValidationError):
    default_message = "Payment not completed"

    def __init__(self, status: Optional[str] = None):
        super().__init__(details={"status": status})
        self.status = status


class AuthenticationError(StorefrontError):
    status_code = 401
    default_message = "Not authenticated"


class AuthorizationError(StorefrontError):
    status_code = 403
    default_message = "Not authorized"


class NotFoundError(StorefrontError):
    status_code = 404
    default_message = "Not found"


class UpstreamError(StorefrontError):
    """A payment gateway answered with a failure, or did not answer at all."""

    status_code = 502
    default_message = "Payment gateway error"

    def __init__(self, message: Optional[str] = None, upstream_status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None, timeout: bool = False):
        merged = {"upstream_status": upstream_status}
        merged.update(details or {})
        super().__init__(message, merged)
        self.upstream_status = upstream_status
        if timeout:
            self.status_code = 504


class UnexpectedError(StorefrontError):
    status_code = 500
