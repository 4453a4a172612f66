"""
API errors.

Every error reaching a client is an ApiError; the handlers registered in
main.py turn it into {"success": false, "error", "code", "timestamp"}.
"""
from typing import Any, Optional


class ApiError(Exception):
    status_code = 500
    code = "server_internal"
    message = "An unexpected error occurred. Please try again later."

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        retry_after: Optional[int] = None,
        status_code: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.details = details
        self.retry_after = retry_after
        self.headers = headers or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload


# --- Validation ---

class ValidationError(ApiError):
    status_code = 400
    code = "validation_error"
    message = "Invalid request parameters"


# --- Rate limiting ---

class RateLimitError(ApiError):
    status_code = 429
    code = "rate_limit_exceeded"
    message = "Too many requests. Please wait before trying again."


class DuplicateRequestError(ApiError):
    status_code = 409
    code = "rate_limit_duplicate"
    message = "This email was recently subscribed. Please wait before trying again."


# --- Database ---

class DatabaseError(ApiError):
    status_code = 500
    code = "database_error"
    message = "Failed to process request"


class DuplicateSubscriptionError(ApiError):
    status_code = 409
    code = "already_subscribed"
    message = "Email already subscribed"


class NotFoundError(ApiError):
    status_code = 404
    code = "not_found"
    message = "Resource not found"


class TokenExpiredError(ApiError):
    status_code = 410
    code = "token_expired"
    message = "Confirmation links expire after 48 hours. Please subscribe again."


class InvalidTransitionError(ApiError):
    status_code = 409
    code = "invalid_status_transition"
    message = "Subscription cannot change to the requested status"


# --- Network ---

class EmailDeliveryError(ApiError):
    status_code = 503
    code = "email_delivery_failed"
    message = "Failed to send email. Please try again later."


class NetworkError(ApiError):
    status_code = 503
    code = "network_error"
    message = "Network error. Please check your connection and try again."


# --- Security ---

class AuthenticationError(ApiError):
    status_code = 401
    code = "security_unauthorized"
    message = "Authentication required. Provide Bearer token or API key."
