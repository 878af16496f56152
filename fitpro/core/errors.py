"""
Error types raised by the subscription and billing layers.

Webhook routes turn processing errors into HTTP 500 so Stripe redelivers the
event; client and admin routes turn them into structured error bodies.
"""
from typing import Optional


class FitProError(Exception):
    """Base class for application errors."""

    error_code = "fitpro_error"
    status_code = 500

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_detail(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class EventParseError(FitProError):
    """Webhook body is not a well-formed processor event."""

    error_code = "invalid_event"
    status_code = 400


class WebhookVerificationError(FitProError):
    """Webhook signature could not be verified."""

    error_code = "invalid_signature"
    status_code = 400


class ConfigurationError(FitProError):
    """Stripe (or another integration) is not configured."""

    error_code = "not_configured"
    status_code = 503


class UpstreamLookupError(FitProError):
    """A call to the payment processor failed."""

    error_code = "upstream_error"
    status_code = 502


class PersistenceError(FitProError):
    """A database write failed and was rolled back."""

    error_code = "database_error"
    status_code = 500


class SubscriberNotFoundError(FitProError):
    """The local user an operation targets does not exist."""

    error_code = "user_not_found"
    status_code = 404

    def __init__(self, user_id, message: Optional[str] = None):
        super().__init__(message or f"User not found: user_id={user_id}")
        self.user_id = user_id
