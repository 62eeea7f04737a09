"""
Domain errors raised by the complaint engine.

Each error carries the HTTP status the API layer answers with; the handler
in ``fixmytown`` renders them as ``{"error": message}``.
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for every error the engine raises on purpose."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, error_code: Optional[str] = None):
        self.message = message or self.default_message
        self.error_code = error_code or self.__class__.__name__
        super().__init__(self.message)


class NotFound(TrackerError):
    status_code = 404
    default_message = "Not found"


class ValidationError(TrackerError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(TrackerError):
    """The record changed since the caller read it."""

    status_code = 409
    default_message = "Complaint was modified concurrently, reload and retry"


class PermissionDenied(TrackerError):
    status_code = 403
    default_message = "Insufficient permissions"


class InvalidCredentials(TrackerError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidOtp(TrackerError):
    status_code = 401
    default_message = "Invalid OTP"


class OtpExpired(TrackerError):
    status_code = 401
    default_message = "OTP not found or expired"
