"""
Error taxonomy shared by the API, the services and the sync client.

Every error carries an HTTP status and a generic, user-safe message.
Diagnostic detail belongs in the logs, never in ``public_message``.
"""

from __future__ import annotations


class StudyBuddyError(Exception):
    """Base class for errors surfaced to callers."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred. Please try again"

    def __init__(self, public_message: str | None = None, *, status_code: int | None = None):
        self.public_message = public_message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.public_message)

    def to_dict(self) -> dict[str, str]:
        """Render the error body returned to clients."""
        return {"error": self.public_message}


class ValidationError(StudyBuddyError):
    """Malformed or out-of-range input. Not retried."""

    status_code = 400
    default_message = "Invalid request"


class InvalidInput(ValidationError):
    """Estimator input outside its domain."""

    default_message = "Input outside the accepted range"


class AuthError(StudyBuddyError):
    """Missing or invalid credential."""

    status_code = 401
    default_message = "Unauthorized"


class PermissionDenied(AuthError):
    """Valid credential without the required role."""

    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(StudyBuddyError):
    status_code = 404
    default_message = "Not found"


class RateLimited(StudyBuddyError):
    """Caller exceeded its quota. Retry after backoff."""

    status_code = 429
    default_message = "Rate limit exceeded. Please try again in a moment."


class UpstreamUnavailable(StudyBuddyError):
    """External gateway or store unreachable after retries."""

    status_code = 503
    default_message = "Service temporarily unavailable. Please try again later."


class PersistenceError(StudyBuddyError):
    """A server-authoritative write failed."""

    status_code = 500
    default_message = "Failed to save progress. Please try again"
