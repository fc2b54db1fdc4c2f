"""Error types raised by the tracking services.

Every error carries the HTTP status it maps to and a message that is safe to
show to clients. Operational detail belongs in the logs, not in ``message``.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for failures surfaced through the API envelope."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(TrackerError):
    """Missing or malformed client input."""

    status_code = 400
    default_message = "Invalid request"


class InvalidCredentials(TrackerError):
    status_code = 401
    default_message = "Invalid username or password"


class NotFound(TrackerError):
    status_code = 404
    default_message = "Resource not found"


class UserNotFound(NotFound):
    default_message = "User not found"


class AlreadyWatched(TrackerError):
    """A watched record already exists for the requested key.

    This is a terminal rejection: repeating the request cannot succeed.
    """

    status_code = 400
    default_message = "Already marked as watched"


class UsernameTaken(TrackerError):
    status_code = 400
    default_message = "Username is already taken"


class UpstreamUnavailable(TrackerError):
    """TMDB could not be reached or answered with a non-success status."""

    status_code = 502
    default_message = "Failed to fetch data from TMDB"


class ConfigurationError(TrackerError):
    status_code = 500
    default_message = "Service is not configured"


class StorageError(TrackerError):
    status_code = 500
    default_message = "Database operation failed"
