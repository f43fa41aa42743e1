"""Chat error taxonomy.

Every error raised inside a chat operation is a ``ChatError``. The websocket
layer turns it into a unicast ``error`` event for the originating connection,
and the REST layer maps it to an HTTP status via ``status_code``.
"""

from typing import Any


class ChatError(Exception):
    """Base class for chat errors carrying a machine code and a user message."""

    code = "CHAT_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_event_data(self) -> dict[str, Any]:
        """Payload for the ``error`` websocket event."""
        return {"error": self.code, "message": self.message}


class ValidationError(ChatError):
    """Empty content, missing or malformed fields."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthorizationError(ChatError):
    """Not a project member, or not the owner of the message being mutated."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(ChatError):
    """Message id does not resolve, or the message is soft-deleted."""

    code = "NOT_FOUND"
    status_code = 404


class RateLimitError(ChatError):
    """Sender exceeded the per-window message allowance."""

    code = "RATE_LIMITED"
    status_code = 429


class PersistenceError(ChatError):
    """Store call failed or timed out."""

    code = "PERSISTENCE_ERROR"
    status_code = 503
