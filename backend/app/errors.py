"""Error taxonomy shared by the HTTP API and the real-time layer.

Every error carries a stable ``code`` (sent to clients in error events and
JSON bodies) and the HTTP status used when it escapes a route handler.
"""
from typing import Any, Dict, Optional


class ChatError(Exception):
    """Base class for errors that are reported back to the caller."""

    code: str = "error"
    status_code: int = 500

    def __init__(self, message: Optional[str] = None) -> None:
        # The subclass docstring doubles as the default client-facing message
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class Unauthenticated(ChatError):
    """Missing or invalid credential."""
    code = "unauthenticated"
    status_code = 401


class Forbidden(ChatError):
    """Caller is not allowed to act on this resource."""
    code = "forbidden"
    status_code = 403


class RecipientNotFound(ChatError):
    """Receiver not found."""
    code = "recipient_not_found"
    status_code = 404


class MessageNotFound(ChatError):
    """Message not found."""
    code = "message_not_found"
    status_code = 404


class ValidationFailed(ChatError):
    """Request is missing required fields or has invalid values."""
    code = "validation_failed"
    status_code = 400


class Conflict(ChatError):
    """Resource already exists."""
    code = "conflict"
    status_code = 409


class MalformedEvent(ChatError):
    """Malformed real-time event."""
    code = "malformed_event"
    status_code = 400


class TransientStoreFailure(ChatError):
    """Storage is temporarily unavailable."""
    code = "store_unavailable"
    status_code = 503
