"""Pydantic schemas for direct messages.

``Message`` is the canonical record: it is what the store returns, what the
HTTP API serialises and what the real-time layer pushes in
``receive_message`` / ``message_sent`` events.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator


class MessageType(str, Enum):
    """Kind of content carried by a message.

    Media types carry a URL to external blob storage in ``content``.
    """
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"


class Message(BaseModel):
    """Complete direct message with all metadata.

    Attributes:
        id: Server-assigned message identifier.
        senderId / receiverId: Participant identities.
        senderName / receiverName: Display names at read time.
        isRead: Monotonic false→true once the receiver has read it.
        isDelivered: Accepted and persisted by the server (always true).
        createdAt: Store-assigned timestamp, used for display ordering.
    """
    id: str
    senderId: str
    senderName: str = ""
    receiverId: str
    receiverName: str = ""
    content: str
    messageType: MessageType = MessageType.TEXT
    isRead: bool = False
    isDelivered: bool = True
    createdAt: datetime

    def participants(self) -> frozenset:
        return frozenset((self.senderId, self.receiverId))

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe dict for WebSocket frames."""
        return self.model_dump(mode="json")


class SendMessageRequest(BaseModel):
    """Request body for ``POST /api/messages/send`` (sender comes from the token)."""
    receiverId: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    messageType: MessageType = MessageType.TEXT

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content is required")
        return value
