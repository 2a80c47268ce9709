"""Direct messages: schemas, DuckDB store and HTTP endpoints."""

from .schemas import Message, MessageType, SendMessageRequest
from .service import MessageStore

__all__ = [
    "Message",
    "MessageStore",
    "MessageType",
    "SendMessageRequest",
]
