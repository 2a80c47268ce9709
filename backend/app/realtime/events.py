"""Real-time protocol events.

Every frame is a JSON object whose ``type`` field names the event; the
remaining fields are the payload. Inbound events are validated against the
tagged union below before anything acts on them, so handlers only ever see
well-formed input.

Client → server:
    - signin:        {userId?, token?}
    - send_message:  {senderId, receiverId, content, messageType?}
    - typing:        {receiverId, isTyping, senderName?}
    - mark_read:     {messageId}

Server → client: see :class:`ServerEvent`.
"""
import json
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from app.errors import MalformedEvent
from app.messages.schemas import MessageType


class ServerEvent(str, Enum):
    """Event names sent from server to client."""
    SIGNED_IN = "signed_in"
    MESSAGE_SENT = "message_sent"
    RECEIVE_MESSAGE = "receive_message"
    MESSAGE_ERROR = "message_error"
    USER_TYPING = "user_typing"
    MESSAGE_READ = "message_read"
    USER_ONLINE = "user_online"
    USER_OFFLINE = "user_offline"
    ERROR = "error"


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SigninEvent(_Event):
    type: Literal["signin"]
    userId: Optional[str] = Field(default=None, min_length=1)
    token: Optional[str] = Field(default=None, min_length=1)


class SendMessageEvent(_Event):
    type: Literal["send_message"]
    senderId: str = Field(..., min_length=1)
    receiverId: str = Field(..., min_length=1)
    content: str
    messageType: MessageType = MessageType.TEXT

    @field_validator("content", mode="before")
    @classmethod
    def _content_not_blank(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            raise ValueError("content is required")
        return value


class TypingEvent(_Event):
    type: Literal["typing"]
    receiverId: str = Field(..., min_length=1)
    isTyping: bool
    senderName: Optional[str] = None


class MarkReadEvent(_Event):
    type: Literal["mark_read"]
    messageId: str = Field(..., min_length=1)


ClientEvent = Annotated[
    Union[SigninEvent, SendMessageEvent, TypingEvent, MarkReadEvent],
    Field(discriminator="type"),
]

_client_event_adapter = TypeAdapter(ClientEvent)


def _describe(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        # First loc entry is the event tag
        location = ".".join(str(part) for part in err["loc"][1:])
        if err["type"] == "missing":
            problems.append(f"missing field '{location}'")
        elif err["type"] in ("union_tag_invalid", "union_tag_not_found"):
            problems.append("unknown or missing event type")
        else:
            problems.append(f"invalid field '{location}': {err['msg']}")
    return "Malformed event: " + "; ".join(problems)


def decode_frame(raw: Union[str, bytes, dict]) -> dict:
    """Decode a raw frame into a JSON object without validating its fields.

    Raises:
        MalformedEvent: On invalid JSON or a non-object payload.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise MalformedEvent("Malformed event: invalid JSON")
    if not isinstance(raw, dict):
        raise MalformedEvent("Malformed event: expected a JSON object")
    return raw


def parse_event(raw: Union[str, bytes, dict]):
    """Validate one inbound frame and return the matching event model.

    Raises:
        MalformedEvent: On invalid JSON, unknown ``type`` or bad fields.
    """
    raw = decode_frame(raw)
    try:
        return _client_event_adapter.validate_python(raw)
    except ValidationError as exc:
        raise MalformedEvent(_describe(exc))
