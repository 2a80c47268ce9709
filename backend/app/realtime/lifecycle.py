"""Per-connection state machine for the real-time protocol.

States:
    UNAUTHENTICATED → SIGNED_IN → DISCONNECTED (terminal)

Only ``signin`` is accepted before sign-in; ``send_message``, ``typing`` and
``mark_read`` require SIGNED_IN; nothing is processed after DISCONNECTED.
Each inbound frame is handled to completion before the next one is read, so
one client's events are processed in arrival order.

Failure semantics:
    Every failure is answered with an event on this connection and the
    connection stays open. Send failures use ``message_error``; everything
    else uses ``error``. Both carry ``{error, code}``.
"""
import logging
from enum import Enum
from typing import Optional, Union

from app.auth.service import IdentityResolver, VerifiedIdentity
from app.errors import ChatError, Forbidden, Unauthenticated

from .connection import ConnectionHandle
from .delivery import DeliveryCoordinator
from .events import (
    MarkReadEvent,
    SendMessageEvent,
    ServerEvent,
    SigninEvent,
    TypingEvent,
    decode_frame,
    parse_event,
)

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    SIGNED_IN = "signed_in"
    DISCONNECTED = "disconnected"


class ConnectionLifecycleManager:
    """Drives one connection through sign-in, events and disconnect.

    Args:
        handle: This connection's handle.
        coordinator: Shared delivery coordinator (owns the registry).
        resolver: Verifies bearer credentials on ``signin``.
        connect_token: Credential given when the socket was opened, used
            when the ``signin`` event carries none.
    """

    def __init__(
        self,
        handle: ConnectionHandle,
        coordinator: DeliveryCoordinator,
        resolver: IdentityResolver,
        connect_token: Optional[str] = None,
    ) -> None:
        self.handle = handle
        self.coordinator = coordinator
        self.registry = coordinator.registry
        self.resolver = resolver
        self._connect_token = connect_token
        self.state = ConnectionState.UNAUTHENTICATED
        self.identity: Optional[VerifiedIdentity] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    # =========================================================================
    # Inbound frames
    # =========================================================================

    def handle_frame(self, raw: Union[str, bytes, dict]) -> None:
        """Validate and dispatch one inbound frame. Never raises."""
        if self.state is ConnectionState.DISCONNECTED:
            return

        error_event = ServerEvent.ERROR
        try:
            frame = decode_frame(raw)
            if frame.get("type") == "send_message":
                error_event = ServerEvent.MESSAGE_ERROR
            event = parse_event(frame)

            if isinstance(event, SigninEvent):
                self._on_signin(event)
                return

            self._require_signed_in()
            if isinstance(event, SendMessageEvent):
                self._on_send_message(event)
            elif isinstance(event, TypingEvent):
                self._on_typing(event)
            elif isinstance(event, MarkReadEvent):
                self._on_mark_read(event)
        except ChatError as exc:
            logger.info(
                "[WS] %s on handle %s (user=%s): %s",
                exc.code, self.handle.id, self.user_id, exc.message,
            )
            self.handle.push(error_event.value, exc.to_payload())
        except Exception:
            logger.exception("[WS] Unexpected error on handle %s", self.handle.id)
            self.handle.push(
                error_event.value,
                {"error": "Internal server error", "code": "internal_error"},
            )

    def _require_signed_in(self) -> None:
        if self.state is not ConnectionState.SIGNED_IN:
            raise Unauthenticated("Sign in first")

    def _on_signin(self, event: SigninEvent) -> None:
        identity = self.resolver.resolve(event.token or self._connect_token)
        if event.userId and event.userId != identity.user_id:
            raise Unauthenticated("userId does not match the credential")

        if self.state is ConnectionState.SIGNED_IN:
            if identity.user_id != self.user_id:
                raise Forbidden("Connection is already signed in as another user")
            # Same user signing in again: refresh the entry, no second broadcast
            self.registry.register(identity.user_id, self.handle)
            self._ack_signin()
            return

        self.registry.register(identity.user_id, self.handle)
        self.identity = identity
        self.state = ConnectionState.SIGNED_IN
        logger.info("[WS] User %s signed in on handle %s", identity.user_id, self.handle.id)

        self._ack_signin()
        self.coordinator.broadcast(
            ServerEvent.USER_ONLINE, {"userId": identity.user_id}, exclude=identity.user_id
        )

    def _ack_signin(self) -> None:
        self.handle.push(ServerEvent.SIGNED_IN.value, {
            "userId": self.user_id,
            "onlineUsers": sorted(self.registry.snapshot()),
        })

    def _on_send_message(self, event: SendMessageEvent) -> None:
        if event.senderId != self.user_id:
            raise Forbidden("senderId does not match the signed-in user")
        self.coordinator.send(
            sender_id=self.user_id,
            receiver_id=event.receiverId,
            content=event.content,
            message_type=event.messageType,
            origin=self.handle,
        )

    def _on_typing(self, event: TypingEvent) -> None:
        self.coordinator.push_if_online(event.receiverId, ServerEvent.USER_TYPING, {
            "senderId": self.user_id,
            "senderName": event.senderName or self.identity.name,
            "isTyping": event.isTyping,
        })

    def _on_mark_read(self, event: MarkReadEvent) -> None:
        self.coordinator.mark_read(event.messageId, reader_id=self.user_id)

    # =========================================================================
    # Disconnect
    # =========================================================================

    def disconnect(self) -> None:
        """Handle transport close in any state. Safe to call more than once."""
        if self.state is ConnectionState.DISCONNECTED:
            return
        was_signed_in = self.state is ConnectionState.SIGNED_IN
        self.state = ConnectionState.DISCONNECTED
        if not was_signed_in:
            return

        user_id = self.user_id
        if self.registry.unregister(user_id, self.handle):
            logger.info("[WS] User %s disconnected", user_id)
            self.coordinator.broadcast(
                ServerEvent.USER_OFFLINE, {"userId": user_id}, exclude=user_id
            )
        else:
            logger.info(
                "[WS] Stale disconnect for %s on handle %s ignored (newer connection registered)",
                user_id, self.handle.id,
            )
