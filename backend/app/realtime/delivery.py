"""Delivery coordinator: persist, then push to whoever is online.

Delivery guarantee:
    Best effort to an online recipient, otherwise durable at rest. A message
    is stored with ``isDelivered = True`` as soon as the server accepts it;
    "delivered" means "persisted", not "reached the recipient's device".

Every push in the application goes through :meth:`DeliveryCoordinator.push_if_online`
(or :meth:`broadcast`, which uses the same handle primitive), so upgrading
to acknowledged delivery only has to change this module.
"""
import logging
from typing import Any, Dict, List, Optional

from app.errors import Forbidden, MessageNotFound, RecipientNotFound
from app.messages.schemas import Message, MessageType
from app.messages.service import MessageStore
from app.users.service import UserStore

from .connection import ConnectionHandle
from .events import ServerEvent
from .registry import PresenceRegistry

logger = logging.getLogger(__name__)


class DeliveryCoordinator:
    """Routes messages, read receipts and presence notifications."""

    def __init__(
        self,
        registry: PresenceRegistry,
        messages: MessageStore,
        users: UserStore,
    ) -> None:
        self.registry = registry
        self.messages = messages
        self.users = users

    # =========================================================================
    # Push primitives
    # =========================================================================

    def push_if_online(
        self, identity: str, event: ServerEvent, payload: Dict[str, Any]
    ) -> bool:
        """Push one event to *identity* if it has a registered connection.

        Never raises and never waits for the peer: an offline identity, a
        closed handle or a transport failure all just return False.
        """
        handle = self.registry.lookup(identity)
        if handle is None:
            return False
        try:
            return handle.push(ServerEvent(event).value, payload)
        except Exception as e:
            logger.debug(f"[Delivery] Push of {event} to {identity} failed: {e}")
            return False

    def broadcast(
        self,
        event: ServerEvent,
        payload: Dict[str, Any],
        exclude: Optional[str] = None,
    ) -> int:
        """Push to every registered connection except *exclude*.

        Returns:
            Number of connections the frame was queued on.
        """
        queued = 0
        for identity, handle in self.registry.connections(exclude=exclude):
            try:
                if handle.push(ServerEvent(event).value, payload):
                    queued += 1
            except Exception as e:
                logger.debug(f"[Delivery] Broadcast to {identity} failed: {e}")
        return queued

    # =========================================================================
    # Messages
    # =========================================================================

    def send(
        self,
        sender_id: str,
        receiver_id: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        origin: Optional[ConnectionHandle] = None,
    ) -> Message:
        """Persist a message and push it to both participants where online.

        The ``message_sent`` ack goes to *origin*, the connection the message
        came in on, when given; otherwise to the sender's registered
        connection, if any.

        Returns:
            The canonical stored record (server id and timestamp included).

        Raises:
            RecipientNotFound: If *receiver_id* is not a known user.
            TransientStoreFailure: If persisting fails; nothing is pushed.
        """
        if not self.users.exists(receiver_id):
            raise RecipientNotFound(f"Receiver {receiver_id} not found")

        message = self.messages.create(sender_id, receiver_id, content, message_type)
        payload = message.to_payload()

        if self.push_if_online(receiver_id, ServerEvent.RECEIVE_MESSAGE, payload):
            logger.info("[Delivery] Message %s pushed to %s", message.id, receiver_id)
        else:
            logger.info(
                "[Delivery] Receiver %s offline; message %s stored only",
                receiver_id, message.id,
            )

        if origin is not None:
            origin.push(ServerEvent.MESSAGE_SENT.value, payload)
        else:
            self.push_if_online(sender_id, ServerEvent.MESSAGE_SENT, payload)
        return message

    def mark_read(self, message_id: str, reader_id: Optional[str] = None) -> Message:
        """Mark a message read and tell its sender, once.

        Calling this again for an already-read message changes nothing and
        pushes no second receipt. An offline sender simply misses the
        receipt; there is no receipt queue.

        Raises:
            MessageNotFound: If the message does not exist.
            Forbidden: If *reader_id* is given and is not the receiver.
        """
        message = self.messages.get(message_id)
        if message is None:
            raise MessageNotFound(f"Message {message_id} not found")
        if reader_id is not None and reader_id != message.receiverId:
            raise Forbidden("Only the receiver can mark a message as read")

        if self.messages.mark_read(message_id):
            self.push_if_online(
                message.senderId, ServerEvent.MESSAGE_READ, {"messageId": message_id}
            )
        return message.model_copy(update={"isRead": True})

    def delete_for_user(self, message_id: str, acting_user_id: str) -> bool:
        """Hide a message for one participant; purge once both have hidden it.

        Returns:
            True if the record was purged from the store.

        Raises:
            MessageNotFound: If the message does not exist.
            Forbidden: If the actor is neither sender nor receiver.
        """
        message = self.messages.get(message_id)
        if message is None:
            raise MessageNotFound(f"Message {message_id} not found")
        if acting_user_id not in message.participants():
            raise Forbidden("Unauthorized to delete this message")

        hidden_for = self.messages.hide_for(message_id, acting_user_id)
        if message.participants() <= hidden_for:
            self.messages.purge(message_id)
            logger.info("[Delivery] Message %s permanently deleted", message_id)
            return True

        logger.info("[Delivery] Message %s deleted for user %s", message_id, acting_user_id)
        return False

    def fetch_conversation(
        self, user_id: str, other_id: str, mark_read: bool = True
    ) -> List[Message]:
        """Return the conversation as *user_id* sees it, oldest first.

        The returned records reflect the state before this fetch. With
        *mark_read*, everything *other_id* sent to *user_id* is then marked
        read and *other_id* gets one ``message_read`` per newly read message.
        """
        conversation = self.messages.conversation(user_id, other_id)
        if mark_read:
            for message_id in self.messages.mark_conversation_read(user_id, other_id):
                self.push_if_online(
                    other_id, ServerEvent.MESSAGE_READ, {"messageId": message_id}
                )
        return conversation

    def unread_count(self, user_id: str) -> int:
        return self.messages.unread_count(user_id)
