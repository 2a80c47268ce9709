"""MessageStore: DuckDB-backed message records with per-user soft delete.

Hidden markers live in ``message_hidden`` (one row per message/user pair),
so adding the same user twice is a no-op. The store only records state;
deciding when to purge belongs to the delivery layer.
"""
import logging
import uuid
from typing import List, Optional, Set

from app.database import Database, as_utc, utc_now

from .schemas import Message, MessageType

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT m.id, m.sender_id, COALESCE(s.name, ''), m.receiver_id,
           COALESCE(r.name, ''), m.content, m.message_type, m.is_read,
           m.is_delivered, m.created_at
    FROM messages m
    LEFT JOIN users s ON s.id = m.sender_id
    LEFT JOIN users r ON r.id = m.receiver_id
"""

_FIELDS = [
    "id", "senderId", "senderName", "receiverId", "receiverName", "content",
    "messageType", "isRead", "isDelivered", "createdAt",
]


class MessageStore:
    """CRUD over the ``messages`` and ``message_hidden`` tables."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(
        self,
        sender_id: str,
        receiver_id: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
    ) -> Message:
        message_id = uuid.uuid4().hex
        self._db.execute(
            """
            INSERT INTO messages
              (id, sender_id, receiver_id, content, message_type,
               is_read, is_delivered, created_at)
            VALUES (?, ?, ?, ?, ?, FALSE, TRUE, ?)
            """,
            [
                message_id, sender_id, receiver_id, content,
                MessageType(message_type).value, utc_now(),
            ],
        )
        return self.get(message_id)

    def get(self, message_id: str) -> Optional[Message]:
        row = self._db.fetchone(f"{_SELECT} WHERE m.id = ?", [message_id])
        return self._row_to_message(row) if row else None

    def mark_read(self, message_id: str) -> bool:
        """Set ``is_read``; return True only if this call flipped it."""
        row = self._db.fetchone(
            "UPDATE messages SET is_read = TRUE "
            "WHERE id = ? AND is_read = FALSE RETURNING id",
            [message_id],
        )
        return row is not None

    def mark_conversation_read(self, reader_id: str, other_id: str) -> List[str]:
        """Mark everything *other_id* sent to *reader_id* as read.

        Returns:
            IDs of the messages that were unread before this call.
        """
        rows = self._db.fetchall(
            """
            UPDATE messages SET is_read = TRUE
            WHERE sender_id = ? AND receiver_id = ? AND is_read = FALSE
            RETURNING id
            """,
            [other_id, reader_id],
        )
        return [r[0] for r in rows]

    def conversation(self, user_id: str, other_id: str) -> List[Message]:
        """Messages between two users that *user_id* has not hidden, oldest first."""
        rows = self._db.fetchall(
            f"""
            {_SELECT}
            WHERE ((m.sender_id = ? AND m.receiver_id = ?)
                OR (m.sender_id = ? AND m.receiver_id = ?))
              AND NOT EXISTS (
                  SELECT 1 FROM message_hidden h
                  WHERE h.message_id = m.id AND h.user_id = ?
              )
            ORDER BY m.created_at ASC, m.seq ASC
            """,
            [user_id, other_id, other_id, user_id, user_id],
        )
        return [self._row_to_message(r) for r in rows]

    def hide_for(self, message_id: str, user_id: str) -> Set[str]:
        """Add *user_id* to the message's hide set and return the whole set."""
        self._db.execute(
            "INSERT INTO message_hidden (message_id, user_id) VALUES (?, ?) "
            "ON CONFLICT DO NOTHING",
            [message_id, user_id],
        )
        rows = self._db.fetchall(
            "SELECT user_id FROM message_hidden WHERE message_id = ?",
            [message_id],
        )
        return {r[0] for r in rows}

    def purge(self, message_id: str) -> bool:
        """Remove the message and its hide markers. Returns False if already gone."""
        self._db.execute(
            "DELETE FROM message_hidden WHERE message_id = ?", [message_id]
        )
        row = self._db.fetchone(
            "DELETE FROM messages WHERE id = ? RETURNING id", [message_id]
        )
        return row is not None

    def unread_count(self, user_id: str) -> int:
        row = self._db.fetchone(
            """
            SELECT COUNT(*) FROM messages m
            WHERE m.receiver_id = ? AND m.is_read = FALSE
              AND NOT EXISTS (
                  SELECT 1 FROM message_hidden h
                  WHERE h.message_id = m.id AND h.user_id = ?
              )
            """,
            [user_id, user_id],
        )
        return int(row[0]) if row else 0

    @staticmethod
    def _row_to_message(row) -> Message:
        record = dict(zip(_FIELDS, row))
        record["createdAt"] = as_utc(record["createdAt"])
        return Message(**record)
