"""UserStore: DuckDB-backed user records."""
import logging
import uuid
from typing import List, Optional

from app.database import Database, as_utc, utc_now
from app.errors import Conflict

from .schemas import UserRecord, UserRole

logger = logging.getLogger(__name__)

_COLUMNS = [
    "id", "name", "email", "password_hash", "role", "bio",
    "profile_picture", "created_at",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM users"


class UserStore:
    """CRUD over the ``users`` table. Emails are stored lower-cased."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = "user",
    ) -> UserRecord:
        email = email.strip().lower()
        if self.get_by_email(email) is not None:
            raise Conflict("Email already registered")

        user_id = uuid.uuid4().hex
        try:
            self._db.execute(
                """
                INSERT INTO users (id, name, email, password_hash, role, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [user_id, name.strip(), email, password_hash, role, utc_now()],
            )
        except Conflict:
            # Lost a race with a concurrent registration for the same email
            raise Conflict("Email already registered")
        logger.info("[Users] Created %s <%s>", user_id, email)
        return self.get(user_id)

    def get(self, user_id: str) -> Optional[UserRecord]:
        row = self._db.fetchone(f"{_SELECT} WHERE id = ?", [user_id])
        return self._row_to_record(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserRecord]:
        row = self._db.fetchone(
            f"{_SELECT} WHERE email = ?", [email.strip().lower()]
        )
        return self._row_to_record(row) if row else None

    def exists(self, user_id: str) -> bool:
        return self._db.fetchone(
            "SELECT 1 FROM users WHERE id = ?", [user_id]
        ) is not None

    def list_all(self, exclude_id: Optional[str] = None) -> List[UserRecord]:
        rows = self._db.fetchall(f"{_SELECT} ORDER BY name ASC")
        return [
            self._row_to_record(r) for r in rows
            if exclude_id is None or r[0] != exclude_id
        ]

    def count(self, role: Optional[UserRole] = None) -> int:
        if role is None:
            row = self._db.fetchone("SELECT COUNT(*) FROM users")
        else:
            row = self._db.fetchone("SELECT COUNT(*) FROM users WHERE role = ?", [role])
        return int(row[0]) if row else 0

    def list_recent(self, limit: int = 5) -> List[UserRecord]:
        """Newest accounts first."""
        rows = self._db.fetchall(
            f"{_SELECT} ORDER BY created_at DESC LIMIT ?", [limit]
        )
        return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row) -> UserRecord:
        record = dict(zip(_COLUMNS, row))
        record["created_at"] = as_utc(record["created_at"])
        return UserRecord(**record)
