"""DuckDB connection shared by the user and message stores.

DuckDB connections are not safe for concurrent use, so every statement goes
through :meth:`Database.execute` / :meth:`Database.fetchone` /
:meth:`Database.fetchall`, which serialise access with a lock. Driver errors
are re-raised as :class:`~app.errors.TransientStoreFailure`, except
constraint violations, which become :class:`~app.errors.Conflict`.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import duckdb

from app.errors import Conflict, TransientStoreFailure

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id              VARCHAR PRIMARY KEY,
        name            VARCHAR NOT NULL,
        email           VARCHAR NOT NULL UNIQUE,
        password_hash   VARCHAR NOT NULL,
        role            VARCHAR NOT NULL DEFAULT 'user',
        bio             VARCHAR NOT NULL DEFAULT '',
        profile_picture VARCHAR NOT NULL DEFAULT '',
        created_at      TIMESTAMP NOT NULL
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS messages (
        id           VARCHAR PRIMARY KEY,
        seq          BIGINT DEFAULT nextval('messages_seq'),
        sender_id    VARCHAR NOT NULL,
        receiver_id  VARCHAR NOT NULL,
        content      VARCHAR NOT NULL,
        message_type VARCHAR NOT NULL DEFAULT 'text',
        is_read      BOOLEAN NOT NULL DEFAULT FALSE,
        is_delivered BOOLEAN NOT NULL DEFAULT TRUE,
        created_at   TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender_id, receiver_id)",
    """
    CREATE TABLE IF NOT EXISTS message_hidden (
        message_id VARCHAR NOT NULL,
        user_id    VARCHAR NOT NULL,
        PRIMARY KEY (message_id, user_id)
    )
    """,
)


def utc_now() -> datetime:
    """Current time as naive UTC, the form stored in TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Tag a naive UTC value read back from the store with its timezone."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class Database:
    """Owns the DuckDB connection for the lifetime of the application."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(path)
        for statement in _SCHEMA:
            self._conn.execute(statement)
        logger.info("[Database] Initialized with db=%s", path)

    def _run(self, sql: str, params: Sequence[Any], fetch: str) -> Any:
        with self._lock:
            if self._conn is None:
                raise TransientStoreFailure("Database connection is closed")
            try:
                cursor = self._conn.execute(sql, list(params))
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
                return None
            except duckdb.ConstraintException as exc:
                raise Conflict(f"Constraint violated: {exc}") from exc
            except duckdb.Error as exc:
                logger.error("[Database] Statement failed: %s", exc)
                raise TransientStoreFailure(f"Storage error: {exc}") from exc

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        self._run(sql, params, fetch="none")

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        return self._run(sql, params, fetch="one")

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        return self._run(sql, params, fetch="all")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
