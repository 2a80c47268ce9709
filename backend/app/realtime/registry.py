"""Presence registry: which identity is online, and on which connection.

The registry is the source of truth for "is this user online right now".
Keys are user identities and each maps to exactly one connection handle;
a reconnect overwrites the previous handle (last write wins). Nothing here
is persisted, so every user starts offline after a restart.

All operations hold a lock for a constant-time dictionary operation (or a
copy, for snapshots) and never perform I/O.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

from .connection import ConnectionHandle

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Process-wide mapping of user identity to live connection handle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: Dict[str, ConnectionHandle] = {}
        self._last_seen: Dict[str, datetime] = {}

    def register(self, identity: str, handle: ConnectionHandle) -> Optional[ConnectionHandle]:
        """Map *identity* to *handle*, replacing any previous handle.

        Returns:
            The handle that was replaced, if any. It is not closed.
        """
        with self._lock:
            previous = self._connections.get(identity)
            self._connections[identity] = handle
        if previous is not None and previous is not handle:
            logger.info(
                "[Presence] %s reconnected on %s (replaces %s)",
                identity, handle.id, previous.id,
            )
        return previous

    def unregister(self, identity: str, handle: ConnectionHandle) -> bool:
        """Remove *identity* only if it is still mapped to *handle*.

        A late disconnect from a replaced connection must not evict the
        newer registration, so a mismatch is a silent no-op.

        Returns:
            True if the entry was removed.
        """
        with self._lock:
            if self._connections.get(identity) is not handle:
                return False
            del self._connections[identity]
            self._last_seen[identity] = datetime.now(timezone.utc)
        return True

    def lookup(self, identity: str) -> Optional[ConnectionHandle]:
        with self._lock:
            return self._connections.get(identity)

    def is_online(self, identity: str) -> bool:
        with self._lock:
            return identity in self._connections

    def snapshot(self) -> FrozenSet[str]:
        """Identities registered at this instant (not kept in sync afterwards)."""
        with self._lock:
            return frozenset(self._connections)

    def connections(self, exclude: Optional[str] = None) -> List[Tuple[str, ConnectionHandle]]:
        """Point-in-time list of ``(identity, handle)`` pairs, for fan-out."""
        with self._lock:
            return [
                (identity, handle)
                for identity, handle in self._connections.items()
                if identity != exclude
            ]

    def last_seen(self, identity: str) -> Optional[datetime]:
        """When *identity* last went offline, or None if online / unknown."""
        with self._lock:
            if identity in self._connections:
                return None
            return self._last_seen.get(identity)

    def clear(self) -> None:
        with self._lock:
            self._connections.clear()
            self._last_seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
