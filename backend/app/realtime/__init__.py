"""Real-time presence and message delivery over WebSockets."""

from .connection import ConnectionHandle
from .delivery import DeliveryCoordinator
from .events import ServerEvent, parse_event
from .lifecycle import ConnectionLifecycleManager, ConnectionState
from .registry import PresenceRegistry

__all__ = [
    "ConnectionHandle",
    "ConnectionLifecycleManager",
    "ConnectionState",
    "DeliveryCoordinator",
    "PresenceRegistry",
    "ServerEvent",
    "parse_event",
]
