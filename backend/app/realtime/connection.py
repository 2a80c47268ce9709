"""Connection handle: one live WebSocket plus its outbound queue.

Pushing to a handle never awaits the remote peer. Frames are put on a
bounded queue and a per-connection writer task sends them in FIFO order,
so a slow or dead client cannot stall whoever is pushing to it.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 256


class ConnectionHandle:
    """Addressable end of one client's WebSocket.

    Attributes:
        id: Server-assigned handle id (for logs).
        websocket: The underlying connection.
    """

    def __init__(self, websocket: WebSocket, outbox_size: int = DEFAULT_OUTBOX_SIZE) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.websocket = websocket
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self._writer: Optional[asyncio.Task] = None
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def start(self) -> None:
        """Start the writer task. Must be called from the event loop."""
        if self._writer is None:
            self._writer = asyncio.get_running_loop().create_task(self._drain())

    def push(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Queue a frame for delivery.

        Returns:
            True if the frame was queued, False if the handle is closed or
            its outbox is full (the frame is dropped).
        """
        if not self._open:
            return False
        frame = {"type": event_type, **(payload or {})}
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "[WS] Outbox full on handle %s, dropping %s", self.id, event_type
            )
            return False
        return True

    async def _drain(self) -> None:
        while True:
            frame = await self._outbox.get()
            try:
                await self.websocket.send_json(frame)
            except Exception as e:
                logger.debug(f"[WS] Send failed on handle {self.id}: {e}")
                self._open = False
                return

    async def close(self) -> None:
        """Stop accepting pushes and cancel the writer task."""
        self._open = False
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

    def __repr__(self) -> str:
        return f"ConnectionHandle(id={self.id!r}, open={self._open})"
