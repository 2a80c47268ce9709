"""Real-time router providing the WebSocket endpoint and presence queries.

This module provides:
    - WebSocket /ws: Presence and message delivery
    - GET /api/presence: Identities currently online

Protocol Flow:
    1. Client connects to /ws (optionally ?token=<jwt>)
       → an invalid token closes the socket with 1008 before accepting
    2. Client sends: {type: "signin", userId, token?}
       → Server sends: {type: "signed_in", userId, onlineUsers}
       → Server broadcasts: {type: "user_online", userId}
    3. Client sends: {type: "send_message", senderId, receiverId, content}
       → Recipient (if online): {type: "receive_message", ...message}
       → Sender: {type: "message_sent", ...message} or {type: "message_error", error, code}
    4. Client sends: {type: "typing", receiverId, isTyping}
       → Recipient (if online): {type: "user_typing", senderId, senderName, isTyping}
    5. Client sends: {type: "mark_read", messageId}
       → Sender (if online): {type: "message_read", messageId}
    6. On disconnect → Server broadcasts: {type: "user_offline", userId}
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from app.auth.service import VerifiedIdentity
from app.dependencies import get_current_user, get_services
from app.errors import Unauthenticated
from app.services import ChatServices

from .connection import ConnectionHandle
from .lifecycle import ConnectionLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/presence", tags=["presence"])
async def list_online(
    current: VerifiedIdentity = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
) -> dict:
    """Identities with an open real-time connection at this instant."""
    return {"success": True, "online": sorted(services.registry.snapshot())}


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Bearer token used by signin"),
) -> None:
    """WebSocket endpoint handling one client's whole connection lifecycle.

    Args:
        websocket: The WebSocket connection.
        token: Optional JWT; verified here and reused by ``signin``.
    """
    services: ChatServices = websocket.app.state.services

    if token is not None:
        try:
            services.resolver.resolve(token)
        except Unauthenticated as exc:
            logger.warning("[WS] Rejecting connection: %s", exc.message)
            await websocket.close(code=1008)  # 1008 = Policy Violation
            return

    await websocket.accept()
    handle = ConnectionHandle(
        websocket, outbox_size=services.config.realtime.outbound_queue_size
    )
    handle.start()
    lifecycle = ConnectionLifecycleManager(
        handle=handle,
        coordinator=services.coordinator,
        resolver=services.resolver,
        connect_token=token,
    )
    logger.info("[WS] Connection accepted on handle %s", handle.id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            lifecycle.handle_frame(raw)
    except WebSocketDisconnect:
        pass
    finally:
        lifecycle.disconnect()
        await handle.close()
        logger.info(
            "[WS] Handle %s closed; %d users online",
            handle.id, len(services.registry),
        )
