"""Direct message HTTP endpoints.

Endpoints:
    GET    /api/messages/unread/count     - Unread messages for the caller
    GET    /api/messages/{other_user_id}  - Conversation history (marks it read)
    POST   /api/messages/send             - Send a message (also pushed live)
    DELETE /api/messages/{message_id}     - Delete for the caller; purge when both have

All writes go through the DeliveryCoordinator so that HTTP and WebSocket
clients see the same pushes and read receipts.
"""
import logging

from fastapi import APIRouter, Depends, Query

from app.auth.service import VerifiedIdentity
from app.dependencies import get_current_user, get_services
from app.services import ChatServices

from .schemas import SendMessageRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("/unread/count")
async def unread_count(
    current: VerifiedIdentity = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
) -> dict:
    return {
        "success": True,
        "unreadCount": services.coordinator.unread_count(current.user_id),
    }


@router.get("/{other_user_id}")
async def get_conversation(
    other_user_id: str,
    markRead: bool = Query(True, description="Mark the other user's messages as read"),
    current: VerifiedIdentity = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
) -> dict:
    """Get the conversation between the caller and another user, oldest first.

    Messages the caller deleted are left out. The returned ``isRead`` values
    are as they were before this request marked anything read.
    """
    messages = services.coordinator.fetch_conversation(
        current.user_id, other_user_id, mark_read=markRead
    )
    logger.info(
        f"[Messages] {len(messages)} messages between {current.user_id} and {other_user_id}"
    )
    return {
        "success": True,
        "messages": [
            {**m.to_payload(), "isMe": m.senderId == current.user_id}
            for m in messages
        ],
    }


@router.post("/send", status_code=201)
async def send_message(
    request: SendMessageRequest,
    current: VerifiedIdentity = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
) -> dict:
    """Send a message as the caller (404 if the receiver does not exist)."""
    message = services.coordinator.send(
        sender_id=current.user_id,
        receiver_id=request.receiverId,
        content=request.content,
        message_type=request.messageType,
    )
    return {
        "success": True,
        "message": "Message sent successfully",
        "data": message.to_payload(),
    }


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    current: VerifiedIdentity = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
) -> dict:
    """Delete a message for the caller (403 for non-participants, 404 if absent)."""
    purged = services.coordinator.delete_for_user(message_id, current.user_id)
    return {
        "success": True,
        "message": "Message deleted successfully",
        "purged": purged,
    }
