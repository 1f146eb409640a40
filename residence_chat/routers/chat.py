"""
Chat Router - API endpoints for direct resident/staff messaging
"""

from fastapi import APIRouter, HTTPException, Depends, Query, UploadFile, File
from typing import Optional
from datetime import datetime
import logging

from ..auth.dependencies import get_current_user, is_staff_user
from ..core.exceptions import MessagingError
from ..models.chat_models import OpenConversationRequest, SendMessageRequest
from ..services.messaging_service import get_messaging_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

# ===== Conversation Endpoints =====

@router.post("/conversations")
async def open_conversation(
    request: OpenConversationRequest,
    current_user: dict = Depends(get_current_user)
):
    """Open the resident's conversation with staff, creating it on first use"""
    try:
        messaging_service = get_messaging_service()

        conversation = await messaging_service.open_conversation(
            caller_id=current_user.get('uid'),
            caller_role=current_user.get('role'),
            resident_id=request.resident_id
        )

        return {
            "success": True,
            "data": conversation,
            "message": "Conversation created or retrieved successfully"
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error opening conversation: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/conversations")
async def list_conversations(
    search: Optional[str] = Query(None, description="Filter staff listings by resident name or id"),
    current_user: dict = Depends(get_current_user)
):
    """List conversations, most recent first (all of them for staff)"""
    try:
        messaging_service = get_messaging_service()

        conversations = await messaging_service.list_conversations(
            user_id=current_user.get('uid'),
            is_staff=is_staff_user(current_user),
            search=search
        )

        return {
            "success": True,
            "data": conversations,
            "count": len(conversations)
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error listing conversations: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    current_user: dict = Depends(get_current_user)
):
    """Get a specific conversation"""
    try:
        messaging_service = get_messaging_service()

        conversation = await messaging_service.get_conversation_for(
            conversation_id,
            current_user.get('uid'),
            current_user.get('role')
        )

        return {
            "success": True,
            "data": conversation
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting conversation: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

# ===== Message Endpoints =====

@router.get("/conversations/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    before: Optional[str] = Query(None, description="ISO timestamp to get messages before"),
    before_sequence: Optional[int] = Query(None, description="Sequence of the message at `before`, for exact paging"),
    current_user: dict = Depends(get_current_user)
):
    """Get the message history of a conversation, oldest first"""
    try:
        messaging_service = get_messaging_service()

        before_timestamp = None
        if before:
            try:
                before_timestamp = datetime.fromisoformat(before.replace('Z', '+00:00'))
            except ValueError:
                raise HTTPException(status_code=400, detail="Invalid timestamp format")

        messages = await messaging_service.get_messages(
            conversation_id,
            current_user.get('uid'),
            current_user.get('role'),
            limit=limit,
            before=before_timestamp,
            before_sequence=before_sequence
        )

        return {
            "success": True,
            "data": messages,
            "count": len(messages)
        }

    except HTTPException:
        raise
    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting messages: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    current_user: dict = Depends(get_current_user)
):
    """Send a text message"""
    try:
        messaging_service = get_messaging_service()

        message = await messaging_service.send(
            conversation_id,
            current_user.get('uid'),
            request.content,
            sender_role=current_user.get('role')
        )

        return {
            "success": True,
            "data": message,
            "message": "Message sent successfully"
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending message: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/conversations/{conversation_id}/media")
async def send_media(
    conversation_id: str,
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user)
):
    """Send an image or video"""
    try:
        messaging_service = get_messaging_service()

        data = await file.read()
        message = await messaging_service.send_media(
            conversation_id,
            current_user.get('uid'),
            file.filename,
            data,
            content_type=file.content_type,
            sender_role=current_user.get('role')
        )

        return {
            "success": True,
            "data": message,
            "message": "Media sent successfully"
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending media: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/conversations/{conversation_id}/read")
async def mark_read(
    conversation_id: str,
    current_user: dict = Depends(get_current_user)
):
    """Mark a conversation as read by the caller"""
    try:
        messaging_service = get_messaging_service()
        user_id = current_user.get('uid')

        await messaging_service.get_conversation_for(conversation_id, user_id, current_user.get('role'))
        updated = await messaging_service.mark_read(conversation_id, user_id, current_user.get('role'))

        return {
            "success": True,
            "updated": updated
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error marking conversation as read: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

# ===== Utility Endpoints =====

@router.get("/unread-count")
async def get_unread_count(
    current_user: dict = Depends(get_current_user)
):
    """Number of conversations waiting on the caller"""
    try:
        messaging_service = get_messaging_service()

        count = await messaging_service.unread_total(
            current_user.get('uid'),
            is_staff_user(current_user)
        )

        return {
            "success": True,
            "data": {
                "unread_count": count
            }
        }

    except MessagingError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Error getting unread count: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
