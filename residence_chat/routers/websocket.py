from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, HTTPException, Query
from typing import Optional
import logging
import json
from datetime import datetime

from ..auth.dependencies import get_current_user, is_staff_user
from ..auth.firebase_auth import firebase_auth
from ..core.config import settings
from ..core.exceptions import MessagingError
from ..services.community_feed_service import get_community_feed_service
from ..services.messaging_service import get_messaging_service
from ..services.websocket_service import connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["websocket"])

# WebSocket endpoint for live chat and community updates
@router.websocket("/chat")
async def websocket_chat(
    websocket: WebSocket,
    token: str = Query(..., description="Firebase ID token")
):
    """WebSocket endpoint streaming conversations, messages and the community feed"""
    user_data = await authenticate_websocket_token(token)
    if not user_data:
        await websocket.close(code=1008, reason="Authentication failed")
        return

    await connection_manager.connect(websocket, user_data.get('uid'), user_data.get('role', 'resident'))

    try:
        while True:
            try:
                data = await websocket.receive_text()
                message = json.loads(data)
                await handle_websocket_message(websocket, user_data, message)
            except json.JSONDecodeError:
                await connection_manager.send_json(websocket, {
                    "type": "error",
                    "message": "Invalid JSON format",
                    "timestamp": datetime.now().isoformat()
                })
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket connection error: {str(e)}")
    finally:
        connection_manager.disconnect(websocket)

async def authenticate_websocket_token(token: str) -> Optional[dict]:
    """Authenticate WebSocket connection using a Firebase ID token"""
    if not token:
        return None
    try:
        return await firebase_auth.verify_token(token)
    except Exception as e:
        logger.error(f"Token authentication error: {str(e)}")
        return None

async def handle_websocket_message(websocket: WebSocket, user_data: dict, message: dict):
    """Handle incoming WebSocket messages"""
    message_type = message.get('type')
    user_id = user_data.get('uid')
    role = user_data.get('role')

    try:
        if message_type == 'ping':
            await connection_manager.send_json(websocket, {
                "type": "pong",
                "timestamp": datetime.now().isoformat()
            })

        elif message_type == 'subscribe_conversation':
            conversation_id = message.get('conversation_id')
            if not conversation_id:
                raise MessagingError("conversation_id is required")
            subscription = await get_messaging_service().stream_messages(conversation_id, user_id, role)
            key = f"conversation:{conversation_id}"
            connection_manager.attach(websocket, key, subscription, "chat_message")
            await _confirm(websocket, key)

        elif message_type == 'subscribe_conversations':
            subscription = await get_messaging_service().watch_conversations(user_id, is_staff_user(user_data))
            connection_manager.attach(websocket, "conversations", subscription, "conversation_list")
            await _confirm(websocket, "conversations")

        elif message_type == 'subscribe_community':
            limit = message.get('limit')
            if limit is None and message.get('compact'):
                limit = settings.COMMUNITY_FEED_COMPACT_LIMIT
            subscription = await get_community_feed_service().stream_recent(limit)
            connection_manager.attach(websocket, "community", subscription, "community_window")
            await _confirm(websocket, "community")

        elif message_type == 'unsubscribe':
            key = message.get('subscription')
            released = connection_manager.detach(websocket, key)
            await connection_manager.send_json(websocket, {
                "type": "unsubscription_confirmed",
                "subscription": key,
                "released": released,
                "timestamp": datetime.now().isoformat()
            })

        else:
            await connection_manager.send_json(websocket, {
                "type": "error",
                "message": f"Unknown message type: {message_type}",
                "timestamp": datetime.now().isoformat()
            })

    except MessagingError as e:
        await connection_manager.send_json(websocket, {
            "type": "error",
            "message": str(e),
            "timestamp": datetime.now().isoformat()
        })
    except Exception as e:
        logger.error(f"Error handling WebSocket message: {str(e)}")
        await connection_manager.send_json(websocket, {
            "type": "error",
            "message": "Failed to process message",
            "timestamp": datetime.now().isoformat()
        })

async def _confirm(websocket: WebSocket, key: str):
    await connection_manager.send_json(websocket, {
        "type": "subscription_confirmed",
        "subscription": key,
        "timestamp": datetime.now().isoformat()
    })

# REST endpoint for WebSocket management
@router.get("/stats")
async def get_websocket_stats(current_user: dict = Depends(get_current_user)):
    """Get WebSocket connection statistics (staff only)"""
    if not is_staff_user(current_user):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    return connection_manager.get_connection_stats()
