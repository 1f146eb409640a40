from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from typing import Dict, Set, Any
import asyncio
import json
import logging
from datetime import datetime
from uuid import uuid4

from .subscription_service import Subscription

logger = logging.getLogger(__name__)

class ConnectionManager:
    """
    WebSocket connection manager.

    Each socket owns the live subscriptions it asked for; they are forwarded
    by one task apiece and released when the client unsubscribes or the
    socket goes away.
    """

    def __init__(self):
        # Store active connections by user_id
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        # Store connection metadata
        self.connection_metadata: Dict[WebSocket, Dict[str, Any]] = {}
        # Subscriptions forwarded to each socket, keyed by client-facing name
        self.socket_subscriptions: Dict[WebSocket, Dict[str, tuple]] = {}

    async def connect(self, websocket: WebSocket, user_id: str, user_role: str):
        """Accept a WebSocket connection and store user info"""
        await websocket.accept()

        self.active_connections.setdefault(user_id, set()).add(websocket)
        self.connection_metadata[websocket] = {
            "user_id": user_id,
            "user_role": user_role,
            "connected_at": datetime.now(),
            "connection_id": str(uuid4())
        }
        self.socket_subscriptions[websocket] = {}

        logger.info(f"WebSocket connected: user_id={user_id}, role={user_role}")

        await self.send_json(websocket, {
            "type": "connection_confirmed",
            "message": "WebSocket connection established",
            "timestamp": datetime.now().isoformat(),
            "user_id": user_id
        })

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection and release its subscriptions"""
        for key in list(self.socket_subscriptions.get(websocket, {})):
            self.detach(websocket, key)
        self.socket_subscriptions.pop(websocket, None)

        metadata = self.connection_metadata.pop(websocket, None)
        if metadata:
            user_id = metadata["user_id"]
            if user_id in self.active_connections:
                self.active_connections[user_id].discard(websocket)
                if not self.active_connections[user_id]:
                    del self.active_connections[user_id]

            logger.info(f"WebSocket disconnected: user_id={user_id}")

    async def send_json(self, websocket: WebSocket, message: Dict[str, Any]):
        await websocket.send_text(json.dumps(jsonable_encoder(message), default=str))

    def attach(self, websocket: WebSocket, key: str, subscription: Subscription, event_type: str):
        """Forward a subscription to a socket, replacing any previous one under the same key"""
        if key in self.socket_subscriptions.get(websocket, {}):
            self.detach(websocket, key)

        task = asyncio.create_task(self._forward(websocket, key, subscription, event_type))
        self.socket_subscriptions.setdefault(websocket, {})[key] = (subscription, task)

    def detach(self, websocket: WebSocket, key: str) -> bool:
        entry = self.socket_subscriptions.get(websocket, {}).pop(key, None)
        if entry is None:
            return False
        subscription, task = entry
        subscription.close()
        if not task.done():
            task.cancel()
        return True

    async def _forward(self, websocket: WebSocket, key: str, subscription: Subscription, event_type: str):
        try:
            async for record in subscription:
                await self.send_json(websocket, {
                    "type": event_type,
                    "subscription": key,
                    "data": record,
                    "timestamp": datetime.now().isoformat()
                })
            if subscription.overflowed:
                # Client is expected to subscribe again for a fresh snapshot
                await self.send_json(websocket, {
                    "type": "subscription_closed",
                    "subscription": key,
                    "reason": "overflow",
                    "timestamp": datetime.now().isoformat()
                })
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Dropping subscription {key}: {str(e)}")
            subscription.close()

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get statistics about active connections"""
        total_connections = sum(len(connections) for connections in self.active_connections.values())
        total_subscriptions = sum(len(subs) for subs in self.socket_subscriptions.values())

        return {
            "total_connections": total_connections,
            "total_users": len(self.active_connections),
            "total_subscriptions": total_subscriptions,
            "timestamp": datetime.now().isoformat()
        }

# Create global instance
connection_manager = ConnectionManager()
