# ============================================================================
# CLINICDESK Messaging — WebSocket Broadcaster
# ============================================================================
# Pushes real-time events (reminder alerts) to a user's connected browser
# sessions.
# ============================================================================

from fastapi import WebSocket
from typing import Dict, Optional, Set
import asyncio
import logging
from datetime import datetime

logger = logging.getLogger(__name__)


class MessageBroadcaster:
    """
    Manages WebSocket connections per user and fans events out to them.
    """

    def __init__(self):
        # Map user_id -> set of WebSocket connections
        self._connections: Dict[str, Set[WebSocket]] = {}
        # Map WebSocket -> user_id
        self._ws_to_user: Dict[WebSocket, str] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: str):
        """Register a new WebSocket connection for a user."""
        await websocket.accept()

        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
            self._ws_to_user[websocket] = user_id

        logger.info(f"[WS] User {user_id} connected. Total connections: {self.connection_count()}")

        await self._send_to_websocket(websocket, {
            "type": "connected",
            "user_id": user_id,
            "timestamp": datetime.now().isoformat(),
        })

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection."""
        async with self._lock:
            user_id = self._ws_to_user.pop(websocket, None)
            if user_id and user_id in self._connections:
                self._connections[user_id].discard(websocket)
                if not self._connections[user_id]:
                    del self._connections[user_id]

        logger.info(f"[WS] User {user_id} disconnected. Total connections: {self.connection_count()}")

    def connection_count(self) -> int:
        """Count total active connections."""
        return sum(len(conns) for conns in self._connections.values())

    async def _send_to_websocket(self, ws: WebSocket, data: Dict) -> bool:
        """Send data to a single WebSocket."""
        try:
            await ws.send_json(data)
            return True
        except Exception as e:
            logger.warning(f"[WS] Send failed: {e}")
            return False

    async def send_to_user(self, user_id: str, event_type: str, data: Dict) -> int:
        """Send event to all connections for a specific user."""
        message = {
            "type": event_type,
            "timestamp": datetime.now().isoformat(),
            **data
        }

        async with self._lock:
            connections = self._connections.get(user_id, set()).copy()

        sent_count = 0
        failed_connections = []
        for ws in connections:
            if await self._send_to_websocket(ws, message):
                sent_count += 1
            else:
                failed_connections.append(ws)

        for ws in failed_connections:
            await self.disconnect(ws)

        return sent_count


_broadcaster: Optional[MessageBroadcaster] = None


def get_broadcaster() -> MessageBroadcaster:
    """Get or create the singleton broadcaster instance."""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = MessageBroadcaster()
    return _broadcaster
