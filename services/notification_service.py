"""
Real-time notification fan-out over WebSocket connections.

Tracks live sockets per user, enforces the per-user concurrent connection
cap, and pushes ``{type, data, timestamp}`` messages to one user or to all.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Live WebSocket connections keyed by user id."""

    def __init__(self, max_connections_per_user: int = 3):
        self.max_connections_per_user = max_connections_per_user
        self._connections: Dict[str, List[WebSocket]] = {}
        self._profiles: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def connection_count(self, user_id: str) -> int:
        return len(self._connections.get(user_id, []))

    def online_users(self) -> List[Dict[str, Any]]:
        return [dict(profile) for user_id, profile in self._profiles.items() if self._connections.get(user_id)]

    def online_user_ids(self) -> Set[str]:
        return {user_id for user_id, sockets in self._connections.items() if sockets}

    async def register(self, user_id: str, websocket: WebSocket, profile: Optional[Dict[str, Any]] = None) -> bool:
        """Add a connection; False when the user is already at the cap."""
        async with self._lock:
            sockets = self._connections.setdefault(user_id, [])
            if len(sockets) >= self.max_connections_per_user:
                return False
            sockets.append(websocket)
            self._profiles[user_id] = {"id": user_id, **(profile or {})}
            total = len(sockets)

        logger.info(f"🔌 [WS] User {user_id} connected ({total}/{self.max_connections_per_user})")
        await self.broadcast_online_users()
        return True

    def _discard(self, user_id: str, websocket: WebSocket) -> None:
        # Caller holds the lock.
        sockets = self._connections.get(user_id, [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self._connections.pop(user_id, None)
            self._profiles.pop(user_id, None)

    async def unregister(self, user_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._discard(user_id, websocket)

        logger.info(f"🔌 [WS] User {user_id} disconnected")
        await self.broadcast_online_users()

    @staticmethod
    def _message(event: str, data: Any) -> Dict[str, Any]:
        return {
            "type": event,
            "data": jsonable_encoder(data),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def _send(self, user_id: str, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"⚠️ [WS] Dropping dead connection for {user_id}: {e}")
            async with self._lock:
                self._discard(user_id, websocket)
            return False

    async def notify_user(self, user_id: str, event: str, data: Any) -> int:
        message = self._message(event, data)
        delivered = 0
        for websocket in list(self._connections.get(user_id, [])):
            if await self._send(user_id, websocket, message):
                delivered += 1
        return delivered

    async def notify_all(self, event: str, data: Any) -> int:
        message = self._message(event, data)
        delivered = 0
        for user_id, sockets in list(self._connections.items()):
            for websocket in list(sockets):
                if await self._send(user_id, websocket, message):
                    delivered += 1
        logger.debug(f"[WS] {event} delivered to {delivered} connections")
        return delivered

    async def broadcast_online_users(self) -> int:
        return await self.notify_all("online_users", self.online_users())
