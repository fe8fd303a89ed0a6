"""
In-process registry of WebSocket connections.

Every accepted socket gets an entry keyed by a connection id. Authenticated
entries also join a per-user room (``user-<id>``) so that server-side code can
push events to every socket a user has open. All mutation happens on the event
loop, so plain dicts are enough.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

UserResolver = Callable[[str], Optional[str]]


def user_room(user_id: str) -> str:
    return f"user-{user_id}"


def error_frame(message: str) -> Dict[str, Any]:
    return {"event": "error", "message": message}


@dataclass
class ConnectionInfo:
    websocket: WebSocket
    user_id: Optional[str] = None


class RealtimeNotifier:
    def __init__(self, resolve_user: UserResolver):
        self.resolve_user = resolve_user
        self.connections: Dict[str, ConnectionInfo] = {}
        self.rooms: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket, token: Optional[str] = None) -> str:
        """Accept the socket, register it and authenticate it if a token came along."""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = ConnectionInfo(websocket=websocket)
        logger.info(f"Client connected: {connection_id}")

        if token:
            self.authenticate(connection_id, token)
        return connection_id

    def authenticate(self, connection_id: str, token: str) -> Optional[str]:
        """Attach the token's user to the connection; returns the user id or None."""
        info = self.connections.get(connection_id)
        if info is None:
            return None

        try:
            user_id = self.resolve_user(token)
        except Exception as e:
            logger.error(f"Authentication error on {connection_id}: {e}")
            user_id = None

        if user_id is None:
            # a rejected token also ends any earlier session on this connection
            if info.user_id:
                self._leave(connection_id, info.user_id)
                info.user_id = None
            return None

        if info.user_id and info.user_id != user_id:
            self._leave(connection_id, info.user_id)
        info.user_id = user_id
        self.rooms.setdefault(user_room(user_id), set()).add(connection_id)
        logger.info(f"User authenticated: {user_id} on {connection_id}")
        return user_id

    def disconnect(self, connection_id: str) -> None:
        info = self.connections.pop(connection_id, None)
        if info is None:
            return
        if info.user_id:
            self._leave(connection_id, info.user_id)
        logger.info(f"Client disconnected: {connection_id}")

    def _leave(self, connection_id: str, user_id: str) -> None:
        room = self.rooms.get(user_room(user_id))
        if room is None:
            return
        room.discard(connection_id)
        if not room:
            del self.rooms[user_room(user_id)]

    def is_authenticated(self, connection_id: str) -> bool:
        info = self.connections.get(connection_id)
        return info is not None and info.user_id is not None

    def handle_message(self, connection_id: str, event: Optional[str], data: Any) -> Dict[str, Any]:
        """Build the reply frame for an inbound event."""
        if event != "message":
            return error_frame(f"Unknown event: {event}")

        info = self.connections.get(connection_id)
        if info is None or info.user_id is None:
            return error_frame("Unauthorized")

        logger.info(f"Message from user {info.user_id}: {data}")
        return {"event": "message", "data": data}

    async def send_to_user(self, user_id: str, event: str, data: Any) -> int:
        """Push an event to every socket of ``user_id``; returns the delivery count."""
        connection_ids = list(self.rooms.get(user_room(str(user_id)), ()))
        return await self._send(connection_ids, event, data)

    async def broadcast_to_authenticated(self, event: str, data: Any) -> int:
        connection_ids = [
            connection_id
            for connection_id, info in self.connections.items()
            if info.user_id is not None
        ]
        return await self._send(connection_ids, event, data)

    async def _send(self, connection_ids, event: str, data: Any) -> int:
        delivered = 0
        for connection_id in connection_ids:
            info = self.connections.get(connection_id)
            if info is None:
                continue
            try:
                await info.websocket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to deliver '{event}' to {connection_id}: {e}")
        return delivered
