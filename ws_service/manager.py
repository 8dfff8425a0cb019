from fastapi import WebSocket
from typing import Dict, Set, List, Optional, Any
import json
from models.helper import id_generator
from settings import logger

new_socket_id = id_generator('sock', 12)


class ConnectionManager:
    """Registry of live WebSocket connections and the project rooms they joined."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.connection_users: Dict[str, str] = {}
        self.rooms: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a new WebSocket connection and return its socket id."""
        await websocket.accept()
        socket_id = new_socket_id()
        self.active_connections[socket_id] = websocket
        logger.info("WebSocket connection established", extra={
            "socket_id": socket_id,
            "total_connections": len(self.active_connections)
        })
        return socket_id

    def disconnect(self, socket_id: str) -> List[str]:
        """Forget a connection. Returns the rooms it was still in."""
        self.active_connections.pop(socket_id, None)
        self.connection_users.pop(socket_id, None)

        left_rooms = []
        for room, members in list(self.rooms.items()):
            if socket_id in members:
                members.discard(socket_id)
                left_rooms.append(room)
                if not members:
                    del self.rooms[room]

        logger.info("WebSocket connection closed", extra={
            "socket_id": socket_id,
            "rooms": left_rooms,
            "total_connections": len(self.active_connections)
        })
        return left_rooms

    def authenticate(self, socket_id: str, user_id: str) -> None:
        self.connection_users[socket_id] = user_id

    def get_user_id(self, socket_id: str) -> Optional[str]:
        return self.connection_users.get(socket_id)

    def socket_ids_for_user(self, user_id: str) -> List[str]:
        return [sid for sid, uid in self.connection_users.items() if uid == user_id]

    def join(self, socket_id: str, room: str) -> None:
        self.rooms.setdefault(room, set()).add(socket_id)

    def leave(self, socket_id: str, room: str) -> bool:
        members = self.rooms.get(room)
        if not members or socket_id not in members:
            return False
        members.discard(socket_id)
        if not members:
            del self.rooms[room]
        return True

    def rooms_of(self, socket_id: str) -> List[str]:
        return [room for room, members in self.rooms.items() if socket_id in members]

    def room_members(self, room: str) -> Set[str]:
        return set(self.rooms.get(room, set()))

    async def send(self, socket_id: str, event: str, data: Any) -> None:
        """Send one event to a specific connection."""
        websocket = self.active_connections.get(socket_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(json.dumps({"event": event, "data": data}, default=str))
        except Exception as e:
            logger.warning("Failed to send event to WebSocket client", extra={
                "socket_id": socket_id,
                "event": event,
                "error": str(e)
            })

    async def emit_to_room(self, room: str, event: str, data: Any, skip_socket_id: Optional[str] = None) -> None:
        """Send an event to every connection in a room, optionally skipping the originator."""
        # Copy, handlers may join/leave while we await sends
        recipients = [sid for sid in self.room_members(room) if sid != skip_socket_id]
        if not recipients:
            logger.debug("No room members to emit to", extra={"room": room, "event": event})
            return

        for socket_id in recipients:
            await self.send(socket_id, event, data)

    def get_connection_count(self) -> int:
        """Get the number of active connections."""
        return len(self.active_connections)
