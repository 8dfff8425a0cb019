"""
Real-time chat and presence over WebSocket.

Clients send `{"event": <name>, "data": {...}}` frames; the engine answers
with frames of the same shape. Rooms are keyed by project id. Every event
except `authenticate` and `ping` needs an authenticated connection.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional
from fastapi import WebSocket
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from pydantic import ValidationError as SchemaValidationError
from database import new_session
from models.auth import User
from models.helper import utcnow
from helpers.auth import resolve_token, resolve_user
from helpers.errors import AppError, AuthenticationError, ValidationError
from apis.schemas.messages import ChatMessageResponse, SocketMessageRequest
from services import membership, messages
from settings import logger, TYPING_TIMEOUT_SECONDS
from .manager import ConnectionManager
from .typing_registry import TypingEntry, TypingRegistry

Handler = Callable[[str, Dict[str, Any]], Awaitable[None]]

PUBLIC_EVENTS = {"authenticate", "ping"}

# Board changes are made through REST; the client relays them to the room
TASK_RELAY_EVENTS = ("task-created", "task-updated", "task-moved")


def timestamp() -> str:
    return utcnow().isoformat()


def describe_failure(error: Exception) -> str:
    if isinstance(error, AppError):
        return error.message
    if isinstance(error, SQLAlchemyError):
        return "Database operation failed"
    return "Invalid message data"


def project_id_of(data: Dict[str, Any]) -> Optional[str]:
    """The event's projectId, or None when absent. Rooms are keyed by string ids only."""
    project_id = data.get("projectId")
    if project_id is not None and not isinstance(project_id, str):
        raise ValidationError("Project ID must be a string")
    return project_id or None


class ChatEngine:
    """Connection registry, rooms and typing state of one application instance."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = new_session,
        typing_timeout: float = TYPING_TIMEOUT_SECONDS
    ):
        self.manager = ConnectionManager()
        self.typing = TypingRegistry(typing_timeout)
        self.session_factory = session_factory
        # Persist and broadcast of one room happen under its lock, so every
        # member receives new-message events in persistence order
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._room_lock_users: Dict[str, int] = {}
        self._handlers: Dict[str, Handler] = {
            "authenticate": self.on_authenticate,
            "join-project": self.on_join_project,
            "leave-project": self.on_leave_project,
            "send-message": self.on_send_message,
            "typing-start": self.on_typing_start,
            "typing-stop": self.on_typing_stop,
            "message-delivered": self.on_message_delivered,
            "message-read": self.on_message_read,
            "send-notification": self.on_send_notification,
            "ping": self.on_ping,
        }
        for event in TASK_RELAY_EVENTS:
            self._handlers[event] = self._task_relay(event)

    async def connect(self, websocket: WebSocket) -> str:
        socket_id = await self.manager.connect(websocket)
        await self.manager.send(socket_id, "connection-established", {
            "socketId": socket_id,
            "timestamp": timestamp()
        })
        return socket_id

    async def handle_event(self, socket_id: str, event: str, data: Any) -> None:
        """Dispatch one client event. Errors go back to the originating connection only."""
        handler = self._handlers.get(event)
        if handler is None:
            await self.manager.send(socket_id, "error", {"message": f"Unknown event: {event}"})
            return

        if event not in PUBLIC_EVENTS and not self.manager.get_user_id(socket_id):
            await self.manager.send(socket_id, "authentication-error", {"message": "Authentication required"})
            return

        if not isinstance(data, dict):
            data = {}

        try:
            await handler(socket_id, data)
        except AppError as e:
            await self.manager.send(socket_id, "error", {"message": e.message})
        except SQLAlchemyError as e:
            logger.error("Database error in socket handler", extra={
                "socket_id": socket_id,
                "event": event,
                "error": str(e)
            })
            await self.manager.send(socket_id, "error", {"message": "Database operation failed"})

    async def handle_disconnect(self, socket_id: str) -> None:
        """Drop the connection, clear its typing entries and tell its rooms."""
        user_id = self.manager.get_user_id(socket_id)

        for entry in self.typing.clear_socket(socket_id):
            await self._emit_typing(entry.project_id, entry.user_id, entry.username, False, skip_socket_id=socket_id)

        left_rooms = self.manager.disconnect(socket_id)
        if not user_id:
            return

        for room in left_rooms:
            await self.manager.emit_to_room(room, "user-disconnected", {
                "userId": user_id,
                "socketId": socket_id,
                "timestamp": timestamp()
            })

    def get_stats(self) -> Dict[str, Any]:
        return {
            "activeConnections": self.manager.get_connection_count(),
            "authenticatedConnections": len(self.manager.connection_users),
            "rooms": {room: len(members) for room, members in self.manager.rooms.items()},
            "status": "running"
        }

    # Handlers

    async def on_authenticate(self, socket_id: str, data: Dict[str, Any]) -> None:
        access_token = data.get("token")
        if not isinstance(access_token, str):
            access_token = ""
        if access_token.startswith("Bearer "):
            access_token = access_token[7:]

        try:
            with self.session_factory() as db_session:
                user = resolve_user(resolve_token(access_token.strip(), db_session), db_session)
                user_id = user.id
        except AuthenticationError as e:
            logger.info("Socket authentication failed", extra={"socket_id": socket_id, "reason": e.message})
            await self.manager.send(socket_id, "authentication-error", {"message": e.message})
            return

        self.manager.authenticate(socket_id, user_id)
        logger.info("Socket authenticated", extra={"socket_id": socket_id, "user_id": user_id})
        await self.manager.send(socket_id, "authenticated", {"success": True, "userId": user_id})

    async def on_join_project(self, socket_id: str, data: Dict[str, Any]) -> None:
        project_id = project_id_of(data)
        if not project_id:
            await self.manager.send(socket_id, "error", {"message": "Project ID is required"})
            return

        self.manager.join(socket_id, project_id)
        await self.manager.emit_to_room(project_id, "user-joined-project", {
            "userId": self.manager.get_user_id(socket_id),
            "socketId": socket_id,
            "timestamp": timestamp()
        }, skip_socket_id=socket_id)

    async def on_leave_project(self, socket_id: str, data: Dict[str, Any]) -> None:
        project_id = project_id_of(data)
        if not project_id or not self.manager.leave(socket_id, project_id):
            return

        user_id = self.manager.get_user_id(socket_id)
        if self.typing.stop(project_id, user_id):
            await self._emit_typing(project_id, user_id, data.get("username"), False)

        await self.manager.emit_to_room(project_id, "user-left-project", {
            "userId": user_id,
            "socketId": socket_id,
            "timestamp": timestamp()
        })

    async def on_send_message(self, socket_id: str, data: Dict[str, Any]) -> None:
        """Persist a chat message, then broadcast it to the whole room, sender included."""
        user_id = self.manager.get_user_id(socket_id)
        project_id = project_id_of(data)
        if not project_id:
            await self.manager.send(socket_id, "message-error", {"message": "Project ID is required"})
            return

        async with self._room_lock(project_id):
            try:
                # Reject malformed payloads before anything is stored
                request = SocketMessageRequest.model_validate(data)
                attachment = request.attachment.model_dump(exclude_none=True) if request.attachment else None

                with self.session_factory() as db_session:
                    membership.require_member(db_session, project_id, user_id)
                    message = messages.create_message(
                        db_session,
                        sender_id=user_id,
                        project_id=project_id,
                        content=request.content,
                        message_type=request.message_type,
                        attachment=attachment,
                        reply_to_id=request.reply_to
                    )
                    sender = db_session.get(User, user_id)
                    payload = ChatMessageResponse.from_message(
                        message,
                        sender,
                        sent_at=request.sent_at or utcnow(),
                        delivered_at=utcnow()
                    ).model_dump(mode="json", by_alias=True)
            except (AppError, SQLAlchemyError, SchemaValidationError) as e:
                logger.warning("Failed to store socket message", extra={
                    "socket_id": socket_id,
                    "project_id": project_id,
                    "error": str(e)
                })
                await self.manager.send(socket_id, "message-error", {
                    "message": "Failed to send message",
                    "error": describe_failure(e)
                })
                return

            if self.typing.stop(project_id, user_id):
                await self._emit_typing(project_id, user_id, sender.username if sender else None, False,
                                        skip_socket_id=socket_id)

            await self.manager.emit_to_room(project_id, "new-message", {
                "message": payload,
                "timestamp": timestamp()
            })

    async def on_typing_start(self, socket_id: str, data: Dict[str, Any]) -> None:
        project_id = project_id_of(data)
        if not project_id:
            return
        user_id = self.manager.get_user_id(socket_id)
        username = data.get("username")

        self.typing.start(project_id, user_id, socket_id, username, self._on_typing_expired)
        await self._emit_typing(project_id, user_id, username, True, skip_socket_id=socket_id)

    async def on_typing_stop(self, socket_id: str, data: Dict[str, Any]) -> None:
        project_id = project_id_of(data)
        if not project_id:
            return
        user_id = self.manager.get_user_id(socket_id)

        self.typing.stop(project_id, user_id)
        await self._emit_typing(project_id, user_id, data.get("username"), False, skip_socket_id=socket_id)

    async def on_message_delivered(self, socket_id: str, data: Dict[str, Any]) -> None:
        project_id = project_id_of(data)
        if not project_id or not data.get("messageId"):
            return
        await self.manager.emit_to_room(project_id, "message-delivery-confirmed", {
            "messageId": data["messageId"],
            "deliveredTo": self.manager.get_user_id(socket_id),
            "timestamp": timestamp()
        }, skip_socket_id=socket_id)

    async def on_message_read(self, socket_id: str, data: Dict[str, Any]) -> None:
        project_id = project_id_of(data)
        if not project_id or not data.get("messageId"):
            return
        await self.manager.emit_to_room(project_id, "message-read-confirmed", {
            "messageId": data["messageId"],
            "readBy": self.manager.get_user_id(socket_id),
            "timestamp": timestamp()
        }, skip_socket_id=socket_id)

    async def on_send_notification(self, socket_id: str, data: Dict[str, Any]) -> None:
        """Deliver a notification to every connection of the target user."""
        target_user_id = data.get("targetUserId")
        if not target_user_id:
            return
        body = data.get("notification") or {}
        if not isinstance(body, dict):
            raise ValidationError("Notification must be an object")
        notification = {
            **body,
            "from": self.manager.get_user_id(socket_id),
            "timestamp": timestamp()
        }
        for target_socket_id in self.manager.socket_ids_for_user(target_user_id):
            await self.manager.send(target_socket_id, "notification", notification)

    async def on_ping(self, socket_id: str, data: Dict[str, Any]) -> None:
        await self.manager.send(socket_id, "pong", {
            "timestamp": data.get("timestamp"),
            "serverTime": timestamp()
        })

    def _task_relay(self, event: str) -> Handler:
        async def relay(socket_id: str, data: Dict[str, Any]) -> None:
            project_id = project_id_of(data)
            if not project_id:
                return
            await self.manager.emit_to_room(project_id, event, {
                **data,
                "userId": self.manager.get_user_id(socket_id),
                "timestamp": timestamp()
            }, skip_socket_id=socket_id)
        return relay

    # Helpers

    @asynccontextmanager
    async def _room_lock(self, project_id: str) -> AsyncIterator[None]:
        """Hold the room's lock. It is dropped once nobody holds or waits on it."""
        lock = self._room_locks.get(project_id)
        if lock is None:
            lock = self._room_locks[project_id] = asyncio.Lock()
        self._room_lock_users[project_id] = self._room_lock_users.get(project_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._room_lock_users[project_id] -= 1
            if not self._room_lock_users[project_id]:
                del self._room_lock_users[project_id]
                del self._room_locks[project_id]

    async def _emit_typing(
        self,
        project_id: str,
        user_id: str,
        username: Optional[str],
        is_typing: bool,
        skip_socket_id: Optional[str] = None
    ) -> None:
        await self.manager.emit_to_room(project_id, "user-typing", {
            "userId": user_id,
            "username": username,
            "projectId": project_id,
            "isTyping": is_typing
        }, skip_socket_id=skip_socket_id)

    async def _on_typing_expired(self, entry: TypingEntry) -> None:
        await self._emit_typing(entry.project_id, entry.user_id, entry.username, False,
                                skip_socket_id=entry.socket_id)
