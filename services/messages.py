"""
Project chat messages: creation (shared by REST and the socket layer),
editing with history, soft delete, reactions and read receipts.
"""

from sqlmodel import Session, select, func
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from models.messages import Message, MessageType
from models.projects import Project
from models.helper import utcnow, as_utc
from helpers.errors import ValidationError, NotFoundError, AuthorizationError
from settings import logger, MESSAGE_EDIT_WINDOW_MINUTES

MAX_CONTENT_LENGTH = 1000
MAX_EMOJI_LENGTH = 10
ATTACHMENT_PLACEHOLDER = "📎 File attachment"
EMPTY_MESSAGE_PLACEHOLDER = "📝 Message"


def resolve_content(content: Optional[str], attachment: Optional[Dict[str, Any]]) -> str:
    """Messages always carry text; attachment-only messages fall back to the file name."""
    text = (content or "").strip()
    if text:
        return text
    if attachment is not None:
        return attachment.get("filename") or ATTACHMENT_PLACEHOLDER
    return EMPTY_MESSAGE_PLACEHOLDER


def parse_message_type(value) -> MessageType:
    if value is None:
        return MessageType.TEXT
    try:
        return MessageType(value)
    except ValueError:
        raise ValidationError(f"Invalid message type: {value}")


def create_message(
    db_session: Session,
    sender_id: str,
    project_id: str,
    content: Optional[str],
    message_type: Any = MessageType.TEXT,
    attachment: Optional[Dict[str, Any]] = None,
    reply_to_id: Optional[str] = None
) -> Message:
    if not project_id:
        raise ValidationError("Project ID is required")
    if content is not None and not isinstance(content, str):
        raise ValidationError("Message content must be text")
    if attachment is not None and not isinstance(attachment, dict):
        raise ValidationError("Attachment must be an object")

    text = resolve_content(content, attachment)
    if len(text) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Message cannot exceed {MAX_CONTENT_LENGTH} characters")
    message_type = parse_message_type(message_type)

    if not db_session.get(Project, project_id):
        raise NotFoundError("Project not found")

    if reply_to_id is not None:
        parent = db_session.get(Message, reply_to_id)
        if not parent or parent.project_id != project_id:
            raise NotFoundError("Replied-to message not found")

    message = Message(
        content=text,
        sender_id=sender_id,
        project_id=project_id,
        message_type=message_type,
        attachment=attachment,
        reply_to_id=reply_to_id
    )
    db_session.add(message)
    db_session.commit()
    db_session.refresh(message)

    logger.info("Message stored", extra={
        "message_id": message.id,
        "project_id": project_id,
        "sender_id": sender_id,
        "message_type": message_type.value
    })
    return message


def get_message(db_session: Session, message_id: str) -> Message:
    message = db_session.get(Message, message_id)
    if not message or message.is_deleted:
        raise NotFoundError("Message not found")
    return message


def list_messages(
    db_session: Session,
    project_id: str,
    page: int = 1,
    limit: int = 50,
    message_type: Optional[MessageType] = None,
    before_date: Optional[datetime] = None
) -> Tuple[List[Message], int]:
    """Newest first, skipping deleted messages. Returns (page of messages, total)."""
    conditions = [Message.project_id == project_id, Message.is_deleted == False]
    if message_type is not None:
        conditions.append(Message.message_type == message_type)
    if before_date is not None:
        conditions.append(Message.created_at < before_date)
    total = db_session.exec(select(func.count()).select_from(Message).where(*conditions)).one()

    statement = (
        select(Message)
        .where(*conditions)
        .order_by(Message.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(db_session.exec(statement).all()), total


def edit_message(db_session: Session, message: Message, editor_id: str, content: str) -> Message:
    if message.sender_id != editor_id:
        raise AuthorizationError("Access denied. You can only edit your own messages.")

    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required")
    if len(text) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Message cannot exceed {MAX_CONTENT_LENGTH} characters")

    if as_utc(message.created_at) < utcnow() - timedelta(minutes=MESSAGE_EDIT_WINDOW_MINUTES):
        raise ValidationError(f"Cannot edit messages older than {MESSAGE_EDIT_WINDOW_MINUTES} minutes")

    now = utcnow()
    message.edit_history = [
        *message.edit_history,
        {"content": message.content, "edited_at": now.isoformat()}
    ]
    message.content = text
    message.is_edited = True
    message.updated_at = now
    db_session.add(message)
    db_session.commit()
    db_session.refresh(message)
    return message


def delete_message(db_session: Session, message: Message, requester_id: str) -> None:
    """Soft delete: the row stays, flagged, and drops out of listings."""
    if message.sender_id != requester_id:
        raise AuthorizationError("Access denied. You can only delete your own messages.")

    message.is_deleted = True
    message.deleted_at = utcnow()
    db_session.add(message)
    db_session.commit()


def add_reaction(db_session: Session, message: Message, user_id: str, emoji: str) -> Message:
    if not emoji:
        raise ValidationError("Emoji is required")
    if len(emoji) > MAX_EMOJI_LENGTH:
        raise ValidationError(f"Emoji cannot exceed {MAX_EMOJI_LENGTH} characters")

    if any(r["user_id"] == user_id and r["emoji"] == emoji for r in message.reactions):
        return message

    message.reactions = [
        *message.reactions,
        {"user_id": user_id, "emoji": emoji, "created_at": utcnow().isoformat()}
    ]
    db_session.add(message)
    db_session.commit()
    db_session.refresh(message)
    return message


def remove_reaction(db_session: Session, message: Message, user_id: str, emoji: str) -> Message:
    message.reactions = [
        r for r in message.reactions
        if not (r["user_id"] == user_id and r["emoji"] == emoji)
    ]
    db_session.add(message)
    db_session.commit()
    db_session.refresh(message)
    return message


def mark_as_read(db_session: Session, message: Message, user_id: str) -> Message:
    if any(r["user_id"] == user_id for r in message.read_by):
        return message

    message.read_by = [*message.read_by, {"user_id": user_id, "read_at": utcnow().isoformat()}]
    db_session.add(message)
    db_session.commit()
    db_session.refresh(message)
    return message


def unread_count(db_session: Session, project_id: str, user_id: str) -> int:
    """Messages in the project the user has not marked as read.

    read_by is a JSON column, so the filter runs in Python.
    """
    statement = select(Message).where(
        Message.project_id == project_id,
        Message.is_deleted == False
    )
    return sum(
        1 for message in db_session.exec(statement).all()
        if not any(r["user_id"] == user_id for r in message.read_by)
    )
