from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from database import get_session
from models.auth import User
from models.messages import Message, MessageType
from .schemas.auth import SuccessResponse
from .schemas.messages import (
    SendMessageRequest, EditMessageRequest, ReactionRequest,
    ChatMessageResponse, MessageListResponse, UnreadCountResponse
)
from helpers.auth import get_current_user
from services import membership, messages
from datetime import datetime
from typing import Optional
import math

router = APIRouter(prefix="/messages", tags=["messages"])


def build_message_response(db_session: Session, message: Message) -> ChatMessageResponse:
    return ChatMessageResponse.from_message(message, db_session.get(User, message.sender_id))


def get_message_for_member(db_session: Session, message_id: str, user_id: str) -> Message:
    message = messages.get_message(db_session, message_id)
    membership.require_member(db_session, message.project_id, user_id)
    return message


@router.get("/project/{project_id}")
async def list_project_messages(
    project_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    message_type: Optional[MessageType] = Query(default=None, alias="messageType", description="Filter by type"),
    before_date: Optional[datetime] = Query(default=None, alias="beforeDate", description="Only older messages"),
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> MessageListResponse:
    """Chat history, newest page first; messages inside a page run oldest to newest."""
    membership.get_project(db_session, project_id)
    membership.require_member(db_session, project_id, user.id)

    page_messages, total = messages.list_messages(
        db_session, project_id, page=page, limit=limit, message_type=message_type, before_date=before_date
    )
    total_pages = max(1, math.ceil(total / limit))

    return MessageListResponse(
        messages=[build_message_response(db_session, message) for message in reversed(page_messages)],
        current_page=page,
        total_pages=total_pages,
        total_messages=total,
        has_more=page < total_pages
    )


@router.post("", status_code=201)
async def send_message(
    message_data: SendMessageRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ChatMessageResponse:
    """Post a message without a socket connection. It is not broadcast."""
    membership.get_project(db_session, message_data.project_id)
    membership.require_member(db_session, message_data.project_id, user.id)

    attachment = message_data.attachment.model_dump(exclude_none=True) if message_data.attachment else None
    message = messages.create_message(
        db_session,
        sender_id=user.id,
        project_id=message_data.project_id,
        content=message_data.content,
        message_type=message_data.message_type,
        attachment=attachment,
        reply_to_id=message_data.reply_to
    )
    return build_message_response(db_session, message)


@router.get("/unread/{project_id}")
async def unread_count(
    project_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> UnreadCountResponse:
    membership.require_member(db_session, project_id, user.id)
    return UnreadCountResponse(
        project_id=project_id,
        unread_count=messages.unread_count(db_session, project_id, user.id)
    )


@router.put("/{message_id}")
async def edit_message(
    message_id: str,
    edit_data: EditMessageRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ChatMessageResponse:
    """Edit your own message within the edit window; the previous text is kept in its history."""
    message = get_message_for_member(db_session, message_id, user.id)
    message = messages.edit_message(db_session, message, user.id, edit_data.content)
    return build_message_response(db_session, message)


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> SuccessResponse:
    message = get_message_for_member(db_session, message_id, user.id)
    messages.delete_message(db_session, message, user.id)
    return SuccessResponse(message="Message deleted successfully")


@router.post("/{message_id}/reactions")
async def add_reaction(
    message_id: str,
    reaction_data: ReactionRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ChatMessageResponse:
    message = get_message_for_member(db_session, message_id, user.id)
    message = messages.add_reaction(db_session, message, user.id, reaction_data.emoji)
    return build_message_response(db_session, message)


@router.delete("/{message_id}/reactions")
async def remove_reaction(
    message_id: str,
    emoji: str = Query(..., description="Reaction to remove"),
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ChatMessageResponse:
    message = get_message_for_member(db_session, message_id, user.id)
    message = messages.remove_reaction(db_session, message, user.id, emoji)
    return build_message_response(db_session, message)


@router.post("/{message_id}/read")
async def mark_as_read(
    message_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ChatMessageResponse:
    message = get_message_for_member(db_session, message_id, user.id)
    message = messages.mark_as_read(db_session, message, user.id)
    return build_message_response(db_session, message)
