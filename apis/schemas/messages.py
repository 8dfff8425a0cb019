from pydantic import Field, model_validator
from typing import List, Optional
from datetime import datetime
from models.messages import Message, MessageType
from models.auth import User
from .base import CamelModel
from .auth import UserSummary


class AttachmentDescriptor(CamelModel):
    """File attached to a message; bytes live elsewhere."""
    filename: Optional[str] = Field(default=None, description="Stored file name")
    original_name: Optional[str] = Field(default=None, description="Name of the file as uploaded")
    mimetype: Optional[str] = Field(default=None, description="MIME type of the file")
    size: Optional[int] = Field(default=None, ge=0, description="Size in bytes")
    path: Optional[str] = Field(default=None, description="URL or path to the file")


class SendMessageRequest(CamelModel):
    """Schema for posting a message through REST."""
    project_id: str = Field(..., description="Project room the message belongs to")
    content: str = Field(default="", max_length=1000, description="Message text")
    message_type: MessageType = Field(default=MessageType.TEXT, description="Message type")
    attachment: Optional[AttachmentDescriptor] = Field(default=None, description="Attached file")
    reply_to: Optional[str] = Field(default=None, description="ID of the message this replies to")

    @model_validator(mode="after")
    def content_or_attachment(self):
        if not self.content.strip() and self.attachment is None:
            raise ValueError("Message content is required")
        return self


class SocketMessageRequest(CamelModel):
    """Payload of the send-message socket event. Parsed before anything is stored."""
    project_id: str = Field(..., description="Project room the message belongs to")
    content: Optional[str] = Field(default=None, description="Message text")
    message_type: Optional[MessageType] = Field(default=None, description="Message type")
    attachment: Optional[AttachmentDescriptor] = Field(default=None, description="Attached file")
    reply_to: Optional[str] = Field(default=None, description="ID of the message this replies to")
    sent_at: Optional[datetime] = Field(default=None, description="Client send time")


class EditMessageRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=1000, description="New message text")


class ReactionRequest(CamelModel):
    emoji: str = Field(..., min_length=1, max_length=10, description="Reaction emoji")


# Response Schemas
class ReactionResponse(CamelModel):
    user_id: str = Field(..., description="User who reacted")
    emoji: str = Field(..., description="Reaction emoji")
    created_at: datetime = Field(..., description="When the reaction was added")


class ReadReceiptResponse(CamelModel):
    user_id: str = Field(..., description="User who read the message")
    read_at: datetime = Field(..., description="When it was read")


class ChatMessageResponse(CamelModel):
    """Message as shown in the chat, with its sender profile."""
    id: str = Field(..., description="Message ID")
    content: str = Field(..., description="Message text")
    sender: Optional[UserSummary] = Field(default=None, description="Sender profile")
    project_id: str = Field(..., description="Project ID")
    message_type: MessageType = Field(..., description="Message type")
    attachment: Optional[AttachmentDescriptor] = Field(default=None, description="Attached file")
    reply_to: Optional[str] = Field(default=None, description="ID of the replied-to message")
    reactions: List[ReactionResponse] = Field(default_factory=list, description="Reactions")
    read_by: List[ReadReceiptResponse] = Field(default_factory=list, description="Read receipts")
    is_edited: bool = Field(default=False, description="Whether the message was edited")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    sent_at: Optional[datetime] = Field(default=None, description="Client send time (socket only)")
    delivered_at: Optional[datetime] = Field(default=None, description="Server delivery time (socket only)")

    @classmethod
    def from_message(cls, message: Message, sender: Optional[User], **extra) -> "ChatMessageResponse":
        return cls(
            id=message.id,
            content=message.content,
            sender=UserSummary.model_validate(sender) if sender else None,
            project_id=message.project_id,
            message_type=message.message_type,
            attachment=message.attachment,
            reply_to=message.reply_to_id,
            reactions=message.reactions,
            read_by=message.read_by,
            is_edited=message.is_edited,
            created_at=message.created_at,
            updated_at=message.updated_at,
            **extra
        )


class MessageListResponse(CamelModel):
    messages: List[ChatMessageResponse] = Field(..., description="Messages, oldest first within the page")
    current_page: int = Field(..., description="Current page, starting at 1")
    total_pages: int = Field(..., description="Number of pages")
    total_messages: int = Field(..., description="Messages in the project")
    has_more: bool = Field(..., description="Whether older messages exist")


class UnreadCountResponse(CamelModel):
    project_id: str = Field(..., description="Project ID")
    unread_count: int = Field(..., description="Messages not yet read by the caller")
