from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime
from .helper import id_generator, utcnow


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class Message(SQLModel, table=True):
    """Chat message posted in a project room."""
    id: str = Field(default_factory=id_generator('message', 10), primary_key=True)
    content: str
    sender_id: str = Field(foreign_key="user.id", index=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    message_type: MessageType = Field(default=MessageType.TEXT, index=True)
    attachment: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    reply_to_id: Optional[str] = Field(default=None, foreign_key="message.id")
    reactions: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    read_by: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    is_edited: bool = Field(default=False)
    edit_history: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    is_deleted: bool = Field(default=False, index=True)
    deleted_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
