from sqlmodel import SQLModel, Field, Column, UniqueConstraint
from sqlalchemy import JSON
from enum import Enum
from typing import Optional, List
from datetime import datetime
from .helper import id_generator, utcnow


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class Priority(str, Enum):
    """Priority levels shared by projects and tasks."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class MemberRole(str, Enum):
    """Role of a user inside one project."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class Project(SQLModel, table=True):
    """A team workspace holding a task board and a chat room."""
    id: str = Field(default_factory=id_generator('project', 10), primary_key=True)
    name: str = Field(index=True)
    description: str = Field(default="")
    owner_id: str = Field(foreign_key="user.id", index=True)
    status: ProjectStatus = Field(default=ProjectStatus.PLANNING, index=True)
    priority: Priority = Field(default=Priority.MEDIUM)
    start_date: Optional[datetime] = Field(default=None)
    end_date: Optional[datetime] = Field(default=None)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    color: str = Field(default="#3B82F6")
    is_private: bool = Field(default=False)
    invite_code: Optional[str] = Field(default=None, unique=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ProjectMember(SQLModel, table=True):
    """Membership of a user in a project, with the role they hold there."""
    __table_args__ = (
        UniqueConstraint('project_id', 'user_id', name='uq_project_member'),
    )

    id: str = Field(default_factory=id_generator('member', 10), primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    role: MemberRole = Field(default=MemberRole.MEMBER)
    joined_at: datetime = Field(default_factory=utcnow, index=True)
