from sqlmodel import SQLModel, Field
from enum import Enum
from typing import Optional
from datetime import datetime
from .helper import id_generator, utcnow


class UserRole(str, Enum):
    """System-wide roles. Project roles live on ProjectMember."""
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class User(SQLModel, table=True):
    """Person using the boards and chat."""
    id: str = Field(default_factory=id_generator('user', 10), primary_key=True)
    username: str = Field(unique=True, index=True)
    email: str = Field(unique=True, index=True)
    hashed_password: str
    full_name: str = Field(default="")
    avatar: Optional[str] = Field(default=None)
    role: UserRole = Field(default=UserRole.MEMBER)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
    last_login: Optional[datetime] = Field(default=None)


class Token(SQLModel, table=True):
    """Bearer token issued at login."""
    id: str = Field(default_factory=id_generator('token', 10), primary_key=True)
    token_type: str = Field(default="bearer")
    access_token: str = Field(unique=True, index=True)
    refresh_token: Optional[str] = Field(default=None, unique=True, index=True)
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    is_revoked: bool = Field(default=False)


class TokenUser(SQLModel, table=True):
    """Links a Token with the User it was issued to."""
    token_id: str = Field(foreign_key="token.id", primary_key=True)
    user_id: str = Field(foreign_key="user.id", primary_key=True)
