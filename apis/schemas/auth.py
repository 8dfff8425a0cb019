from pydantic import Field
from typing import Optional
from datetime import datetime
from models.auth import UserRole
from .base import CamelModel


class RegisterRequest(CamelModel):
    """Schema for self-registration."""
    username: str = Field(..., min_length=3, max_length=30, description="Unique username")
    email: str = Field(..., description="Unique email address")
    password: str = Field(..., min_length=6, description="Plain text password")
    full_name: str = Field(default="", max_length=100, description="Display name")


class LoginRequest(CamelModel):
    """Schema for user login."""
    identifier: str = Field(..., description="Username or email")
    password: str = Field(..., description="Plain text password")


class RefreshTokenRequest(CamelModel):
    """Schema for exchanging a refresh token for a new access token."""
    refresh_token: str = Field(..., min_length=1, description="Refresh token issued at login")


class UpdateProfileRequest(CamelModel):
    """Schema for updating the caller's own profile."""
    username: Optional[str] = Field(default=None, min_length=3, max_length=30, description="New username")
    full_name: Optional[str] = Field(default=None, max_length=100, description="New display name")
    avatar: Optional[str] = Field(default=None, description="New avatar URL or path")


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., description="Current password")
    new_password: str = Field(..., min_length=6, description="New password")


# Response Schemas
class UserSummary(CamelModel):
    """Public profile joined into tasks, members and messages."""
    id: str = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    full_name: str = Field(default="", description="Display name")
    avatar: Optional[str] = Field(default=None, description="Avatar URL or path")


class UserResponse(CamelModel):
    """Schema for user responses (excludes sensitive information)."""
    id: str = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    email: str = Field(..., description="User email address")
    full_name: str = Field(default="", description="Display name")
    avatar: Optional[str] = Field(default=None, description="Avatar URL or path")
    role: UserRole = Field(..., description="System role (ADMIN or MEMBER)")
    is_active: bool = Field(..., description="Whether the user is active")
    created_at: Optional[datetime] = Field(default=None, description="Registration timestamp")
    last_login: Optional[datetime] = Field(default=None, description="Last successful login")


class LoginResponse(CamelModel):
    """Schema for login and register responses."""
    access_token: str = Field(..., description="Bearer access token")
    refresh_token: Optional[str] = Field(default=None, description="Refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_at: datetime = Field(..., description="When the access token expires")
    user: UserResponse = Field(..., description="Authenticated user information")


class SuccessResponse(CamelModel):
    """Schema for simple confirmation responses."""
    success: bool = Field(default=True, description="Whether the operation succeeded")
    message: str = Field(..., description="Response message")
