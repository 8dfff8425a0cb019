from pydantic import Field, field_validator
from typing import List, Optional
from datetime import datetime
from models.projects import ProjectStatus, Priority, MemberRole
from .base import CamelModel
from .auth import UserSummary

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"


def _check_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return tags
    cleaned = [tag.strip() for tag in tags]
    if any(len(tag) > 20 for tag in cleaned):
        raise ValueError("Tag cannot exceed 20 characters")
    return cleaned


class CreateProjectRequest(CamelModel):
    """Schema for creating a new project."""
    name: str = Field(..., min_length=3, max_length=100, description="Project name")
    description: str = Field(default="", max_length=500, description="Project description")
    status: ProjectStatus = Field(default=ProjectStatus.PLANNING, description="Project status")
    priority: Priority = Field(default=Priority.MEDIUM, description="Project priority")
    start_date: Optional[datetime] = Field(default=None, description="Planned start")
    end_date: Optional[datetime] = Field(default=None, description="Planned end")
    tags: List[str] = Field(default_factory=list, description="Project tags")
    color: str = Field(default="#3B82F6", pattern=HEX_COLOR_PATTERN, description="Hex color")
    is_private: bool = Field(default=False, description="Private projects have no invite code")

    @field_validator("tags")
    @classmethod
    def check_tags(cls, tags):
        return _check_tags(tags)


class UpdateProjectRequest(CamelModel):
    """Schema for updating a project. Only provided fields change."""
    name: Optional[str] = Field(default=None, min_length=3, max_length=100, description="New name")
    description: Optional[str] = Field(default=None, max_length=500, description="New description")
    status: Optional[ProjectStatus] = Field(default=None, description="New status")
    priority: Optional[Priority] = Field(default=None, description="New priority")
    start_date: Optional[datetime] = Field(default=None, description="New planned start")
    end_date: Optional[datetime] = Field(default=None, description="New planned end")
    tags: Optional[List[str]] = Field(default=None, description="New tags")
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN, description="New hex color")
    is_private: Optional[bool] = Field(default=None, description="New privacy flag")

    @field_validator("tags")
    @classmethod
    def check_tags(cls, tags):
        return _check_tags(tags)


class JoinProjectRequest(CamelModel):
    invite_code: str = Field(..., min_length=8, max_length=8, description="8 character invite code")


class InviteMemberRequest(CamelModel):
    email: str = Field(..., description="Email of the user to add")
    role: MemberRole = Field(default=MemberRole.MEMBER, description="Role to grant (member or admin)")


class UpdateMemberRoleRequest(CamelModel):
    role: MemberRole = Field(..., description="New role (member, admin or owner)")


# Response Schemas
class MemberResponse(CamelModel):
    user: UserSummary = Field(..., description="Member profile")
    role: MemberRole = Field(..., description="Role in the project")
    joined_at: datetime = Field(..., description="When the user joined")


class ProjectResponse(CamelModel):
    """Schema for project responses."""
    id: str = Field(..., description="Project ID")
    name: str = Field(..., description="Project name")
    description: str = Field(..., description="Project description")
    owner_id: str = Field(..., description="Owner user ID")
    status: ProjectStatus = Field(..., description="Project status")
    priority: Priority = Field(..., description="Project priority")
    start_date: Optional[datetime] = Field(default=None, description="Planned start")
    end_date: Optional[datetime] = Field(default=None, description="Planned end")
    tags: List[str] = Field(default_factory=list, description="Project tags")
    color: str = Field(..., description="Hex color")
    is_private: bool = Field(..., description="Privacy flag")
    invite_code: Optional[str] = Field(default=None, description="Invite code (null for private projects)")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    members: List[MemberResponse] = Field(default_factory=list, description="Members, earliest first")
    task_count: Optional[int] = Field(default=None, description="Number of tasks on the board")


class ProjectListResponse(CamelModel):
    count: int = Field(..., description="Number of projects")
    projects: List[ProjectResponse] = Field(..., description="Projects the caller belongs to")
