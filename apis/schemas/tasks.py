from pydantic import Field, field_validator
from typing import List, Optional
from datetime import datetime
from models.boards import TaskStatus
from models.projects import Priority
from .base import CamelModel
from .auth import UserSummary


def _check_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return tags
    cleaned = [tag.strip() for tag in tags]
    if any(len(tag) > 20 for tag in cleaned):
        raise ValueError("Tag cannot exceed 20 characters")
    return cleaned


class CreateTaskRequest(CamelModel):
    """Schema for creating a new task. New tasks go to the end of their column."""
    title: str = Field(..., min_length=3, max_length=200, description="Task title")
    description: str = Field(default="", max_length=1000, description="Task description")
    project_id: str = Field(..., description="Project the task belongs to")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Board column")
    priority: Priority = Field(default=Priority.MEDIUM, description="Task priority")
    assigned_to: Optional[str] = Field(default=None, description="Assignee user ID")
    due_date: Optional[datetime] = Field(default=None, description="Due date")
    estimated_hours: Optional[float] = Field(default=None, ge=0, le=1000, description="Estimate in hours")
    tags: List[str] = Field(default_factory=list, description="Task tags")

    @field_validator("tags")
    @classmethod
    def check_tags(cls, tags):
        return _check_tags(tags)


class UpdateTaskRequest(CamelModel):
    """Schema for updating a task. A status change appends the task to the new column."""
    title: Optional[str] = Field(default=None, min_length=3, max_length=200, description="New title")
    description: Optional[str] = Field(default=None, max_length=1000, description="New description")
    status: Optional[TaskStatus] = Field(default=None, description="New board column")
    priority: Optional[Priority] = Field(default=None, description="New priority")
    assigned_to: Optional[str] = Field(default=None, description="New assignee user ID")
    due_date: Optional[datetime] = Field(default=None, description="New due date")
    estimated_hours: Optional[float] = Field(default=None, ge=0, le=1000, description="New estimate")
    actual_hours: Optional[float] = Field(default=None, ge=0, description="Hours spent")
    tags: Optional[List[str]] = Field(default=None, description="New tags")

    @field_validator("tags")
    @classmethod
    def check_tags(cls, tags):
        return _check_tags(tags)


class ReorderTaskRequest(CamelModel):
    """Drag and drop of one task on the board."""
    task_id: str = Field(..., description="Task being moved")
    new_status: str = Field(..., description="Destination column")
    new_position: int = Field(..., description="Zero-based slot in the destination column")
    project_id: str = Field(..., description="Project the task belongs to")


class CreateCommentRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=500, description="Comment text")


class CreateAttachmentRequest(CamelModel):
    """Descriptor of a file stored elsewhere; the service never stores bytes."""
    filename: str = Field(..., description="Stored file name")
    original_name: str = Field(..., description="Name of the file as uploaded")
    mimetype: str = Field(..., description="MIME type of the file")
    size: int = Field(..., ge=0, description="Size in bytes")
    path: str = Field(..., description="URL or path to the file")


# Response Schemas
class CommentResponse(CamelModel):
    id: str = Field(..., description="Comment ID")
    user_id: str = Field(..., description="Author user ID")
    text: str = Field(..., description="Comment text")
    created_at: datetime = Field(..., description="Creation timestamp")


class AttachmentResponse(CamelModel):
    filename: str = Field(..., description="Stored file name")
    original_name: str = Field(..., description="Name of the file as uploaded")
    mimetype: str = Field(..., description="MIME type of the file")
    size: int = Field(..., description="Size in bytes")
    path: str = Field(..., description="URL or path to the file")
    uploaded_by: str = Field(..., description="Uploader user ID")
    uploaded_at: datetime = Field(..., description="Upload timestamp")


class TaskResponse(CamelModel):
    """Schema for task responses."""
    id: str = Field(..., description="Task ID")
    title: str = Field(..., description="Task title")
    description: str = Field(..., description="Task description")
    status: TaskStatus = Field(..., description="Board column")
    priority: Priority = Field(..., description="Task priority")
    project_id: str = Field(..., description="Project ID")
    position: int = Field(..., description="Zero-based slot in the column")
    assigned_to: Optional[UserSummary] = Field(default=None, description="Assignee")
    created_by: Optional[UserSummary] = Field(default=None, description="Creator")
    due_date: Optional[datetime] = Field(default=None, description="Due date")
    estimated_hours: Optional[float] = Field(default=None, description="Estimate in hours")
    actual_hours: float = Field(..., description="Hours spent")
    tags: List[str] = Field(default_factory=list, description="Task tags")
    comments: List[CommentResponse] = Field(default_factory=list, description="Comments, oldest first")
    attachments: List[AttachmentResponse] = Field(default_factory=list, description="Attachment descriptors")
    completed_at: Optional[datetime] = Field(default=None, description="When the task entered done")
    is_overdue: bool = Field(default=False, description="Past due and not done")
    progress: int = Field(default=0, description="Progress percentage derived from the column")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class PaginationResponse(CamelModel):
    current_page: int = Field(..., description="Current page, starting at 1")
    total_pages: int = Field(..., description="Number of pages")
    total_tasks: int = Field(..., description="Tasks matching the filters")
    has_next: bool = Field(..., description="Whether a next page exists")
    has_prev: bool = Field(..., description="Whether a previous page exists")


class TaskListResponse(CamelModel):
    tasks: List[TaskResponse] = Field(..., description="Tasks ordered by column then position")
    pagination: PaginationResponse = Field(..., description="Pagination details")


class TaskStatsResponse(CamelModel):
    """Board counters for one project."""
    total: int = Field(..., description="Number of tasks")
    by_status: dict = Field(..., description="Task count per column")
    by_priority: dict = Field(..., description="Task count per priority")
    overdue: int = Field(..., description="Tasks past due and not done")
    completion_rate: float = Field(..., description="Percentage of tasks in done")
