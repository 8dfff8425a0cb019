from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON
from enum import Enum
from typing import Optional, List, Dict, Any
from datetime import datetime
from .helper import id_generator, utcnow, as_utc
from .projects import Priority


class TaskStatus(str, Enum):
    """Board columns, left to right."""
    TODO = "todo"
    IN_PROGRESS = "inprogress"
    REVIEW = "review"
    DONE = "done"


STATUS_PROGRESS = {
    TaskStatus.TODO: 0,
    TaskStatus.IN_PROGRESS: 50,
    TaskStatus.REVIEW: 75,
    TaskStatus.DONE: 100,
}


class Task(SQLModel, table=True):
    """Work unit placed in one column of a project board."""
    id: str = Field(default_factory=id_generator('task', 10), primary_key=True)
    title: str
    description: str = Field(default="")
    status: TaskStatus = Field(default=TaskStatus.TODO, index=True)
    priority: Priority = Field(default=Priority.MEDIUM)
    project_id: str = Field(foreign_key="project.id", index=True)
    assigned_to_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    created_by_id: str = Field(foreign_key="user.id", index=True)
    due_date: Optional[datetime] = Field(default=None, index=True)
    estimated_hours: Optional[float] = Field(default=None)
    actual_hours: float = Field(default=0)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    # JSON columns are replaced, never mutated in place, so changes get flushed
    attachments: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    comments: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    position: int = Field(default=0, index=True)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def set_status(self, status: TaskStatus) -> None:
        """Change column, keeping completed_at in step with the done column."""
        if status == TaskStatus.DONE and self.completed_at is None:
            self.completed_at = utcnow()
        elif status != TaskStatus.DONE:
            self.completed_at = None
        self.status = status

    def is_overdue(self) -> bool:
        if self.due_date is None or self.status == TaskStatus.DONE:
            return False
        return utcnow() > as_utc(self.due_date)

    def progress(self) -> int:
        return STATUS_PROGRESS.get(self.status, 0)
