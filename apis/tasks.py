from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, select, or_
from database import get_session
from models.auth import User
from models.boards import Task, TaskStatus
from models.projects import Priority
from models.helper import id_generator, utcnow
from .schemas.auth import UserSummary, SuccessResponse
from .schemas.tasks import (
    CreateTaskRequest, UpdateTaskRequest, ReorderTaskRequest, CreateCommentRequest, CreateAttachmentRequest,
    TaskResponse, TaskListResponse, PaginationResponse, TaskStatsResponse
)
from helpers.auth import get_current_user
from helpers.errors import NotFoundError, ValidationError
from services import membership, ordering
from settings import logger
from datetime import datetime
from typing import Optional
import math

router = APIRouter(prefix="/tasks", tags=["tasks"])

new_comment_id = id_generator('comment', 10)

COLUMN_ORDER = {status: index for index, status in enumerate(TaskStatus)}


def _summary(db_session: Session, user_id: Optional[str]) -> Optional[UserSummary]:
    if not user_id:
        return None
    user = db_session.get(User, user_id)
    return UserSummary.model_validate(user) if user else None


def build_task_response(db_session: Session, task: Task) -> TaskResponse:
    """Task with assignee and creator profiles joined in."""
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        project_id=task.project_id,
        position=task.position,
        assigned_to=_summary(db_session, task.assigned_to_id),
        created_by=_summary(db_session, task.created_by_id),
        due_date=task.due_date,
        estimated_hours=task.estimated_hours,
        actual_hours=task.actual_hours,
        tags=task.tags,
        comments=task.comments,
        attachments=task.attachments,
        completed_at=task.completed_at,
        is_overdue=task.is_overdue(),
        progress=task.progress(),
        created_at=task.created_at,
        updated_at=task.updated_at
    )


def get_task_for_member(db_session: Session, task_id: str, user_id: str) -> Task:
    task = db_session.get(Task, task_id)
    if not task:
        raise NotFoundError("Task not found")
    membership.require_member(db_session, task.project_id, user_id)
    return task


def _check_assignee(db_session: Session, project_id: str, assignee_id: Optional[str]) -> None:
    if assignee_id and not membership.is_member(db_session, project_id, assignee_id):
        raise ValidationError("Assigned user is not a member of this project")


@router.get("/project/{project_id}")
async def list_project_tasks(
    project_id: str,
    status: Optional[TaskStatus] = Query(default=None, description="Filter by column"),
    assigned_to: Optional[str] = Query(default=None, alias="assignedTo", description="Filter by assignee"),
    priority: Optional[Priority] = Query(default=None, description="Filter by priority"),
    due_date: Optional[datetime] = Query(default=None, alias="dueDate", description="Tasks due on or before this date"),
    search: Optional[str] = Query(default=None, description="Search in title and description"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskListResponse:
    """Board tasks ordered by column, then position."""
    membership.get_project(db_session, project_id)
    membership.require_member(db_session, project_id, user.id)

    conditions = [Task.project_id == project_id]
    if status is not None:
        conditions.append(Task.status == status)
    if assigned_to:
        conditions.append(Task.assigned_to_id == assigned_to)
    if priority is not None:
        conditions.append(Task.priority == priority)
    if due_date is not None:
        conditions.append(Task.due_date <= due_date)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    tasks = db_session.exec(select(Task).where(*conditions)).all()
    tasks = sorted(tasks, key=lambda t: (COLUMN_ORDER[t.status], t.position, t.created_at))

    total = len(tasks)
    total_pages = max(1, math.ceil(total / limit))
    page_tasks = tasks[(page - 1) * limit:page * limit]

    return TaskListResponse(
        tasks=[build_task_response(db_session, task) for task in page_tasks],
        pagination=PaginationResponse(
            current_page=page,
            total_pages=total_pages,
            total_tasks=total,
            has_next=page < total_pages,
            has_prev=page > 1
        )
    )


@router.get("/stats/{project_id}")
async def project_task_stats(
    project_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskStatsResponse:
    membership.get_project(db_session, project_id)
    membership.require_member(db_session, project_id, user.id)

    tasks = db_session.exec(select(Task).where(Task.project_id == project_id)).all()
    by_status = {status.value: 0 for status in TaskStatus}
    by_priority = {priority.value: 0 for priority in Priority}
    for task in tasks:
        by_status[task.status.value] += 1
        by_priority[task.priority.value] += 1

    total = len(tasks)
    done = by_status[TaskStatus.DONE.value]
    return TaskStatsResponse(
        total=total,
        by_status=by_status,
        by_priority=by_priority,
        overdue=sum(1 for task in tasks if task.is_overdue()),
        completion_rate=round(done / total * 100, 1) if total else 0.0
    )


@router.post("", status_code=201)
async def create_task(
    task_data: CreateTaskRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Create a task at the end of its column."""
    membership.get_project(db_session, task_data.project_id)
    membership.require_member(db_session, task_data.project_id, user.id)
    _check_assignee(db_session, task_data.project_id, task_data.assigned_to)

    task = Task(
        title=task_data.title.strip(),
        description=task_data.description.strip(),
        project_id=task_data.project_id,
        priority=task_data.priority,
        assigned_to_id=task_data.assigned_to,
        created_by_id=user.id,
        due_date=task_data.due_date,
        estimated_hours=task_data.estimated_hours,
        tags=task_data.tags,
        position=ordering.next_position(db_session, task_data.project_id, task_data.status)
    )
    task.set_status(task_data.status)

    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)

    logger.info("Task created", extra={
        "task_id": task.id,
        "project_id": task.project_id,
        "status": task.status.value,
        "position": task.position
    })
    return build_task_response(db_session, task)


@router.put("/reorder")
async def reorder_task(
    reorder_data: ReorderTaskRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Drag and drop: move a task to a slot of a column."""
    membership.require_member(db_session, reorder_data.project_id, user.id)
    task = ordering.reorder_task(
        db_session,
        task_id=reorder_data.task_id,
        new_status=reorder_data.new_status,
        new_position=reorder_data.new_position,
        project_id=reorder_data.project_id
    )
    return build_task_response(db_session, task)


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    task = get_task_for_member(db_session, task_id, user.id)
    return build_task_response(db_session, task)


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    task_data: UpdateTaskRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Update task fields. A new status appends the task to that column."""
    task = get_task_for_member(db_session, task_id, user.id)

    changes = task_data.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        _check_assignee(db_session, task.project_id, changes["assigned_to"])
        task.assigned_to_id = changes.pop("assigned_to")

    new_status = changes.pop("status", None)

    # Update only provided fields
    for field, value in changes.items():
        if value is None and field in ("title", "description", "priority", "actual_hours", "tags"):
            continue
        setattr(task, field, value.strip() if field in ("title", "description") else value)

    if new_status is not None:
        ordering.move_to_column_end(db_session, task, new_status)

    task.updated_at = utcnow()
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)

    return build_task_response(db_session, task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> SuccessResponse:
    """Delete a task. Only its creator or a project owner/admin may do so."""
    task = get_task_for_member(db_session, task_id, user.id)
    if task.created_by_id != user.id:
        membership.require_editor(db_session, task.project_id, user.id)

    ordering.remove_from_column(db_session, task)
    db_session.commit()

    logger.info("Task deleted", extra={"task_id": task_id, "user_id": user.id})
    return SuccessResponse(message="Task deleted successfully")


@router.post("/{task_id}/comments", status_code=201)
async def add_comment(
    task_id: str,
    comment_data: CreateCommentRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    task = get_task_for_member(db_session, task_id, user.id)

    text = comment_data.text.strip()
    if not text:
        raise ValidationError("Comment text is required")

    task.comments = [
        *task.comments,
        {"id": new_comment_id(), "user_id": user.id, "text": text, "created_at": utcnow().isoformat()}
    ]
    task.updated_at = utcnow()
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)

    return build_task_response(db_session, task)


@router.post("/{task_id}/attachments", status_code=201)
async def add_attachment(
    task_id: str,
    attachment_data: CreateAttachmentRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> TaskResponse:
    """Record an attachment descriptor on the task."""
    task = get_task_for_member(db_session, task_id, user.id)

    task.attachments = [
        *task.attachments,
        {
            **attachment_data.model_dump(),
            "uploaded_by": user.id,
            "uploaded_at": utcnow().isoformat()
        }
    ]
    task.updated_at = utcnow()
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)

    return build_task_response(db_session, task)
