"""
Task ordering on project boards.

Within one (project, status) column the task positions always form the dense
sequence 0..n-1, top to bottom. Every operation here keeps that true:

- new tasks are appended to the end of their column;
- a reorder shifts the neighbours to open/close exactly one slot;
- moving a task to another column by a plain update appends it there and
  closes the gap it left behind;
- deleting a task closes its gap.

`reorder_task` commits its shifts and the moved task in a single
transaction. The other helpers only stage changes on the session so the
caller can commit them together with its own edits.
"""

from sqlmodel import Session, select, func
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional, Union
from models.boards import Task, TaskStatus
from models.helper import utcnow
from helpers.errors import ValidationError, NotFoundError, PersistenceError
from settings import logger


def parse_status(value: Union[str, TaskStatus]) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid task status: {value}")


def column_tasks(
    db_session: Session,
    project_id: str,
    status: TaskStatus,
    exclude_task_id: Optional[str] = None
) -> List[Task]:
    """Tasks of one column in display order."""
    statement = (
        select(Task)
        .where(Task.project_id == project_id, Task.status == status)
        .order_by(Task.position, Task.created_at)
    )
    if exclude_task_id is not None:
        statement = statement.where(Task.id != exclude_task_id)
    return list(db_session.exec(statement).all())


def next_position(db_session: Session, project_id: str, status: TaskStatus) -> int:
    """Position a task appended to the column would get."""
    statement = select(func.max(Task.position)).where(
        Task.project_id == project_id,
        Task.status == status
    )
    highest = db_session.exec(statement).first()
    return 0 if highest is None else highest + 1


def detach_from_column(db_session: Session, task: Task) -> None:
    """Close the gap `task` leaves in its current column."""
    for other in column_tasks(db_session, task.project_id, task.status, exclude_task_id=task.id):
        if other.position > task.position:
            other.position -= 1
            db_session.add(other)


def remove_from_column(db_session: Session, task: Task) -> None:
    """Delete `task` and close its gap. Staged only; the caller commits."""
    detach_from_column(db_session, task)
    db_session.delete(task)


def column_positions(db_session: Session, project_id: str, status: TaskStatus) -> List[str]:
    """Task ids of one column, top to bottom."""
    return [task.id for task in column_tasks(db_session, project_id, status)]


def move_to_column_end(db_session: Session, task: Task, new_status: TaskStatus) -> None:
    """Move `task` to the bottom of another column."""
    if new_status == task.status:
        return
    detach_from_column(db_session, task)
    task.position = len(column_tasks(db_session, task.project_id, new_status, exclude_task_id=task.id))
    task.set_status(new_status)
    db_session.add(task)


def reorder_task(
    db_session: Session,
    task_id: str,
    new_status: Union[str, TaskStatus],
    new_position: int,
    project_id: str
) -> Task:
    """Move a task to `new_position` of column `new_status` (drag and drop).

    Positions past the end of the destination column are clamped to the end.
    """
    status = parse_status(new_status)
    if isinstance(new_position, bool) or not isinstance(new_position, int) or new_position < 0:
        raise ValidationError("Position must be a non-negative integer")

    task = db_session.get(Task, task_id)
    if not task or task.project_id != project_id:
        raise NotFoundError("Task not found")

    old_status = task.status
    old_position = task.position

    try:
        if old_status != status:
            detach_from_column(db_session, task)

            # Open a slot in the new column
            destination = column_tasks(db_session, project_id, status, exclude_task_id=task.id)
            new_position = min(new_position, len(destination))
            for other in destination:
                if other.position >= new_position:
                    other.position += 1
                    db_session.add(other)
        else:
            column = column_tasks(db_session, project_id, status, exclude_task_id=task.id)
            new_position = min(new_position, len(column))
            if new_position < old_position:
                for other in column:
                    if new_position <= other.position < old_position:
                        other.position += 1
                        db_session.add(other)
            elif new_position > old_position:
                for other in column:
                    if old_position < other.position <= new_position:
                        other.position -= 1
                        db_session.add(other)

        task.set_status(status)
        task.position = new_position
        task.updated_at = utcnow()
        db_session.add(task)
        db_session.commit()
    except SQLAlchemyError as e:
        db_session.rollback()
        logger.error("Task reorder failed, transaction rolled back", extra={
            "task_id": task_id,
            "project_id": project_id,
            "error": str(e)
        })
        raise PersistenceError("Failed to reorder task")

    db_session.refresh(task)

    logger.info("Task reordered", extra={
        "task_id": task.id,
        "project_id": project_id,
        "from": f"{old_status.value}:{old_position}",
        "to": f"{task.status.value}:{task.position}"
    })

    return task
