"""
Feature: Task board REST endpoints
  As a project member
  I want to create, move, filter and delete tasks through the API
  So that the board stays in sync with what the team sees

Scenario: Create tasks
  When a member creates tasks in a column
  Then each new task is appended to the end of the column

Scenario: Plain update changes the column
  When a task's status changes through PUT /tasks/{id}
  Then it is appended to the new column and the old column closes its gap

Scenario: Drag and drop
  When PUT /tasks/reorder moves a task
  Then the columns stay dense

Scenario: Delete, comments, attachments, filters and stats
  Then deleting closes the gap
  And comments and attachment descriptors are recorded
  And the list endpoint filters and pages tasks
"""

import pytest
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User
from models.boards import Task, TaskStatus
from models.projects import MemberRole, Priority
from services import membership, ordering
from apis.tasks import (
    create_task, reorder_task, get_task, update_task, delete_task,
    add_comment, add_attachment, list_project_tasks, project_task_stats
)
from apis.schemas.tasks import (
    CreateTaskRequest, UpdateTaskRequest, ReorderTaskRequest, CreateCommentRequest, CreateAttachmentRequest
)
from helpers.errors import AuthorizationError, NotFoundError, ValidationError
from datetime import datetime, timezone, timedelta


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


def make_user(session, username):
    user = User(username=username, email=f"{username}@example.com", hashed_password="hashed_secret")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="board")
def board_fixture(session):
    owner = make_user(session, "owner")
    member = make_user(session, "member")
    outsider = make_user(session, "outsider")
    project = membership.create_project(session, owner_id=owner.id, name="Board Project")
    membership.add_member(session, project, member.id, MemberRole.MEMBER)
    return project, owner, member, outsider


async def new_task(session, project, user, title, **fields):
    return await create_task(
        CreateTaskRequest(title=title, projectId=project.id, **fields),
        user=user,
        db_session=session
    )


async def list_tasks(session, project, user, **filters):
    params = dict(status=None, assigned_to=None, priority=None, due_date=None, search=None, page=1, limit=50)
    params.update(filters)
    return await list_project_tasks(project.id, user=user, db_session=session, **params)


@pytest.mark.asyncio
async def test_create_tasks_append_to_column(session, board):
    project, owner, member, outsider = board

    created = [await new_task(session, project, member, f"Task {i}") for i in range(3)]

    assert [task.position for task in created] == [0, 1, 2]
    assert created[0].created_by.username == "member"
    assert created[0].status == TaskStatus.TODO
    assert created[0].progress == 0


@pytest.mark.asyncio
async def test_create_task_checks_membership_and_assignee(session, board):
    project, owner, member, outsider = board

    with pytest.raises(AuthorizationError):
        await new_task(session, project, outsider, "Sneaky task")
    with pytest.raises(ValidationError):
        await new_task(session, project, owner, "Assigned out", assignedTo=outsider.id)

    assigned = await new_task(session, project, owner, "Assigned in", assignedTo=member.id)
    assert assigned.assigned_to.id == member.id


@pytest.mark.asyncio
async def test_create_in_done_sets_completed_at(session, board):
    project, owner, member, outsider = board

    task = await new_task(session, project, owner, "Already done", status="done")

    assert task.completed_at is not None
    assert task.progress == 100


@pytest.mark.asyncio
async def test_update_status_appends_to_new_column(session, board):
    project, owner, member, outsider = board
    t0, t1, t2 = [await new_task(session, project, owner, f"Task {i}") for i in range(3)]
    r0 = await new_task(session, project, owner, "Review 0", status="review")

    updated = await update_task(
        t0.id,
        UpdateTaskRequest(status="review", title="Task 0 renamed"),
        user=member,
        db_session=session
    )

    assert updated.status == TaskStatus.REVIEW
    assert updated.position == 1
    assert updated.title == "Task 0 renamed"
    assert ordering.column_positions(session, project.id, TaskStatus.TODO) == [t1.id, t2.id]
    assert ordering.column_positions(session, project.id, TaskStatus.REVIEW) == [r0.id, t0.id]
    assert [t.position for t in ordering.column_tasks(session, project.id, TaskStatus.TODO)] == [0, 1]


@pytest.mark.asyncio
async def test_reorder_endpoint(session, board):
    project, owner, member, outsider = board
    t0, t1, t2 = [await new_task(session, project, owner, f"Task {i}") for i in range(3)]

    moved = await reorder_task(
        ReorderTaskRequest(taskId=t0.id, newStatus="todo", newPosition=2, projectId=project.id),
        user=member,
        db_session=session
    )

    assert moved.position == 2
    assert ordering.column_positions(session, project.id, TaskStatus.TODO) == [t1.id, t2.id, t0.id]

    with pytest.raises(AuthorizationError):
        await reorder_task(
            ReorderTaskRequest(taskId=t0.id, newStatus="done", newPosition=0, projectId=project.id),
            user=outsider,
            db_session=session
        )
    with pytest.raises(ValidationError):
        await reorder_task(
            ReorderTaskRequest(taskId=t0.id, newStatus="todo", newPosition=-1, projectId=project.id),
            user=member,
            db_session=session
        )


@pytest.mark.asyncio
async def test_delete_task_closes_gap(session, board):
    project, owner, member, outsider = board
    t0, t1, t2 = [await new_task(session, project, owner, f"Task {i}") for i in range(3)]

    # A plain member cannot delete someone else's task
    with pytest.raises(AuthorizationError):
        await delete_task(t1.id, user=member, db_session=session)

    result = await delete_task(t1.id, user=owner, db_session=session)

    assert result.success is True
    assert session.get(Task, t1.id) is None
    assert [t.position for t in ordering.column_tasks(session, project.id, TaskStatus.TODO)] == [0, 1]
    with pytest.raises(NotFoundError):
        await get_task(t1.id, user=owner, db_session=session)


@pytest.mark.asyncio
async def test_comments_and_attachments(session, board):
    project, owner, member, outsider = board
    task = await new_task(session, project, owner, "Write report")

    commented = await add_comment(task.id, CreateCommentRequest(text=" Looks good "), user=member, db_session=session)
    assert [(c.user_id, c.text) for c in commented.comments] == [(member.id, "Looks good")]

    attached = await add_attachment(
        task.id,
        CreateAttachmentRequest(
            filename="a1b2.pdf",
            originalName="report.pdf",
            mimetype="application/pdf",
            size=2048,
            path="/uploads/a1b2.pdf"
        ),
        user=member,
        db_session=session
    )
    [attachment] = attached.attachments
    assert attachment.original_name == "report.pdf"
    assert attachment.uploaded_by == member.id

    with pytest.raises(AuthorizationError):
        await add_comment(task.id, CreateCommentRequest(text="hi"), user=outsider, db_session=session)


@pytest.mark.asyncio
async def test_list_filters_and_pagination(session, board):
    project, owner, member, outsider = board
    await new_task(session, project, owner, "Fix login bug", priority="high", assignedTo=member.id)
    await new_task(session, project, owner, "Write docs", status="inprogress")
    await new_task(session, project, owner, "Release notes", status="done", description="mention the bug fix")
    await new_task(
        session, project, owner, "Overdue chore",
        dueDate=datetime.now(timezone.utc) - timedelta(days=1)
    )

    everything = await list_tasks(session, project, member)
    assert [t.status for t in everything.tasks] == [
        TaskStatus.TODO, TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.DONE
    ]
    assert everything.pagination.total_tasks == 4

    by_status = await list_tasks(session, project, member, status=TaskStatus.IN_PROGRESS)
    assert [t.title for t in by_status.tasks] == ["Write docs"]

    by_assignee = await list_tasks(session, project, member, assigned_to=member.id)
    assert [t.title for t in by_assignee.tasks] == ["Fix login bug"]

    by_priority = await list_tasks(session, project, member, priority=Priority.HIGH)
    assert [t.title for t in by_priority.tasks] == ["Fix login bug"]

    by_search = await list_tasks(session, project, member, search="bug")
    assert sorted(t.title for t in by_search.tasks) == ["Fix login bug", "Release notes"]

    paged = await list_tasks(session, project, member, page=2, limit=3)
    assert len(paged.tasks) == 1
    assert paged.pagination.total_pages == 2
    assert paged.pagination.has_prev is True
    assert paged.pagination.has_next is False

    with pytest.raises(AuthorizationError):
        await list_tasks(session, project, outsider)


@pytest.mark.asyncio
async def test_stats(session, board):
    project, owner, member, outsider = board
    await new_task(session, project, owner, "Todo task")
    await new_task(session, project, owner, "Done task", status="done", priority="urgent")
    await new_task(
        session, project, owner, "Late task",
        dueDate=datetime.now(timezone.utc) - timedelta(days=2)
    )

    stats = await project_task_stats(project.id, user=member, db_session=session)

    assert stats.total == 3
    assert stats.by_status == {"todo": 2, "inprogress": 0, "review": 0, "done": 1}
    assert stats.by_priority["urgent"] == 1
    assert stats.overdue == 1
    assert stats.completion_rate == 33.3
