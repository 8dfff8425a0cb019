"""
Feature: Project REST endpoints
  As a team lead
  I want to create projects and manage who is in them
  So that each board and chat room has the right people

Scenario: Create and list projects
  When a user creates a project
  Then they are its owner and it appears in their project list

Scenario: Join with an invite code and manage members
  Given a public project
  When another user joins with its invite code
  Then the owner can promote them, transfer ownership, or remove them

Scenario: Edit and delete
  Then only owners and admins may edit the project
  And only the owner may delete it
"""

import pytest
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User
from models.projects import MemberRole, ProjectStatus
from apis.projects import (
    list_projects, create_project, join_project, get_project, update_project, delete_project,
    leave_project, invite_member, update_member_role, remove_member
)
from apis.schemas.projects import (
    CreateProjectRequest, UpdateProjectRequest, JoinProjectRequest, InviteMemberRequest, UpdateMemberRoleRequest
)
from helpers.errors import AuthorizationError, NotFoundError, ValidationError


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


def roles(project_response):
    return {member.user.username: member.role for member in project_response.members}


@pytest.mark.asyncio
async def test_create_and_list_projects(session):
    owner = make_user(session, "owner")

    created = await create_project(
        CreateProjectRequest(name="Launch", tags=["q3", " web "], color="#FF0000"),
        user=owner,
        db_session=session
    )

    assert created.owner_id == owner.id
    assert created.tags == ["q3", "web"]
    assert created.status == ProjectStatus.PLANNING
    assert len(created.invite_code) == 8
    assert roles(created) == {"owner": MemberRole.OWNER}

    listed = await list_projects(user=owner, db_session=session)
    assert listed.count == 1
    assert listed.projects[0].id == created.id

    detail = await get_project(created.id, user=owner, db_session=session)
    assert detail.task_count == 0


def test_create_request_validation():
    with pytest.raises(ValueError):
        CreateProjectRequest(name="ab")
    with pytest.raises(ValueError):
        CreateProjectRequest(name="Valid", tags=["x" * 21])
    with pytest.raises(ValueError):
        CreateProjectRequest(name="Valid", color="blue")


@pytest.mark.asyncio
async def test_join_promote_transfer_and_remove(session):
    owner = make_user(session, "owner")
    joiner = make_user(session, "joiner")
    project = await create_project(CreateProjectRequest(name="Open Project"), user=owner, db_session=session)

    # Join with the invite code
    joined = await join_project(JoinProjectRequest(inviteCode=project.invite_code), user=joiner, db_session=session)
    assert roles(joined) == {"owner": MemberRole.OWNER, "joiner": MemberRole.MEMBER}

    # A member cannot change the owner's role
    with pytest.raises(AuthorizationError):
        await update_member_role(
            project.id, owner.id, UpdateMemberRoleRequest(role="member"), user=joiner, db_session=session
        )

    # Transfer ownership
    transferred = await update_member_role(
        project.id, joiner.id, UpdateMemberRoleRequest(role="owner"), user=owner, db_session=session
    )
    assert transferred.owner_id == joiner.id
    assert roles(transferred) == {"owner": MemberRole.ADMIN, "joiner": MemberRole.OWNER}

    # The new owner removes the old one
    removed = await remove_member(project.id, owner.id, user=joiner, db_session=session)
    assert roles(removed) == {"joiner": MemberRole.OWNER}


@pytest.mark.asyncio
async def test_invite_and_leave(session):
    owner = make_user(session, "owner")
    guest = make_user(session, "guest")
    project = await create_project(CreateProjectRequest(name="Invite Only"), user=owner, db_session=session)

    invited = await invite_member(
        project.id, InviteMemberRequest(email="guest@example.com", role="admin"), user=owner, db_session=session
    )
    assert roles(invited)["guest"] == MemberRole.ADMIN

    with pytest.raises(ValidationError):
        await leave_project(project.id, user=owner, db_session=session)

    left = await leave_project(project.id, user=guest, db_session=session)
    assert left.success is True
    listed = await list_projects(user=guest, db_session=session)
    assert listed.count == 0


@pytest.mark.asyncio
async def test_update_and_delete_permissions(session):
    owner = make_user(session, "owner")
    member = make_user(session, "member")
    outsider = make_user(session, "outsider")
    project = await create_project(CreateProjectRequest(name="Guarded"), user=owner, db_session=session)
    await join_project(JoinProjectRequest(inviteCode=project.invite_code), user=member, db_session=session)

    with pytest.raises(AuthorizationError):
        await update_project(project.id, UpdateProjectRequest(name="Hijacked"), user=member, db_session=session)
    with pytest.raises(AuthorizationError):
        await get_project(project.id, user=outsider, db_session=session)

    updated = await update_project(
        project.id,
        UpdateProjectRequest(name="Guarded v2", status="active", isPrivate=True),
        user=owner,
        db_session=session
    )
    assert updated.name == "Guarded v2"
    assert updated.status == ProjectStatus.ACTIVE
    assert updated.is_private is True
    assert updated.invite_code is None

    with pytest.raises(AuthorizationError):
        await delete_project(project.id, user=member, db_session=session)

    result = await delete_project(project.id, user=owner, db_session=session)
    assert result.success is True
    with pytest.raises(NotFoundError):
        await get_project(project.id, user=owner, db_session=session)
