from fastapi import APIRouter, Depends
from sqlmodel import Session, select, func
from database import get_session
from models.auth import User
from models.boards import Task
from models.projects import Project
from models.helper import utcnow
from .schemas.auth import UserSummary, SuccessResponse
from .schemas.projects import (
    CreateProjectRequest, UpdateProjectRequest, JoinProjectRequest, InviteMemberRequest,
    UpdateMemberRoleRequest, MemberResponse, ProjectResponse, ProjectListResponse
)
from helpers.auth import get_current_user
from services import membership

router = APIRouter(prefix="/projects", tags=["projects"])


def build_project_response(db_session: Session, project: Project, with_task_count: bool = False) -> ProjectResponse:
    """Project with its members' public profiles."""
    members = []
    for member in membership.list_members(db_session, project.id):
        user = db_session.get(User, member.user_id)
        if not user:
            continue
        members.append(MemberResponse(
            user=UserSummary.model_validate(user),
            role=member.role,
            joined_at=member.joined_at
        ))

    response = ProjectResponse.model_validate(project)
    response.members = members
    if with_task_count:
        count_statement = select(func.count()).select_from(Task).where(Task.project_id == project.id)
        response.task_count = db_session.exec(count_statement).one()
    return response


@router.get("")
async def list_projects(
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectListResponse:
    """Projects the caller is a member of, most recently updated first."""
    projects = membership.user_projects(db_session, user.id)
    return ProjectListResponse(
        count=len(projects),
        projects=[build_project_response(db_session, project) for project in projects]
    )


@router.post("", status_code=201)
async def create_project(
    project_data: CreateProjectRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectResponse:
    """Create a project owned by the caller."""
    project = membership.create_project(
        db_session,
        owner_id=user.id,
        **project_data.model_dump()
    )
    return build_project_response(db_session, project)


@router.post("/join")
async def join_project(
    join_data: JoinProjectRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectResponse:
    """Join a public project with its invite code."""
    project = membership.join_by_invite_code(db_session, join_data.invite_code, user.id)
    return build_project_response(db_session, project)


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectResponse:
    project = membership.get_project(db_session, project_id)
    membership.require_member(db_session, project_id, user.id)
    return build_project_response(db_session, project, with_task_count=True)


@router.put("/{project_id}")
async def update_project(
    project_id: str,
    project_data: UpdateProjectRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectResponse:
    """Update project settings (owner and admins)."""
    project = membership.get_project(db_session, project_id)
    membership.require_editor(db_session, project_id, user.id)

    # Update only provided fields
    changes = project_data.model_dump(exclude_unset=True)
    is_private = changes.pop("is_private", None)
    for field, value in changes.items():
        if value is not None:
            setattr(project, field, value)
    if is_private is not None:
        membership.set_privacy(project, is_private)

    project.updated_at = utcnow()
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)

    return build_project_response(db_session, project)


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> SuccessResponse:
    project = membership.get_project(db_session, project_id)
    membership.delete_project(db_session, project, user.id)
    return SuccessResponse(message="Project deleted successfully")


@router.post("/{project_id}/leave")
async def leave_project(
    project_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> SuccessResponse:
    project = membership.get_project(db_session, project_id)
    membership.leave_project(db_session, project, user.id)
    return SuccessResponse(message="Left project successfully")


@router.post("/{project_id}/invite")
async def invite_member(
    project_id: str,
    invite_data: InviteMemberRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectResponse:
    """Add a registered user to the project by email."""
    project = membership.get_project(db_session, project_id)
    membership.invite_by_email(db_session, project, user.id, invite_data.email, invite_data.role)
    db_session.refresh(project)
    return build_project_response(db_session, project)


@router.put("/{project_id}/members/{user_id}/role")
async def update_member_role(
    project_id: str,
    user_id: str,
    role_data: UpdateMemberRoleRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectResponse:
    """Change a member's role. Promoting to owner transfers ownership."""
    project = membership.get_project(db_session, project_id)
    membership.update_member_role(db_session, project, user.id, user_id, role_data.role)
    db_session.refresh(project)
    return build_project_response(db_session, project)


@router.delete("/{project_id}/members/{user_id}")
async def remove_member(
    project_id: str,
    user_id: str,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> ProjectResponse:
    project = membership.get_project(db_session, project_id)
    membership.remove_member(db_session, project, user.id, user_id)
    db_session.refresh(project)
    return build_project_response(db_session, project)
