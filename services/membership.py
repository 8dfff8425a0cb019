"""
Project membership and role rules.

Roles are ordered owner > admin > member. What each role may do is listed
once in ROLE_CAPABILITIES; the operations below consult that table instead
of comparing role strings. A project has exactly one owner at any time:
ownership moves only through `update_member_role(..., MemberRole.OWNER)`,
which demotes the previous owner to admin in the same commit.
"""

from sqlmodel import Session, select
from typing import NamedTuple, FrozenSet, List, Optional
from models.projects import Project, ProjectMember, MemberRole
from models.boards import Task
from models.messages import Message
from models.auth import User
from models.helper import generate_invite_code, utcnow
from helpers.errors import AuthorizationError, NotFoundError, ValidationError
from settings import logger


class RoleCapabilities(NamedTuple):
    can_edit: bool
    can_invite: bool
    # Roles this role may hand out through update_member_role
    assignable_roles: FrozenSet[MemberRole]
    # Current roles of members this role may re-role or remove
    manageable_roles: FrozenSet[MemberRole]


ROLE_CAPABILITIES = {
    MemberRole.OWNER: RoleCapabilities(
        can_edit=True,
        can_invite=True,
        assignable_roles=frozenset({MemberRole.OWNER, MemberRole.ADMIN, MemberRole.MEMBER}),
        manageable_roles=frozenset({MemberRole.ADMIN, MemberRole.MEMBER}),
    ),
    MemberRole.ADMIN: RoleCapabilities(
        can_edit=True,
        can_invite=True,
        assignable_roles=frozenset({MemberRole.ADMIN, MemberRole.MEMBER}),
        manageable_roles=frozenset({MemberRole.MEMBER}),
    ),
    MemberRole.MEMBER: RoleCapabilities(
        can_edit=False,
        can_invite=True,
        assignable_roles=frozenset(),
        manageable_roles=frozenset(),
    ),
}


def parse_role(value) -> MemberRole:
    try:
        return MemberRole(value)
    except ValueError:
        raise ValidationError("Role must be member, admin, or owner")


def get_project(db_session: Session, project_id: str) -> Project:
    project = db_session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    return project


def get_membership(db_session: Session, project_id: str, user_id: str) -> Optional[ProjectMember]:
    statement = select(ProjectMember).where(
        ProjectMember.project_id == project_id,
        ProjectMember.user_id == user_id
    )
    return db_session.exec(statement).first()


def list_members(db_session: Session, project_id: str) -> List[ProjectMember]:
    statement = (
        select(ProjectMember)
        .where(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.joined_at)
    )
    return list(db_session.exec(statement).all())


def get_role(db_session: Session, project_id: str, user_id: str) -> Optional[MemberRole]:
    membership = get_membership(db_session, project_id, user_id)
    return membership.role if membership else None


def is_member(db_session: Session, project_id: str, user_id: str) -> bool:
    return get_membership(db_session, project_id, user_id) is not None


def can_edit(db_session: Session, project_id: str, user_id: str) -> bool:
    role = get_role(db_session, project_id, user_id)
    return role is not None and ROLE_CAPABILITIES[role].can_edit


def require_member(db_session: Session, project_id: str, user_id: str) -> ProjectMember:
    membership = get_membership(db_session, project_id, user_id)
    if not membership:
        raise AuthorizationError("Access denied. You are not a member of this project.")
    return membership


def require_editor(db_session: Session, project_id: str, user_id: str) -> ProjectMember:
    membership = require_member(db_session, project_id, user_id)
    if not ROLE_CAPABILITIES[membership.role].can_edit:
        raise AuthorizationError("Access denied. You need admin or owner privileges.")
    return membership


def user_projects(db_session: Session, user_id: str) -> List[Project]:
    """Projects the user belongs to, most recently updated first."""
    statement = (
        select(Project)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == user_id)
        .order_by(Project.updated_at.desc())
    )
    return list(db_session.exec(statement).all())


def create_project(db_session: Session, owner_id: str, **fields) -> Project:
    """Create a project with its owner as the first member."""
    project = Project(owner_id=owner_id, **fields)
    project.invite_code = None if project.is_private else generate_invite_code()

    db_session.add(project)
    db_session.add(ProjectMember(project_id=project.id, user_id=owner_id, role=MemberRole.OWNER))
    db_session.commit()
    db_session.refresh(project)

    logger.info("Project created", extra={"project_id": project.id, "owner_id": owner_id})
    return project


def set_privacy(project: Project, is_private: bool) -> None:
    """Private projects carry no invite code; public ones always carry one."""
    project.is_private = is_private
    if is_private:
        project.invite_code = None
    elif not project.invite_code:
        project.invite_code = generate_invite_code()


def add_member(
    db_session: Session,
    project: Project,
    user_id: str,
    role: MemberRole = MemberRole.MEMBER
) -> ProjectMember:
    if role == MemberRole.OWNER:
        raise ValidationError("Ownership can only be transferred by the current owner")
    if is_member(db_session, project.id, user_id):
        raise ValidationError("User is already a member of this project")

    membership = ProjectMember(project_id=project.id, user_id=user_id, role=role)
    project.updated_at = utcnow()
    db_session.add(membership)
    db_session.add(project)
    db_session.commit()
    db_session.refresh(membership)

    logger.info("Member added to project", extra={
        "project_id": project.id,
        "user_id": user_id,
        "role": role.value
    })
    return membership


def join_by_invite_code(db_session: Session, invite_code: str, user_id: str) -> Project:
    if not invite_code:
        raise ValidationError("Invite code is required")

    statement = select(Project).where(Project.invite_code == invite_code.strip().upper())
    project = db_session.exec(statement).first()
    if not project:
        raise NotFoundError("Invalid invite code")

    if is_member(db_session, project.id, user_id):
        raise ValidationError("You are already a member of this project")

    add_member(db_session, project, user_id)
    return project


def invite_by_email(
    db_session: Session,
    project: Project,
    requester_id: str,
    email: str,
    role: MemberRole = MemberRole.MEMBER
) -> ProjectMember:
    requester = require_member(db_session, project.id, requester_id)
    capabilities = ROLE_CAPABILITIES[requester.role]
    if not capabilities.can_invite:
        raise AuthorizationError("Access denied. You cannot invite members to this project.")
    if role not in capabilities.assignable_roles and role != MemberRole.MEMBER:
        raise AuthorizationError(f"Access denied. You cannot invite members as {role.value}.")

    user = db_session.exec(select(User).where(User.email == email.strip().lower())).first()
    if not user or not user.is_active:
        raise NotFoundError("No active user with this email")

    return add_member(db_session, project, user.id, role)


def update_member_role(
    db_session: Session,
    project: Project,
    requester_id: str,
    target_user_id: str,
    new_role: MemberRole
) -> ProjectMember:
    """Change a member's role; promoting to owner transfers ownership."""
    new_role = parse_role(new_role)

    requester = require_member(db_session, project.id, requester_id)
    capabilities = ROLE_CAPABILITIES[requester.role]
    if not capabilities.assignable_roles:
        raise AuthorizationError("Access denied. Owner or admin privileges required to change member roles.")

    target = get_membership(db_session, project.id, target_user_id)
    if not target:
        raise NotFoundError("User is not a member of this project")

    if target.role == new_role:
        return target

    if target.id == requester.id:
        if requester.role == MemberRole.OWNER:
            raise ValidationError("Transfer ownership to another member before changing your own role")
        raise AuthorizationError("Access denied. You cannot change your own role.")

    if target.role not in capabilities.manageable_roles:
        raise AuthorizationError(
            f"Access denied. Your role cannot change the role of a project {target.role.value}."
        )
    if new_role not in capabilities.assignable_roles:
        raise AuthorizationError(f"Access denied. Your role cannot assign the {new_role.value} role.")

    if new_role == MemberRole.OWNER:
        # Single-owner rule: the current owner steps down to admin
        requester.role = MemberRole.ADMIN
        project.owner_id = target.user_id
        db_session.add(requester)

    target.role = new_role
    project.updated_at = utcnow()
    db_session.add(target)
    db_session.add(project)
    db_session.commit()
    db_session.refresh(target)

    logger.info("Member role updated", extra={
        "project_id": project.id,
        "requester_id": requester_id,
        "target_user_id": target_user_id,
        "new_role": new_role.value
    })
    return target


def remove_member(
    db_session: Session,
    project: Project,
    requester_id: str,
    target_user_id: str
) -> None:
    requester = require_member(db_session, project.id, requester_id)

    target = get_membership(db_session, project.id, target_user_id)
    if not target:
        raise NotFoundError("User is not a member of this project")

    if target.role == MemberRole.OWNER:
        raise AuthorizationError("Access denied. The project owner cannot be removed; transfer ownership first.")

    if target.role not in ROLE_CAPABILITIES[requester.role].manageable_roles:
        raise AuthorizationError(
            f"Access denied. Your role cannot remove a project {target.role.value}."
        )

    project.updated_at = utcnow()
    db_session.delete(target)
    db_session.add(project)
    db_session.commit()

    logger.info("Member removed from project", extra={
        "project_id": project.id,
        "requester_id": requester_id,
        "target_user_id": target_user_id
    })


def leave_project(db_session: Session, project: Project, user_id: str) -> None:
    membership = get_membership(db_session, project.id, user_id)
    if not membership:
        raise ValidationError("You are not a member of this project")

    if membership.role == MemberRole.OWNER:
        raise ValidationError(
            "Project owner cannot leave the project. Transfer ownership or delete the project instead."
        )

    db_session.delete(membership)
    db_session.commit()

    logger.info("Member left project", extra={"project_id": project.id, "user_id": user_id})


def delete_project(db_session: Session, project: Project, requester_id: str) -> None:
    """Owner only. Removes memberships, tasks and messages with the project."""
    if project.owner_id != requester_id:
        raise AuthorizationError("Access denied. Only project owner can delete the project.")

    # Replies point at other messages of the same project
    for message in db_session.exec(select(Message).where(Message.project_id == project.id)).all():
        message.reply_to_id = None
        db_session.add(message)
    db_session.flush()

    for model in (Message, Task, ProjectMember):
        for row in db_session.exec(select(model).where(model.project_id == project.id)).all():
            db_session.delete(row)

    db_session.delete(project)
    db_session.commit()

    logger.info("Project deleted", extra={"project_id": project.id, "requester_id": requester_id})
