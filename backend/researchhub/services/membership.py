from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, rbac
from ..errors import AlreadyMember, DuplicateMember, NotPublic, UnverifiedUser

# purpose: create project memberships with role-derived capability rows
# status: active
# depends_on: backend.researchhub.rbac

logger = logging.getLogger(__name__)


def _insert_member(
    db: Session,
    project: models.Project,
    user: models.User,
    role: models.ProjectRole,
    permissions: rbac.PermissionSet,
    duplicate_error: type[Exception],
) -> models.ProjectMember:
    member = models.ProjectMember(
        user_id=user.id,
        role=role,
        joined_at=models.utcnow(),
        **permissions.as_columns(),
    )
    project.members[user.id] = member
    try:
        # composite primary key makes the insert the uniqueness check
        db.flush()
    except IntegrityError:
        db.rollback()
        raise duplicate_error()
    return member


def create_owner_membership(db: Session, project: models.Project, user: models.User) -> models.ProjectMember:
    """Record the project creator as its manager with every capability."""

    return _insert_member(
        db,
        project,
        user,
        models.ProjectRole.PROJECT_MANAGER,
        rbac.default_permissions_for_role(models.ProjectRole.PROJECT_MANAGER),
        DuplicateMember,
    )


def add_member(
    db: Session,
    project: models.Project,
    user: models.User,
    role: models.ProjectRole | str = models.ProjectRole.COLLABORATOR,
    explicit_permissions: rbac.PermissionSet | None = None,
) -> models.ProjectMember:
    """Add ``user`` to ``project``.

    Raises ``DuplicateMember`` when the user already has a membership row and
    ``UnverifiedUser`` when the user has not confirmed their email. The
    permission row comes from ``explicit_permissions`` when given, otherwise
    from the role table.
    """

    if rbac.resolve_membership(project, user.id) is not None:
        raise DuplicateMember()
    if not user.is_email_verified:
        raise UnverifiedUser(
            errors=["The user must verify their email address before being added to any project."]
        )
    try:
        project_role = models.ProjectRole(role)
    except ValueError:
        project_role = models.ProjectRole.COLLABORATOR
    permissions = explicit_permissions or rbac.default_permissions_for_role(project_role)
    member = _insert_member(db, project, user, project_role, permissions, DuplicateMember)
    logger.info(
        "Added %s to project %s as %s", user.id, project.id, project_role.value,
        extra={"project_id": str(project.id), "user_id": str(user.id)},
    )
    return member


def request_self_join(db: Session, project: models.Project, user: models.User) -> models.ProjectMember:
    """Join a public project as a collaborator.

    The role and permission row are fixed so self-join never escalates.
    """

    if not project.is_public:
        raise NotPublic()
    if rbac.is_member(project, user.id):
        raise AlreadyMember()
    role = models.ProjectRole.COLLABORATOR
    member = _insert_member(db, project, user, role, rbac.default_permissions_for_role(role), AlreadyMember)
    logger.info(
        "User %s joined public project %s", user.id, project.id,
        extra={"project_id": str(project.id), "user_id": str(user.id)},
    )
    return member
