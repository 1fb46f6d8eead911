from __future__ import annotations

import enum
from dataclasses import dataclass, asdict
from uuid import UUID

from . import models
from .errors import AuthorizationError

# purpose: derive project roles and capabilities from persisted membership rows
# status: active


class Capability(str, enum.Enum):
    EDIT = "can_edit"
    MANAGE_MEMBERS = "can_manage_members"
    UPLOAD_DOCUMENTS = "can_upload_documents"
    VIEW_DOCUMENTS = "can_view_documents"


@dataclass(frozen=True)
class PermissionSet:
    """The four project capability flags carried by a membership."""

    can_edit: bool = False
    can_manage_members: bool = False
    can_upload_documents: bool = False
    can_view_documents: bool = False

    def allows(self, capability: Capability) -> bool:
        return getattr(self, capability.value)

    def as_columns(self) -> dict[str, bool]:
        return asdict(self)


FULL_ACCESS = PermissionSet(True, True, True, True)

_ROLE_PERMISSIONS: dict[models.ProjectRole, PermissionSet] = {
    models.ProjectRole.PROJECT_MANAGER: FULL_ACCESS,
    models.ProjectRole.RESEARCHER: PermissionSet(
        can_edit=True, can_upload_documents=True, can_view_documents=True
    ),
    models.ProjectRole.COLLABORATOR: PermissionSet(can_upload_documents=True, can_view_documents=True),
    models.ProjectRole.VIEWER: PermissionSet(can_view_documents=True),
}


def default_permissions_for_role(role: models.ProjectRole | str | None) -> PermissionSet:
    """Return the fixed permission row for a project role.

    Unknown roles fall back to the collaborator row.
    """

    try:
        key = models.ProjectRole(role)
    except ValueError:
        key = models.ProjectRole.COLLABORATOR
    return _ROLE_PERMISSIONS[key]


def member_permissions(member: models.ProjectMember) -> PermissionSet:
    return PermissionSet(
        can_edit=bool(member.can_edit),
        can_manage_members=bool(member.can_manage_members),
        can_upload_documents=bool(member.can_upload_documents),
        can_view_documents=bool(member.can_view_documents),
    )


def resolve_membership(project: models.Project, user_id: UUID | None) -> models.ProjectMember | None:
    if user_id is None:
        return None
    return project.members.get(user_id)


def is_creator(project: models.Project, user_id: UUID | None) -> bool:
    return user_id is not None and project.created_by == user_id


def has_capability(project: models.Project, user_id: UUID | None, capability: Capability) -> bool:
    """Return whether ``user_id`` holds ``capability`` on ``project``.

    The creator is checked before the member lookup so a project whose
    creator row went missing still answers to its creator.
    """

    if is_creator(project, user_id):
        return True
    if capability is Capability.VIEW_DOCUMENTS and project.is_public:
        return True
    member = resolve_membership(project, user_id)
    if member is None:
        return False
    return member_permissions(member).allows(capability)


def effective_access(project: models.Project, user_id: UUID | None) -> tuple[models.ProjectRole, PermissionSet]:
    """Return the role and capability set a caller sees for ``project``."""

    member = resolve_membership(project, user_id)
    if member is not None:
        permissions = member_permissions(member)
        if is_creator(project, user_id):
            permissions = FULL_ACCESS
        return member.role, permissions
    if is_creator(project, user_id):
        return models.ProjectRole.PROJECT_MANAGER, FULL_ACCESS
    return models.ProjectRole.VIEWER, PermissionSet(can_view_documents=bool(project.is_public))


def is_member(project: models.Project, user_id: UUID | None) -> bool:
    return is_creator(project, user_id) or resolve_membership(project, user_id) is not None


def can_access_project(project: models.Project, user_id: UUID | None) -> bool:
    return bool(project.is_public) or is_member(project, user_id)


def ensure_capability(
    project: models.Project,
    user: models.User,
    capability: Capability,
    message: str = "Permission denied",
) -> None:
    if not has_capability(project, user.id, capability):
        raise AuthorizationError(message)


def ensure_project_member(project: models.Project, user: models.User, message: str = "Access denied") -> None:
    if not is_member(project, user.id):
        raise AuthorizationError(message)


def ensure_project_access(project: models.Project, user: models.User) -> None:
    if not can_access_project(project, user.id):
        raise AuthorizationError("Access denied")
