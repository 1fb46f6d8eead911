from __future__ import annotations

import logging
import os
from typing import Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models, rbac, storage
from ..errors import NotFoundError, StorageError, ValidationError

# purpose: document access control, versioned uploads and soft-delete lifecycle
# status: active
# depends_on: backend.researchhub.storage, backend.researchhub.rbac

logger = logging.getLogger(__name__)


def has_permission(
    document: models.Document,
    user_id: UUID | None,
    requested: models.PermissionLevel | str = models.PermissionLevel.VIEW,
) -> bool:
    """Check the per-document ACL.

    The uploader always passes. Public documents pass ``view``. Otherwise the
    caller needs a grant whose level is at least the requested one, with
    ``view < comment < edit < download``.
    """

    requested = models.PermissionLevel(requested)
    if user_id is not None and document.uploaded_by == user_id:
        return True
    if document.is_public and requested is models.PermissionLevel.VIEW:
        return True
    if user_id is None:
        return False
    grant = document.allowed_users.get(user_id)
    if grant is None:
        return False
    return models.PermissionLevel(grant.permission).rank >= requested.rank


def can_view(document: models.Document, project: models.Project, user_id: UUID) -> bool:
    """Any ACL grant (every level ranks at or above view) or project-level
    ``can_view_documents``."""

    return (
        has_permission(document, user_id, models.PermissionLevel.VIEW)
        or rbac.has_capability(project, user_id, rbac.Capability.VIEW_DOCUMENTS)
    )


def can_manage(document: models.Document, project: models.Project, user_id: UUID) -> bool:
    """Owner, or a project member allowed to edit the project."""

    return document.uploaded_by == user_id or rbac.has_capability(project, user_id, rbac.Capability.EDIT)


def parse_tags(raw: str | Iterable[str] | None) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    return [tag.strip() for tag in raw if tag and tag.strip()]


def create_document(
    db: Session,
    *,
    project: models.Project,
    uploader: models.User,
    data: bytes,
    original_name: str,
    content_type: str | None,
    title: str,
    description: str | None = None,
    category: models.DocumentCategory = models.DocumentCategory.OTHER,
    tags: list[str] | None = None,
    is_public: bool = False,
) -> models.Document:
    """Store the bytes, then record the document with its first version.

    The file is written first; if the database commit fails the stored file
    is removed again before the error propagates.
    """

    if not title or not title.strip():
        raise ValidationError("Document title is required")
    if not data:
        raise ValidationError("No file uploaded")

    stored = storage.save_file(
        data,
        original_name,
        content_type=content_type,
        namespace=f"projects/{project.id}",
    )
    try:
        document = models.Document(
            project_id=project.id,
            uploaded_by=uploader.id,
            title=title.strip(),
            description=(description or "").strip(),
            file_name=stored.file_name,
            original_name=original_name,
            file_path=stored.path,
            file_size=stored.size,
            mime_type=stored.mime_type,
            file_extension=os.path.splitext(original_name)[1],
            category=category,
            tags=tags or [],
            is_public=is_public,
            current_version=1,
            status=models.DocumentStatus.ACTIVE,
        )
        document.versions.append(
            models.DocumentVersion(
                version_number=1,
                file_name=stored.file_name,
                file_path=stored.path,
                file_size=stored.size,
                uploaded_by=uploader.id,
                uploaded_at=models.utcnow(),
                change_log="Initial upload",
            )
        )
        db.add(document)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Document record for %s failed; removing stored file", original_name, exc_info=True)
        storage.discard_file(stored.path)
        raise StorageError("Upload failed") from exc
    db.refresh(document)
    logger.info(
        "Document %s uploaded to project %s", document.id, project.id,
        extra={"document_id": str(document.id), "project_id": str(project.id)},
    )
    return document


def replace_permissions(
    document: models.Document,
    *,
    granted_by: models.User,
    is_public: bool | None = None,
    grants: list[tuple[UUID, models.PermissionLevel]] | None = None,
) -> models.Document:
    """Update the public flag and, when given, replace the ACL wholesale."""

    if is_public is not None:
        document.is_public = is_public
    if grants is not None:
        now = models.utcnow()
        seen: dict[UUID, models.PermissionLevel] = {}
        for user_id, level in grants:
            seen[user_id] = models.PermissionLevel(level)
        for user_id in list(document.allowed_users):
            if user_id not in seen:
                del document.allowed_users[user_id]
        for user_id, level in seen.items():
            existing = document.allowed_users.get(user_id)
            if existing is not None and existing.permission == level:
                continue
            document.allowed_users[user_id] = models.DocumentPermission(
                user_id=user_id,
                permission=level,
                granted_by=granted_by.id,
                granted_at=now,
            )
    return document


def soft_delete(document: models.Document) -> models.Document:
    document.status = models.DocumentStatus.DELETED
    return document


def restore(document: models.Document) -> models.Document:
    if document.status is not models.DocumentStatus.DELETED:
        raise ValidationError("Document is not deleted")
    document.status = models.DocumentStatus.ACTIVE
    return document


def hard_delete(db: Session, document: models.Document) -> None:
    """Remove the record and every stored version file."""

    document_id = document.id
    paths = {document.file_path, *(version.file_path for version in document.versions)}
    db.delete(document)
    db.commit()
    for path in paths:
        storage.discard_file(path)
    logger.info("Document %s permanently deleted", document_id, extra={"document_id": str(document_id)})


def record_download(document: models.Document, user: models.User, ip_address: str | None) -> None:
    now = models.utcnow()
    document.downloads.append(
        models.DocumentDownload(user_id=user.id, downloaded_at=now, ip_address=ip_address)
    )
    document.view_count = (document.view_count or 0) + 1
    document.last_viewed_at = now


def get_active_document(db: Session, document_id: UUID) -> models.Document:
    document = db.get(models.Document, document_id)
    if document is None:
        raise NotFoundError("Document not found")
    if document.status is not models.DocumentStatus.ACTIVE:
        raise NotFoundError("Document not available")
    return document
