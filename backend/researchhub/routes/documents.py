from typing import Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..pagination import PageParams, paginate, search_filter
from ..services import documents as document_service
from .. import config, models, rbac, schemas, storage
from .projects import get_project_or_404

router = APIRouter(prefix="/api/documents", tags=["documents"])


def _out(document: models.Document) -> schemas.DocumentOut:
    return schemas.DocumentOut.model_validate(document)


def _get_document(db: Session, document_id: UUID) -> models.Document:
    document = db.get(models.Document, document_id)
    if document is None:
        raise NotFoundError("Document not found")
    return document


def _ensure_manage(document: models.Document, user: models.User, action: str) -> None:
    if not document_service.can_manage(document, document.project, user.id):
        raise AuthorizationError(
            f"You can only {action} your own documents or if you are project manager"
        )


@router.post("/upload/{project_id}", response_model=schemas.Envelope[schemas.DocumentOut], status_code=201)
async def upload_document(
    project_id: UUID,
    file: Optional[UploadFile] = File(None),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    category: models.DocumentCategory = Form(models.DocumentCategory.OTHER),
    tags: Optional[str] = Form(None),
    is_public: bool = Form(False),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(
        project,
        user,
        rbac.Capability.UPLOAD_DOCUMENTS,
        "You do not have permission to upload documents to this project",
    )
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    data = await file.read()
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise ValidationError("File exceeds the maximum upload size")
    document = document_service.create_document(
        db,
        project=project,
        uploader=user,
        data=data,
        original_name=file.filename,
        content_type=file.content_type,
        title=title,
        description=description,
        category=category,
        tags=document_service.parse_tags(tags),
        is_public=is_public,
    )
    return schemas.Envelope(message="Document uploaded successfully", data=_out(document))


def _project_documents(db: Session, project_id: UUID, status: models.DocumentStatus):
    return db.query(models.Document).filter(
        models.Document.project_id == project_id,
        models.Document.status == status,
    )


@router.get("/project/{project_id}", response_model=schemas.Envelope[schemas.DocumentPage])
async def list_project_documents(
    project_id: UUID,
    category: Optional[models.DocumentCategory] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(
        project,
        user,
        rbac.Capability.VIEW_DOCUMENTS,
        "You do not have permission to view documents in this project",
    )
    query = _project_documents(db, project.id, models.DocumentStatus.ACTIVE)
    if category:
        query = query.filter(models.Document.category == category)
    if search:
        query = query.filter(search_filter(models.Document, config.DOCUMENT_SEARCH_FIELDS, search))
    documents, pagination = paginate(query.order_by(models.Document.created_at.desc()), params)
    return schemas.Envelope(
        data=schemas.DocumentPage(documents=[_out(d) for d in documents], pagination=pagination)
    )


@router.get("/project/{project_id}/deleted", response_model=schemas.Envelope[schemas.DocumentPage])
async def list_deleted_documents(
    project_id: UUID,
    params: PageParams = Depends(),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(
        project, user, rbac.Capability.EDIT, "Only project managers can view deleted documents"
    )
    query = _project_documents(db, project.id, models.DocumentStatus.DELETED)
    documents, pagination = paginate(query.order_by(models.Document.updated_at.desc()), params)
    return schemas.Envelope(
        data=schemas.DocumentPage(documents=[_out(d) for d in documents], pagination=pagination)
    )


@router.get("/{document_id}", response_model=schemas.Envelope[schemas.DocumentOut])
async def get_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    document = document_service.get_active_document(db, document_id)
    if not document_service.can_view(document, document.project, user.id):
        raise AuthorizationError("You do not have permission to view this document")
    return schemas.Envelope(data=_out(document))


@router.get("/{document_id}/download")
async def download_document(
    document_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    document = document_service.get_active_document(db, document_id)
    if not document_service.can_view(document, document.project, user.id):
        raise AuthorizationError("You do not have permission to download this document")
    if not storage.file_exists(document.file_path):
        raise NotFoundError("File not found on server")
    document_service.record_download(document, user, request.client.host if request.client else None)
    db.commit()
    headers = {
        "Content-Disposition": f"attachment; filename*=UTF-8''{quote(document.original_name)}",
        "Content-Length": str(document.file_size),
    }
    return StreamingResponse(
        storage.iter_file(document.file_path),
        media_type=document.mime_type,
        headers=headers,
    )


@router.put("/{document_id}", response_model=schemas.Envelope[schemas.DocumentOut])
async def update_document(
    document_id: UUID,
    update: schemas.DocumentUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    document = _get_document(db, document_id)
    if document.status is not models.DocumentStatus.ACTIVE:
        raise NotFoundError("Document not available for editing")
    _ensure_manage(document, user, "edit")
    for key, value in update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(document, key, value)
    db.commit()
    db.refresh(document)
    return schemas.Envelope(message="Document updated successfully", data=_out(document))


@router.put("/{document_id}/permissions", response_model=schemas.Envelope[schemas.DocumentOut])
async def update_document_permissions(
    document_id: UUID,
    update: schemas.DocumentPermissionsUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    document = _get_document(db, document_id)
    if document.uploaded_by != user.id:
        raise AuthorizationError("Only document owner can update permissions")
    grants = None
    if update.allowed_users is not None:
        grants = [(g.user_id, g.permission) for g in update.allowed_users]
        wanted = {user_id for user_id, _ in grants}
        found = {row.id for row in db.query(models.User.id).filter(models.User.id.in_(list(wanted)))}
        if wanted - found:
            raise ValidationError("Cannot grant access to unknown users")
    document_service.replace_permissions(
        document, granted_by=user, is_public=update.is_public, grants=grants
    )
    db.commit()
    db.refresh(document)
    return schemas.Envelope(message="Permissions updated successfully", data=_out(document))


@router.delete("/{document_id}", response_model=schemas.Envelope[None])
async def delete_document(
    document_id: UUID,
    hard_delete: bool = False,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    document = _get_document(db, document_id)
    _ensure_manage(document, user, "delete")
    if hard_delete:
        document_service.hard_delete(db, document)
        return schemas.Envelope(message="Document permanently deleted")
    document_service.soft_delete(document)
    db.commit()
    return schemas.Envelope(message="Document deleted successfully")


@router.patch("/{document_id}/restore", response_model=schemas.Envelope[schemas.DocumentOut])
async def restore_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    document = _get_document(db, document_id)
    _ensure_manage(document, user, "restore")
    document_service.restore(document)
    db.commit()
    db.refresh(document)
    return schemas.Envelope(message="Document restored successfully", data=_out(document))
