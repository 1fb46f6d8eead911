from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import ConflictError, NotFoundError
from .. import models, schemas

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/profile", response_model=schemas.Envelope[schemas.UserOut])
async def get_profile(user: models.User = Depends(get_current_user)):
    return schemas.Envelope(data=schemas.UserOut.model_validate(user))


@router.put("/profile", response_model=schemas.Envelope[schemas.UserOut])
async def update_profile(
    update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if update.username and update.username != user.username:
        taken = (
            db.query(models.User)
            .filter(models.User.username == update.username, models.User.id != user.id)
            .first()
        )
        if taken:
            raise ConflictError("Username already taken")
        user.username = update.username
    if update.affiliation:
        user.affiliation = update.affiliation
    db.commit()
    db.refresh(user)
    return schemas.Envelope(
        message="Profile updated successfully",
        data=schemas.UserOut.model_validate(user),
    )


@router.get("/dashboard", response_model=schemas.Envelope[schemas.DashboardOut])
async def dashboard(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    owned = db.query(models.Project).filter(models.Project.created_by == user.id).count()
    total = (
        db.query(models.Project)
        .outerjoin(
            models.ProjectMember,
            (models.ProjectMember.project_id == models.Project.id)
            & (models.ProjectMember.user_id == user.id),
        )
        .filter(or_(models.Project.created_by == user.id, models.ProjectMember.user_id == user.id))
        .count()
    )
    documents = (
        db.query(models.Document)
        .filter(
            models.Document.uploaded_by == user.id,
            models.Document.status == models.DocumentStatus.ACTIVE,
        )
        .count()
    )
    discussions = db.query(models.Discussion).filter(models.Discussion.created_by == user.id).count()
    stats = schemas.DashboardStats(
        total_projects=total,
        owned_projects=owned,
        total_collaborations=total - owned,
        total_documents=documents,
        total_discussions=discussions,
    )
    return schemas.Envelope(
        data=schemas.DashboardOut(user=schemas.UserOut.model_validate(user), stats=stats)
    )


@router.get("/check-status", response_model=schemas.Envelope[schemas.UserStatusOut])
async def check_status(
    email: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    target = db.query(models.User).filter(models.User.email == email.strip()).first()
    if not target:
        raise NotFoundError("User not found")
    return schemas.Envelope(
        data=schemas.UserStatusOut(
            username=target.username,
            email=target.email,
            role=target.role,
            affiliation=target.affiliation,
            is_email_verified=target.is_email_verified,
            can_be_added_to_project=target.is_email_verified,
            member_since=target.created_at,
        )
    )
