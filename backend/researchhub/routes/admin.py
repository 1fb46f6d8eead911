from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import require_admin
from ..pagination import PageParams, paginate, search_filter
from .. import config, models, schemas

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users", response_model=schemas.Envelope[schemas.UserPage])
async def list_users(
    role: Optional[models.UserRole] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    query = db.query(models.User)
    if role:
        query = query.filter(models.User.role == role)
    if search:
        query = query.filter(search_filter(models.User, config.USER_SEARCH_FIELDS, search))
    users, pagination = paginate(query.order_by(models.User.created_at.desc()), params)
    return schemas.Envelope(
        data=schemas.UserPage(
            users=[schemas.UserOut.model_validate(u) for u in users],
            pagination=pagination,
        )
    )


@router.get("/stats", response_model=schemas.Envelope[schemas.AdminStatsOut])
async def user_stats(
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    total = db.query(models.User).count()
    verified = db.query(models.User).filter(models.User.is_email_verified.is_(True)).count()
    rows = db.query(models.User.role, func.count(models.User.id)).group_by(models.User.role).all()
    counts = {models.UserRole(role).value: count for role, count in rows}
    distribution = {role.value: counts.get(role.value, 0) for role in models.UserRole}
    return schemas.Envelope(
        data=schemas.AdminStatsOut(
            total_users=total,
            verified_users=verified,
            unverified_users=total - verified,
            role_distribution=distribution,
        )
    )
