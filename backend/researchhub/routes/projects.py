import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..errors import NotFoundError, ValidationError
from ..pagination import PageParams, paginate, search_filter
from ..services import membership
from .. import config, models, rbac, schemas

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


def get_project_or_404(db: Session, project_id: UUID) -> models.Project:
    project = db.get(models.Project, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


def _with_access(project: models.Project, user_id: Optional[UUID]) -> schemas.ProjectAccessOut:
    out = schemas.ProjectAccessOut.model_validate(project)
    if user_id is not None:
        role, permissions = rbac.effective_access(project, user_id)
        out.user_role = role
        out.user_permissions = schemas.PermissionSetSchema(**permissions.as_columns())
    return out


def _apply_filters(query, status, category, search):
    if status:
        query = query.filter(models.Project.status == status)
    if category:
        query = query.filter(models.Project.category == category)
    if search:
        query = query.filter(search_filter(models.Project, config.PROJECT_SEARCH_FIELDS, search))
    return query


@router.get("/public", response_model=schemas.Envelope[schemas.ProjectPage])
async def list_public_projects(
    category: Optional[models.ProjectCategory] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(),
    db: Session = Depends(get_db),
):
    query = db.query(models.Project).filter(models.Project.is_public.is_(True))
    query = _apply_filters(query, None, category, search)
    projects, pagination = paginate(query.order_by(models.Project.created_at.desc()), params)
    return schemas.Envelope(
        data=schemas.ProjectPage(
            projects=[_with_access(p, None) for p in projects],
            pagination=pagination,
        )
    )


@router.post("", response_model=schemas.Envelope[schemas.ProjectAccessOut], status_code=201)
async def create_project(
    data: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = models.Project(
        title=data.title,
        description=data.description,
        goals=data.goals,
        objectives=data.objectives,
        deliverables=[d.model_dump(mode="json") for d in data.deliverables],
        start_date=data.start_date,
        end_date=data.end_date,
        category=data.category,
        is_public=data.is_public,
        tags=data.tags,
        created_by=user.id,
        status=models.ProjectStatus.PLANNING,
    )
    db.add(project)
    membership.create_owner_membership(db, project, user)
    db.commit()
    db.refresh(project)
    logger.info("Project %s created", project.id, extra={"project_id": str(project.id), "user_id": str(user.id)})
    return schemas.Envelope(message="Project created successfully", data=_with_access(project, user.id))


@router.get("", response_model=schemas.Envelope[schemas.ProjectPage])
async def list_my_projects(
    status: Optional[models.ProjectStatus] = None,
    category: Optional[models.ProjectCategory] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    member_of = db.query(models.ProjectMember.project_id).filter(models.ProjectMember.user_id == user.id)
    query = db.query(models.Project).filter(
        or_(models.Project.created_by == user.id, models.Project.id.in_(member_of))
    )
    query = _apply_filters(query, status, category, search)
    projects, pagination = paginate(query.order_by(models.Project.updated_at.desc()), params)
    return schemas.Envelope(
        data=schemas.ProjectPage(
            projects=[_with_access(p, user.id) for p in projects],
            pagination=pagination,
        )
    )


@router.get("/{project_id}", response_model=schemas.Envelope[schemas.ProjectAccessOut])
async def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_project_access(project, user)
    return schemas.Envelope(data=_with_access(project, user.id))


@router.put("/{project_id}", response_model=schemas.Envelope[schemas.ProjectAccessOut])
async def update_project(
    project_id: UUID,
    update: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(project, user, rbac.Capability.EDIT)
    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    start = changes.get("start_date", project.start_date)
    end = changes.get("end_date", project.end_date)
    if models.as_utc(start) >= models.as_utc(end):
        raise ValidationError("End date must be after start date")
    if update.deliverables is not None:
        changes["deliverables"] = [d.model_dump(mode="json") for d in update.deliverables]
    for key, value in changes.items():
        setattr(project, key, value)
    db.commit()
    db.refresh(project)
    return schemas.Envelope(message="Project updated successfully", data=_with_access(project, user.id))


@router.post("/{project_id}/members", response_model=schemas.Envelope[schemas.ProjectAccessOut])
async def add_project_member(
    project_id: UUID,
    request: schemas.AddMemberRequest,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(project, user, rbac.Capability.MANAGE_MEMBERS)
    target = db.query(models.User).filter(models.User.email == request.email).first()
    if not target:
        raise NotFoundError("User not found with this email address")
    explicit = rbac.PermissionSet(**request.permissions.model_dump()) if request.permissions else None
    membership.add_member(db, project, target, request.role, explicit)
    db.commit()
    db.refresh(project)
    return schemas.Envelope(message="Member added successfully", data=_with_access(project, user.id))


@router.post("/{project_id}/join", response_model=schemas.Envelope[schemas.ProjectAccessOut])
async def join_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    membership.request_self_join(db, project, user)
    db.commit()
    db.refresh(project)
    return schemas.Envelope(message="Successfully joined the project", data=_with_access(project, user.id))


@router.get("/{project_id}/tasks", response_model=schemas.Envelope[list[schemas.TaskOut]])
async def list_tasks(
    project_id: UUID,
    status: Optional[models.TaskStatus] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_project_access(project, user)
    query = db.query(models.ProjectTask).filter(models.ProjectTask.project_id == project.id)
    if status:
        query = query.filter(models.ProjectTask.status == status)
    tasks = query.order_by(models.ProjectTask.created_at).all()
    return schemas.Envelope(data=[schemas.TaskOut.model_validate(t) for t in tasks])


def _check_assignee(project: models.Project, assignee: Optional[UUID]) -> None:
    if assignee is not None and not rbac.is_member(project, assignee):
        raise ValidationError("Tasks can only be assigned to project members")


@router.post("/{project_id}/tasks", response_model=schemas.Envelope[schemas.TaskOut], status_code=201)
async def create_task(
    project_id: UUID,
    task: schemas.TaskCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(project, user, rbac.Capability.EDIT)
    _check_assignee(project, task.assigned_to)
    db_task = models.ProjectTask(project_id=project.id, created_by=user.id, **task.model_dump())
    if db_task.status is models.TaskStatus.COMPLETED:
        db_task.completed_at = models.utcnow()
    db.add(db_task)
    db.commit()
    db.refresh(db_task)
    return schemas.Envelope(message="Task created", data=schemas.TaskOut.model_validate(db_task))


def _get_task(db: Session, project: models.Project, task_id: UUID) -> models.ProjectTask:
    task = db.get(models.ProjectTask, task_id)
    if task is None or task.project_id != project.id:
        raise NotFoundError("Task not found")
    return task


@router.put("/{project_id}/tasks/{task_id}", response_model=schemas.Envelope[schemas.TaskOut])
async def update_task(
    project_id: UUID,
    task_id: UUID,
    update: schemas.TaskUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(project, user, rbac.Capability.EDIT)
    task = _get_task(db, project, task_id)
    changes = update.model_dump(exclude_unset=True)
    _check_assignee(project, changes.get("assigned_to"))
    for key, value in changes.items():
        setattr(task, key, value)
    if "status" in changes:
        task.completed_at = models.utcnow() if task.status is models.TaskStatus.COMPLETED else None
    db.commit()
    db.refresh(task)
    return schemas.Envelope(message="Task updated", data=schemas.TaskOut.model_validate(task))


@router.delete("/{project_id}/tasks/{task_id}", response_model=schemas.Envelope[None])
async def delete_task(
    project_id: UUID,
    task_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_capability(project, user, rbac.Capability.EDIT)
    task = _get_task(db, project, task_id)
    db.delete(task)
    db.commit()
    return schemas.Envelope(message="Task deleted")
