from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from ..pagination import PageParams, paginate, search_filter
from ..services import forums
from .. import config, models, rbac, schemas
from .projects import get_project_or_404

router = APIRouter(prefix="/api/forums", tags=["forums"])


def _discussion_out(discussion: models.Discussion) -> schemas.DiscussionOut:
    return schemas.DiscussionOut.model_validate(discussion)


def _thread_response(data: dict) -> JSONResponse:
    # replies arrive as rendered dicts of any nesting depth; no model pass over them
    body = schemas.Envelope().model_dump(mode="json")
    body["data"] = data
    return JSONResponse(content=body)


@router.post("/project/{project_id}", response_model=schemas.Envelope[schemas.ForumOut], status_code=201)
async def create_forum(
    project_id: UUID,
    forum: schemas.ForumCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    db_forum = forums.create_forum(db, project, user, forum)
    return schemas.Envelope(data=schemas.ForumOut.model_validate(db_forum))


@router.get("/project/{project_id}", response_model=schemas.Envelope[list[schemas.ForumOut]])
async def list_forums(
    project_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(db, project_id)
    rbac.ensure_project_access(project, user)
    rows = (
        db.query(models.Forum)
        .filter(models.Forum.project_id == project.id, models.Forum.is_active.is_(True))
        .order_by(models.Forum.created_at.desc())
        .all()
    )
    return schemas.Envelope(data=[schemas.ForumOut.model_validate(f) for f in rows])


@router.post("/{forum_id}/discussions", response_model=schemas.Envelope[schemas.DiscussionOut], status_code=201)
async def create_discussion(
    forum_id: UUID,
    discussion: schemas.DiscussionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    forum = forums.get_forum(db, forum_id)
    project = get_project_or_404(db, forum.project_id)
    db_discussion = forums.create_discussion(db, forum, project, user, discussion)
    return schemas.Envelope(data=_discussion_out(db_discussion))


@router.get("/{forum_id}/discussions", response_model=schemas.Envelope[schemas.DiscussionPage])
async def list_discussions(
    forum_id: UUID,
    status: models.DiscussionStatus = models.DiscussionStatus.ACTIVE,
    search: Optional[str] = None,
    params: PageParams = Depends(),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    forum = forums.get_forum(db, forum_id)
    rbac.ensure_project_access(get_project_or_404(db, forum.project_id), user)
    query = db.query(models.Discussion).filter(
        models.Discussion.forum_id == forum.id,
        models.Discussion.status == status,
    )
    if search:
        query = query.filter(search_filter(models.Discussion, config.DISCUSSION_SEARCH_FIELDS, search))
    query = query.order_by(models.Discussion.is_pinned.desc(), models.Discussion.last_activity.desc())
    rows, pagination = paginate(query, params)
    return schemas.Envelope(
        data=schemas.DiscussionPage(discussions=[_discussion_out(d) for d in rows], pagination=pagination)
    )


@router.get("/discussions/{discussion_id}", response_model=schemas.Envelope[schemas.DiscussionDetailOut])
async def get_discussion(
    discussion_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    discussion = forums.get_discussion(db, discussion_id)
    rbac.ensure_project_access(get_project_or_404(db, discussion.project_id), user)
    forums.record_view(db, discussion)
    replies = forums.active_replies_query(db, discussion.id).all()
    return _thread_response(
        {
            "discussion": _discussion_out(discussion).model_dump(mode="json"),
            "replies": forums.tree_to_dicts(forums.build_reply_tree(replies)),
        }
    )


@router.post("/discussions/{discussion_id}/close", response_model=schemas.Envelope[schemas.DiscussionOut])
async def close_discussion(
    discussion_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    discussion = forums.get_discussion(db, discussion_id)
    discussion = forums.close_discussion(db, discussion, user)
    return schemas.Envelope(message="Discussion closed", data=_discussion_out(discussion))


@router.post("/discussions/{discussion_id}/pin", response_model=schemas.Envelope[schemas.DiscussionOut])
async def pin_discussion(
    discussion_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    discussion = forums.get_discussion(db, discussion_id)
    discussion = forums.toggle_pin(db, discussion, user)
    message = "Discussion pinned" if discussion.is_pinned else "Discussion unpinned"
    return schemas.Envelope(message=message, data=_discussion_out(discussion))


@router.post(
    "/discussions/{discussion_id}/replies",
    response_model=schemas.Envelope[schemas.ReplyOut],
    status_code=201,
)
async def create_reply(
    discussion_id: UUID,
    reply: schemas.ReplyCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    discussion = forums.get_discussion(db, discussion_id)
    project = get_project_or_404(db, discussion.project_id)
    db_reply = forums.create_reply(db, discussion, project, user, reply)
    return schemas.Envelope(data=schemas.ReplyOut.model_validate(db_reply))


@router.get("/discussions/{discussion_id}/replies", response_model=schemas.Envelope[schemas.ReplyPage])
async def list_replies(
    discussion_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    discussion = forums.get_discussion(db, discussion_id)
    rbac.ensure_project_access(get_project_or_404(db, discussion.project_id), user)
    params = PageParams(page=page, limit=limit)
    replies, pagination = paginate(forums.active_replies_query(db, discussion.id), params)
    return _thread_response(
        {
            "replies": forums.tree_to_dicts(forums.build_reply_tree(replies)),
            "total_replies": pagination.total_items,
            "has_more": params.offset + len(replies) < pagination.total_items,
        }
    )


@router.put("/replies/{reply_id}", response_model=schemas.Envelope[schemas.ReplyOut])
async def update_reply(
    reply_id: UUID,
    update: schemas.ReplyUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    reply = forums.get_reply(db, reply_id)
    reply = forums.update_reply(db, reply, user, update.content)
    return schemas.Envelope(data=schemas.ReplyOut.model_validate(reply))


@router.delete("/replies/{reply_id}", response_model=schemas.Envelope[None])
async def delete_reply(
    reply_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    reply = forums.get_reply(db, reply_id)
    forums.soft_delete_reply(db, reply, user)
    return schemas.Envelope(message="Reply deleted successfully")
