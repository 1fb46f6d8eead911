from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .. import models, rbac, schemas
from ..errors import AuthorizationError, NotFoundError, ValidationError

# purpose: forum moderation, discussion counters and threaded reply views
# status: active
# depends_on: backend.researchhub.rbac

logger = logging.getLogger(__name__)


@dataclass
class ReplyNode:
    reply: models.Reply
    children: list["ReplyNode"] = field(default_factory=list)


def build_reply_tree(replies: Sequence[models.Reply]) -> list[ReplyNode]:
    """Nest a chronologically ordered page of replies under their parents.

    Nodes are indexed by reply id first and linked in input order second, so
    every level keeps chronological order. A reply whose parent is not in
    ``replies`` is dropped together with its subtree instead of being
    promoted to the top level.
    """

    index = {reply.id: ReplyNode(reply) for reply in replies}
    roots: list[ReplyNode] = []
    for reply in replies:
        node = index[reply.id]
        parent_id = reply.parent_reply_id
        if parent_id is None:
            roots.append(node)
            continue
        parent = index.get(parent_id)
        if parent is None or parent is node:
            continue
        parent.children.append(node)
    return roots


def tree_to_dicts(nodes: Sequence[ReplyNode]) -> list[dict]:
    """Render a reply tree as JSON-ready dicts with a ``children`` list each.

    Walks with an explicit stack so thread depth is not limited by recursion.
    """

    roots: list[dict] = []
    stack = [(node, roots) for node in reversed(nodes)]
    while stack:
        node, siblings = stack.pop()
        item = schemas.ReplyOut.model_validate(node.reply).model_dump(mode="json")
        item["children"] = []
        siblings.append(item)
        stack.extend((child, item["children"]) for child in reversed(node.children))
    return roots


def get_forum(db: Session, forum_id: UUID) -> models.Forum:
    forum = db.get(models.Forum, forum_id)
    if forum is None or not forum.is_active:
        raise NotFoundError("Forum not found")
    return forum


def get_discussion(db: Session, discussion_id: UUID) -> models.Discussion:
    discussion = db.get(models.Discussion, discussion_id)
    if discussion is None or discussion.status is models.DiscussionStatus.DELETED:
        raise NotFoundError("Discussion not found")
    return discussion


def get_reply(db: Session, reply_id: UUID) -> models.Reply:
    reply = db.get(models.Reply, reply_id)
    if reply is None:
        raise NotFoundError("Reply not found")
    return reply


def is_moderator(forum: models.Forum, user_id: UUID) -> bool:
    return any(moderator.id == user_id for moderator in forum.moderators)


def create_forum(
    db: Session,
    project: models.Project,
    user: models.User,
    data: schemas.ForumCreate,
) -> models.Forum:
    rbac.ensure_project_member(project, user)
    forum = models.Forum(
        project_id=project.id,
        title=data.title,
        description=data.description,
        created_by=user.id,
        **data.settings.model_dump(),
    )
    forum.moderators.append(user)
    db.add(forum)
    db.commit()
    db.refresh(forum)
    logger.info("Forum %s created in project %s", forum.id, project.id, extra={"project_id": str(project.id)})
    return forum


def create_discussion(
    db: Session,
    forum: models.Forum,
    project: models.Project,
    user: models.User,
    data: schemas.DiscussionCreate,
) -> models.Discussion:
    rbac.ensure_project_member(project, user)
    now = models.utcnow()
    discussion = models.Discussion(
        forum_id=forum.id,
        project_id=project.id,
        title=data.title,
        content=data.content,
        tags=data.tags,
        created_by=user.id,
        status=models.DiscussionStatus.ACTIVE,
        last_activity=now,
    )
    db.add(discussion)
    db.commit()
    db.refresh(discussion)
    return discussion


def record_view(db: Session, discussion: models.Discussion) -> None:
    db.execute(
        sa.update(models.Discussion)
        .where(models.Discussion.id == discussion.id)
        .values(view_count=models.Discussion.view_count + 1)
    )
    db.commit()
    db.refresh(discussion)


def close_discussion(db: Session, discussion: models.Discussion, user: models.User) -> models.Discussion:
    """The only writer of discussion status: author or a forum moderator closes it."""

    if discussion.created_by != user.id and not is_moderator(discussion.forum, user.id):
        raise AuthorizationError("Only the author or a moderator can close this discussion")
    if discussion.status is not models.DiscussionStatus.ACTIVE:
        raise ValidationError("Discussion is not active")
    discussion.status = models.DiscussionStatus.CLOSED
    db.commit()
    db.refresh(discussion)
    return discussion


def toggle_pin(db: Session, discussion: models.Discussion, user: models.User) -> models.Discussion:
    if not is_moderator(discussion.forum, user.id):
        raise AuthorizationError("Only moderators can pin discussions")
    discussion.is_pinned = not discussion.is_pinned
    db.commit()
    db.refresh(discussion)
    return discussion


def create_reply(
    db: Session,
    discussion: models.Discussion,
    project: models.Project,
    user: models.User,
    data: schemas.ReplyCreate,
) -> models.Reply:
    rbac.ensure_project_member(project, user)
    if discussion.status is not models.DiscussionStatus.ACTIVE:
        raise AuthorizationError("Discussion is closed")
    if data.parent_reply_id is not None:
        parent = db.get(models.Reply, data.parent_reply_id)
        if parent is None or parent.discussion_id != discussion.id:
            raise ValidationError("Parent reply must belong to the same discussion")
    now = models.utcnow()
    reply = models.Reply(
        discussion_id=discussion.id,
        author_id=user.id,
        parent_reply_id=data.parent_reply_id,
        content=data.content,
        status=models.ReplyStatus.ACTIVE,
        created_at=now,
    )
    db.add(reply)
    db.execute(
        sa.update(models.Discussion)
        .where(models.Discussion.id == discussion.id)
        .values(reply_count=models.Discussion.reply_count + 1, last_activity=now)
    )
    db.commit()
    db.refresh(reply)
    return reply


def update_reply(db: Session, reply: models.Reply, user: models.User, content: str) -> models.Reply:
    if reply.author_id != user.id:
        raise AuthorizationError("You can only edit your own replies")
    if reply.status is not models.ReplyStatus.ACTIVE:
        raise NotFoundError("Reply not found")
    reply.content = content
    reply.is_edited = True
    reply.edited_at = models.utcnow()
    db.commit()
    db.refresh(reply)
    return reply


def soft_delete_reply(db: Session, reply: models.Reply, user: models.User) -> None:
    """Mark the reply deleted and decrement the discussion counter once.

    Deleting an already deleted reply is a no-op, and the counter never goes
    below zero.
    """

    if reply.author_id != user.id:
        raise AuthorizationError("You can only delete your own replies")
    if reply.status is models.ReplyStatus.DELETED:
        return
    reply.status = models.ReplyStatus.DELETED
    count = models.Discussion.reply_count
    db.execute(
        sa.update(models.Discussion)
        .where(models.Discussion.id == reply.discussion_id)
        .values(reply_count=sa.case((count > 0, count - 1), else_=0))
    )
    db.commit()
    logger.info("Reply %s deleted", reply.id)


def active_replies_query(db: Session, discussion_id: UUID):
    return (
        db.query(models.Reply)
        .filter(
            models.Reply.discussion_id == discussion_id,
            models.Reply.status == models.ReplyStatus.ACTIVE,
        )
        .order_by(models.Reply.created_at.asc())
    )
