"""Comment lifecycle, scoped to a parent task."""

import logging
from typing import List

from sqlalchemy.orm import Query, Session, joinedload

import models
from errors import ForbiddenError, NotFoundError
from managers.tasks import get_active_task
from time_utils import utc_now

logger = logging.getLogger(__name__)


def active_comments(db: Session) -> Query:
    """Base query for every comment read path: soft-deleted comments are never visible."""
    return (
        db.query(models.Comment)
        .filter(models.Comment.is_deleted.is_(False))
        .options(
            joinedload(models.Comment.author),
            joinedload(models.Comment.task)
        )
    )


def get_active_comment(db: Session, comment_id: int) -> models.Comment:
    comment = active_comments(db).filter(models.Comment.id == comment_id).first()
    if not comment:
        raise NotFoundError("Comment not found")
    return comment


def add_comment(db: Session, task_id: int, content: str, author_id: int) -> models.Comment:
    logger.debug(f"User {author_id} creating comment on task {task_id}")

    get_active_task(db, task_id, with_users=False)

    comment = models.Comment(
        content=content,
        task_id=task_id,
        author_id=author_id,
        is_edited=False,
        is_deleted=False,
    )
    db.add(comment)
    db.commit()

    logger.info(f"Comment {comment.id} added to task {task_id}")
    return get_active_comment(db, comment.id)


def list_comments(db: Session, task_id: int, page: int = 1, limit: int = 20) -> tuple[List[models.Comment], int]:
    """Non-deleted comments for a task, newest first."""
    logger.debug(f"Listing comments for task {task_id}: page={page}, limit={limit}")

    get_active_task(db, task_id, with_users=False)

    query = active_comments(db).filter(models.Comment.task_id == task_id)
    total = query.count()
    comments = (
        query.order_by(models.Comment.created_at.desc(), models.Comment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return comments, total


def update_comment(db: Session, comment_id: int, content: str, requester_id: int) -> models.Comment:
    """Edit a comment's content. Only the author may edit; admins get no override here."""
    logger.debug(f"User {requester_id} updating comment {comment_id}")

    comment = get_active_comment(db, comment_id)

    if comment.author_id != requester_id:
        logger.info(f"User {requester_id} attempted to edit comment {comment_id} owned by {comment.author_id}")
        raise ForbiddenError("Not authorized to update this comment")

    if content != comment.content:
        comment.content = content
        comment.is_edited = True
        comment.edited_at = utc_now()
        db.commit()
        logger.info(f"Comment {comment_id} edited")
    else:
        logger.debug(f"Comment {comment_id} content unchanged")

    return get_active_comment(db, comment_id)


def soft_delete_comment(db: Session, comment_id: int, requester_id: int, requester_role: str) -> None:
    logger.debug(f"User {requester_id} deleting comment {comment_id}")

    comment = get_active_comment(db, comment_id)

    if comment.author_id != requester_id and requester_role != models.UserRole.admin.value:
        logger.info(f"User {requester_id} attempted to delete comment {comment_id} owned by {comment.author_id}")
        raise ForbiddenError("Not authorized to delete this comment")

    comment.is_deleted = True
    comment.deleted_at = utc_now()
    db.commit()

    logger.info(f"Comment {comment_id} soft-deleted by user {requester_id}")
