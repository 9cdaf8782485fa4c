import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import config
import models
import schemas
from auth.dependencies import get_current_user
from database import get_db
from managers import comments as comment_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/comments", tags=["comments"])


@router.post(
    "",
    response_model=schemas.Envelope[schemas.CommentData],
    status_code=status.HTTP_201_CREATED,
)
def create_comment(
    comment: schemas.CommentCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    created = comment_manager.add_comment(db, comment.task_id, comment.content, current_user.id)
    return schemas.Envelope(message="Comment created successfully", data=schemas.CommentData(comment=created))


@router.get("/task/{task_id}", response_model=schemas.Envelope[schemas.CommentListData])
def list_task_comments(
    task_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_COMMENT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Comments on a task, newest first."""
    comments, total = comment_manager.list_comments(db, task_id, page, limit)
    return schemas.Envelope(data=schemas.CommentListData(
        comments=comments,
        pagination=schemas.Pagination.build(page, limit, total),
    ))


@router.put("/{comment_id}", response_model=schemas.Envelope[schemas.CommentData])
def update_comment(
    comment_id: int,
    comment_update: schemas.CommentUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Edit a comment. Only its author may do this."""
    updated = comment_manager.update_comment(db, comment_id, comment_update.content, current_user.id)
    return schemas.Envelope(message="Comment updated successfully", data=schemas.CommentData(comment=updated))


@router.delete("/{comment_id}", response_model=schemas.Envelope[None])
def delete_comment(
    comment_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft-delete a comment. Allowed for its author and for admins."""
    comment_manager.soft_delete_comment(db, comment_id, current_user.id, current_user.role)
    return schemas.Envelope(message="Comment deleted successfully")
