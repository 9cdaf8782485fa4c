import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import models
import schemas
from auth.dependencies import get_current_user
from database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=schemas.Envelope[schemas.UserList])
def list_users(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List active users, for picking an assignee."""
    logger.debug(f"User {current_user.id} listing users")
    users = (
        db.query(models.User)
        .filter(models.User.is_active.is_(True))
        .order_by(models.User.name, models.User.id)
        .all()
    )
    return schemas.Envelope(data=schemas.UserList(users=users))
