import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import config
import models
import schemas
from auth.dependencies import get_current_user
from database import get_db
from managers import tasks as task_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _split_tags(raw: Optional[str]) -> list:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


@router.post(
    "",
    response_model=schemas.Envelope[schemas.TaskData],
    status_code=status.HTTP_201_CREATED,
)
def create_task(
    task: schemas.TaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a task owned by the current user."""
    created = task_manager.create_task(db, task, current_user.id)
    return schemas.Envelope(message="Task created successfully", data=schemas.TaskData(task=created))


@router.get("", response_model=schemas.Envelope[schemas.TaskListData])
def list_tasks(
    page: int = Query(1, ge=1),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    sort_by: schemas.SortField = Query("createdAt", alias="sortBy"),
    sort_order: schemas.SortOrder = Query("desc", alias="sortOrder"),
    status: Optional[schemas.TaskStatus] = Query(None),
    priority: Optional[schemas.TaskPriority] = Query(None),
    assigned_to: Optional[int] = Query(None, alias="assignedTo"),
    tags: Optional[str] = Query(None, description="Comma-separated tags; matches tasks having any of them"),
    search: Optional[str] = Query(None, description="Case-insensitive search across title, description and tags"),
    due_date: Optional[date] = Query(None, alias="dueDate", description="Exact calendar day (UTC)"),
    overdue: bool = Query(False, description="Only overdue tasks; overrides status and dueDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List active tasks with filtering, sorting and pagination."""
    filters = schemas.TaskFilters(
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        tags=_split_tags(tags),
        search=search.strip() if search and search.strip() else None,
        due_date=due_date,
        overdue=overdue,
    )
    tasks, total = task_manager.list_tasks(db, filters, page, limit, sort_by, sort_order)
    return schemas.Envelope(data=schemas.TaskListData(
        tasks=tasks,
        pagination=schemas.Pagination.build(page, limit, total),
    ))


@router.post(
    "/bulk",
    response_model=schemas.Envelope[schemas.TasksData],
    status_code=status.HTTP_201_CREATED,
)
def bulk_create_tasks(
    payload: schemas.BulkTaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create up to 100 tasks in one transaction; one bad assignee rejects them all."""
    created = task_manager.bulk_create_tasks(db, payload.tasks, current_user.id)
    return schemas.Envelope(message=f"{len(created)} tasks created successfully", data=schemas.TasksData(tasks=created))


@router.get("/{task_id}", response_model=schemas.Envelope[schemas.TaskData])
def get_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    logger.debug(f"Fetching task {task_id}")
    return schemas.Envelope(data=schemas.TaskData(task=task_manager.get_active_task(db, task_id)))


@router.put("/{task_id}", response_model=schemas.Envelope[schemas.TaskData])
def update_task(
    task_id: int,
    task_update: schemas.TaskUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Partially update a task; only fields present in the body change."""
    updated = task_manager.update_task(db, task_id, task_update)
    return schemas.Envelope(message="Task updated successfully", data=schemas.TaskData(task=updated))


@router.delete("/{task_id}", response_model=schemas.Envelope[None])
def delete_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    task_manager.soft_delete_task(db, task_id)
    return schemas.Envelope(message="Task deleted successfully")
