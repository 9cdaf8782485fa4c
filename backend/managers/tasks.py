"""
Task lifecycle: create, list, read, partial update, soft delete and bulk create.

Every read path starts from active_tasks(), which excludes soft-deleted rows.
"""

import logging
from typing import Iterable, List

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.orm import Query, Session, joinedload

import models
import schemas
from errors import NotFoundError, ReferenceNotFoundError
from time_utils import day_bounds, utc_now

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createdAt": models.Task.created_at,
    "updatedAt": models.Task.updated_at,
    "dueDate": models.Task.due_date,
    "title": models.Task.title,
    "status": models.Task.status,
    "priority": models.Task.priority,
}


def active_tasks(db: Session, with_users: bool = True) -> Query:
    """Base query for every task read path: soft-deleted tasks are never visible."""
    query = db.query(models.Task).filter(models.Task.is_deleted.is_(False))
    if with_users:
        query = query.options(
            joinedload(models.Task.assigned_to),
            joinedload(models.Task.created_by)
        )
    return query


def _tag_elements(db: Session):
    """One row per element of Task.tags, as text, correlated to the enclosing task query."""
    if db.get_bind().dialect.name == "postgresql":
        return func.jsonb_array_elements_text(models.Task.tags).table_valued("value").render_derived()
    return func.json_each(models.Task.tags).table_valued("value")


def has_any_tag(db: Session, tags: List[str]):
    elements = _tag_elements(db)
    return select(elements.c.value).where(elements.c.value.in_(tags)).exists()


def has_tag_containing(db: Session, term: str):
    elements = _tag_elements(db)
    return select(elements.c.value).where(elements.c.value.icontains(term, autoescape=True)).exists()


def lock_active_task(db: Session, task_id: int) -> models.Task:
    """Re-read the task row under a write lock, replacing any stale copy in the session."""
    task = (
        active_tasks(db, with_users=False)
        .filter(models.Task.id == task_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not task:
        raise NotFoundError("Task not found")
    return task


def apply_completion(task: models.Task) -> None:
    """Keep completed_at in step with status: set on entering completed, cleared otherwise."""
    if task.status == models.TaskStatus.completed:
        if task.completed_at is None:
            task.completed_at = utc_now()
    else:
        task.completed_at = None


def ensure_users_exist(db: Session, user_ids: Iterable[int], message: str) -> None:
    wanted = set(user_ids)
    found = {
        row[0] for row in
        db.query(models.User.id).filter(models.User.id.in_(wanted)).all()
    }
    missing = wanted - found
    if missing:
        logger.info(f"Referenced users not found: {sorted(missing)}")
        raise ReferenceNotFoundError(message)


def get_active_task(db: Session, task_id: int, with_users: bool = True) -> models.Task:
    task = active_tasks(db, with_users).filter(models.Task.id == task_id).first()
    if not task:
        raise NotFoundError("Task not found")
    return task


def _new_task(data: schemas.TaskCreate, creator_id: int) -> models.Task:
    task = models.Task(
        title=data.title,
        description=data.description,
        status=models.TaskStatus(data.status.value),
        priority=models.TaskPriority(data.priority.value),
        due_date=data.due_date,
        tags=list(data.tags),
        assigned_to_id=data.assigned_to,
        created_by_id=creator_id,
        estimated_hours=data.estimated_hours,
        actual_hours=data.actual_hours,
        attachments=[],
        is_deleted=False,
    )
    apply_completion(task)
    return task


def create_task(db: Session, data: schemas.TaskCreate, creator_id: int) -> models.Task:
    """Create a task owned by creator_id; the assignee must exist."""
    logger.debug(f"User {creator_id} creating task: {data.title}")

    ensure_users_exist(db, [data.assigned_to], "Assigned user not found")

    task = _new_task(data, creator_id)
    db.add(task)
    db.commit()

    logger.info(f"Task created successfully: id={task.id}")
    return get_active_task(db, task.id)


def list_tasks(
    db: Session,
    filters: schemas.TaskFilters,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> tuple[List[models.Task], int]:
    """
    List active tasks matching all filters.

    Returns:
        tuple: (tasks on the requested page, total matching count)
    """
    logger.debug(f"Listing tasks: filters={filters.model_dump(exclude_defaults=True)}, page={page}, limit={limit}, sort={sort_by} {sort_order}")

    query = active_tasks(db, with_users=False)

    if filters.priority:
        query = query.filter(models.Task.priority == models.TaskPriority(filters.priority.value))
    if filters.assigned_to is not None:
        query = query.filter(models.Task.assigned_to_id == filters.assigned_to)
    if filters.tags:
        query = query.filter(has_any_tag(db, filters.tags))
    if filters.search:
        term = filters.search
        query = query.filter(or_(
            models.Task.title.icontains(term, autoescape=True),
            models.Task.description.icontains(term, autoescape=True),
            has_tag_containing(db, term),
        ))

    if filters.overdue:
        # Overdue supersedes the status and due date filters
        query = query.filter(
            models.Task.due_date < utc_now(),
            models.Task.status != models.TaskStatus.completed
        )
    else:
        if filters.status:
            query = query.filter(models.Task.status == models.TaskStatus(filters.status.value))
        if filters.due_date:
            start, end = day_bounds(filters.due_date)
            query = query.filter(models.Task.due_date >= start, models.Task.due_date < end)

    total = query.count()

    direction = desc if sort_order == "desc" else asc
    column = SORT_COLUMNS.get(sort_by, models.Task.created_at)
    # Task id as tiebreaker for deterministic pagination
    query = query.order_by(direction(column), direction(models.Task.id))

    tasks = (
        query.options(
            joinedload(models.Task.assigned_to),
            joinedload(models.Task.created_by)
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    logger.debug(f"Retrieved {len(tasks)} of {total} tasks")
    return tasks, total


def update_task(db: Session, task_id: int, data: schemas.TaskUpdate) -> models.Task:
    """Apply only the fields present in the patch."""
    logger.debug(f"Updating task {task_id}")

    task = get_active_task(db, task_id, with_users=False)
    update_data = data.model_dump(exclude_unset=True)

    if "assigned_to" in update_data and update_data["assigned_to"] != task.assigned_to_id:
        ensure_users_exist(db, [update_data["assigned_to"]], "Assigned user not found")

    for key, value in update_data.items():
        if key == "assigned_to":
            task.assigned_to_id = value
        elif key == "status":
            task.status = models.TaskStatus(value.value if hasattr(value, "value") else value)
        elif key == "priority":
            task.priority = models.TaskPriority(value.value if hasattr(value, "value") else value)
        elif key == "tags":
            task.tags = list(value)
        else:
            setattr(task, key, value)

    apply_completion(task)
    db.commit()

    logger.info(f"Task {task_id} updated successfully: fields={sorted(update_data)}")
    return get_active_task(db, task_id)


def soft_delete_task(db: Session, task_id: int) -> None:
    task = get_active_task(db, task_id, with_users=False)

    task.is_deleted = True
    task.deleted_at = utc_now()
    db.commit()

    logger.info(f"Task {task_id} soft-deleted")


def bulk_create_tasks(db: Session, items: List[schemas.TaskCreate], creator_id: int) -> List[models.Task]:
    """
    Create multiple tasks in a single transaction.

    All assignees are verified before anything is written; one unknown
    assignee rejects the whole batch.
    """
    logger.info(f"Bulk creating {len(items)} tasks")

    ensure_users_exist(db, {item.assigned_to for item in items}, "One or more assigned users not found")

    try:
        created = [_new_task(item, creator_id) for item in items]
        db.add_all(created)
        db.commit()
    except Exception:
        db.rollback()
        logger.error("Transaction failed during bulk create", exc_info=True)
        raise

    created_ids = [task.id for task in created]
    logger.info(f"Successfully bulk created {len(created_ids)} tasks")

    tasks = active_tasks(db).filter(models.Task.id.in_(created_ids)).all()
    order = {task_id: index for index, task_id in enumerate(created_ids)}
    return sorted(tasks, key=lambda task: order[task.id])
