"""
Read-only analytics over active tasks: overview counts, per-user
performance, time-bucketed trends, and JSON/CSV export.
"""

import csv
import io
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

import models
import schemas
from managers.tasks import active_tasks
from time_utils import ensure_utc, range_start, utc_now

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "ID", "Title", "Description", "Status", "Priority", "Due Date",
    "Assigned To", "Created By", "Created At", "Completed At",
]


def completion_rate(completed: int, total: int) -> float:
    """Percentage of completed tasks, rounded to 2 decimals; 0 when there are no tasks."""
    if not total:
        return 0
    return round(completed / total * 100, 2)


def _round_hours(value) -> Optional[float]:
    return round(float(value), 2) if value is not None else None


def _overdue_condition(now: datetime):
    return and_(
        models.Task.due_date < now,
        models.Task.status != models.TaskStatus.completed
    )


def overview(db: Session, user_id: Optional[int] = None, date_range: Optional[str] = None) -> schemas.Overview:
    logger.debug(f"Computing overview: user_id={user_id}, date_range={date_range}")

    now = utc_now()
    conditions = [models.Task.is_deleted.is_(False)]
    if user_id is not None:
        conditions.append(models.Task.assigned_to_id == user_id)
    if date_range:
        conditions.append(models.Task.created_at >= range_start(date_range, now))

    status_rows = (
        db.query(models.Task.status, func.count(models.Task.id))
        .filter(*conditions)
        .group_by(models.Task.status)
        .all()
    )
    priority_rows = (
        db.query(models.Task.priority, func.count(models.Task.id))
        .filter(*conditions)
        .group_by(models.Task.priority)
        .all()
    )
    overdue_count = (
        db.query(func.count(models.Task.id))
        .filter(*conditions, _overdue_condition(now))
        .scalar()
    )

    status_stats = {status.value: count for status, count in status_rows}
    priority_stats = {priority.value: count for priority, count in priority_rows}
    total_tasks = sum(status_stats.values())
    completed_tasks = status_stats.get(models.TaskStatus.completed.value, 0)

    return schemas.Overview(
        total_tasks=total_tasks,
        completed_tasks=completed_tasks,
        completion_rate=completion_rate(completed_tasks, total_tasks),
        overdue_count=overdue_count or 0,
        status_stats=status_stats,
        priority_stats=priority_stats,
    )


def user_performance(db: Session, period: str = "month", user_id: Optional[int] = None) -> List[schemas.UserPerformance]:
    """Per-assignee metrics for tasks created in the period, best completion rate first."""
    logger.debug(f"Computing user performance: period={period}, user_id={user_id}")

    now = utc_now()
    conditions = [
        models.Task.is_deleted.is_(False),
        models.Task.created_at >= range_start(period, now),
    ]
    if user_id is not None:
        conditions.append(models.Task.assigned_to_id == user_id)

    completed = func.sum(case((models.Task.status == models.TaskStatus.completed, 1), else_=0))
    overdue = func.sum(case((_overdue_condition(now), 1), else_=0))

    rows = (
        db.query(
            models.User.id,
            models.User.name,
            models.User.email,
            func.count(models.Task.id),
            completed,
            overdue,
            func.avg(models.Task.estimated_hours),
            func.avg(models.Task.actual_hours),
        )
        .select_from(models.Task)
        .join(models.User, models.User.id == models.Task.assigned_to_id)
        .filter(*conditions)
        .group_by(models.User.id, models.User.name, models.User.email)
        .all()
    )

    results = [
        schemas.UserPerformance(
            user_id=uid,
            user_name=name,
            user_email=email,
            total_tasks=total,
            completed_tasks=done or 0,
            overdue_tasks=late or 0,
            completion_rate=completion_rate(done or 0, total),
            avg_estimated_hours=_round_hours(avg_estimated),
            avg_actual_hours=_round_hours(avg_actual),
        )
        for uid, name, email, total, done, late, avg_estimated, avg_actual in rows
    ]
    results.sort(key=lambda item: item.completion_rate, reverse=True)
    return results


def bucket_for(value: datetime, group_by: str) -> schemas.TrendBucket:
    """Time bucket of a timestamp; weeks start on Sunday, days before the first Sunday are week 0."""
    value = ensure_utc(value)
    if group_by == "hour":
        return schemas.TrendBucket(year=value.year, month=value.month, day=value.day, hour=value.hour)
    if group_by == "week":
        return schemas.TrendBucket(year=value.year, week=int(value.strftime("%U")))
    if group_by == "month":
        return schemas.TrendBucket(year=value.year, month=value.month)
    return schemas.TrendBucket(year=value.year, month=value.month, day=value.day)


def _bucket_sort_key(bucket: schemas.TrendBucket) -> tuple:
    return (bucket.year, bucket.month or 0, bucket.week or 0, bucket.day or 0, bucket.hour or 0)


def trends(db: Session, period: str = "month", group_by: str = "day") -> schemas.TrendsData:
    """
    Creation and completion series over the period.

    creation_trends buckets tasks by created_at and counts those currently
    completed in the same bucket; completion_trends buckets by completed_at
    per day.
    """
    logger.debug(f"Computing trends: period={period}, group_by={group_by}")

    start = range_start(period)

    created_rows = (
        db.query(models.Task.created_at, models.Task.status)
        .filter(models.Task.is_deleted.is_(False), models.Task.created_at >= start)
        .all()
    )
    creation = {}
    for created_at, status in created_rows:
        bucket = bucket_for(created_at, group_by)
        counts = creation.setdefault(bucket, [0, 0])
        counts[0] += 1
        if status == models.TaskStatus.completed:
            counts[1] += 1

    completed_rows = (
        db.query(models.Task.completed_at)
        .filter(
            models.Task.is_deleted.is_(False),
            models.Task.completed_at.isnot(None),
            models.Task.completed_at >= start
        )
        .all()
    )
    completion = {}
    for (completed_at,) in completed_rows:
        bucket = bucket_for(completed_at, "day")
        completion[bucket] = completion.get(bucket, 0) + 1

    creation_trends = [
        schemas.CreationTrend(bucket=bucket, tasks_created=created, tasks_completed=done)
        for bucket, (created, done) in sorted(creation.items(), key=lambda item: _bucket_sort_key(item[0]))
    ]
    completion_trends = [
        schemas.CompletionTrend(bucket=bucket, completed_tasks=count)
        for bucket, count in sorted(completion.items(), key=lambda item: _bucket_sort_key(item[0]))
    ]

    return schemas.TrendsData(
        period=period,
        group_by=group_by,
        creation_trends=creation_trends,
        completion_trends=completion_trends,
    )


def export_tasks(db: Session, filters: schemas.ExportFilters) -> List[models.Task]:
    """Active tasks matching the export filters, newest first."""
    logger.debug(f"Exporting tasks: filters={filters.model_dump(exclude_none=True)}")

    query = active_tasks(db)
    if filters.status:
        query = query.filter(models.Task.status == models.TaskStatus(filters.status.value))
    if filters.priority:
        query = query.filter(models.Task.priority == models.TaskPriority(filters.priority.value))
    if filters.assigned_to is not None:
        query = query.filter(models.Task.assigned_to_id == filters.assigned_to)
    if filters.start_date:
        query = query.filter(models.Task.created_at >= ensure_utc(filters.start_date))
    if filters.end_date:
        query = query.filter(models.Task.created_at <= ensure_utc(filters.end_date))

    tasks = query.order_by(models.Task.created_at.desc(), models.Task.id.desc()).all()
    logger.info(f"Exporting {len(tasks)} tasks")
    return tasks


def _format_datetime(value: Optional[datetime]) -> str:
    return ensure_utc(value).isoformat() if value else ""


def tasks_to_csv(tasks: List[models.Task]) -> str:
    """Render tasks as CSV with every value double-quoted."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for task in tasks:
        writer.writerow([
            task.id,
            task.title,
            task.description,
            task.status.value,
            task.priority.value,
            _format_datetime(task.due_date),
            task.assigned_to.name if task.assigned_to else "",
            task.created_by.name if task.created_by else "",
            _format_datetime(task.created_at),
            _format_datetime(task.completed_at),
        ])
    return output.getvalue()
