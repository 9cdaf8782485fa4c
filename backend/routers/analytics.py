import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

import models
import schemas
from auth.dependencies import get_current_user
from database import get_db
from managers import analytics
from time_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/overview", response_model=schemas.Envelope[schemas.Overview])
def get_overview(
    user_id: Optional[int] = Query(None, alias="userId"),
    date_range: Optional[schemas.DateRange] = Query(None, alias="dateRange", description="Restrict to tasks created in the range; all time when omitted"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return schemas.Envelope(data=analytics.overview(db, user_id, date_range))


@router.get("/performance", response_model=schemas.Envelope[schemas.PerformanceData])
def get_performance(
    period: schemas.DateRange = Query("month"),
    user_id: Optional[int] = Query(None, alias="userId"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Per-assignee completion metrics, best completion rate first."""
    results = analytics.user_performance(db, period, user_id)
    return schemas.Envelope(data=schemas.PerformanceData(period=period, user_performance=results))


@router.get("/trends", response_model=schemas.Envelope[schemas.TrendsData])
def get_trends(
    period: schemas.DateRange = Query("month"),
    group_by: schemas.TrendGrouping = Query("day", alias="groupBy"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return schemas.Envelope(data=analytics.trends(db, period, group_by))


@router.get("/export", response_model=schemas.Envelope[schemas.ExportData])
def export_tasks(
    format: schemas.ExportFormat = Query("json"),
    status: Optional[schemas.TaskStatus] = Query(None),
    priority: Optional[schemas.TaskPriority] = Query(None),
    assigned_to: Optional[int] = Query(None, alias="assignedTo"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Export active tasks as JSON (wrapped in the envelope) or as a CSV download.

    startDate/endDate bound createdAt inclusively.
    """
    filters = schemas.ExportFilters(
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        start_date=start_date,
        end_date=end_date,
    )
    tasks = analytics.export_tasks(db, filters)

    if format == "csv":
        return Response(
            content=analytics.tasks_to_csv(tasks),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="tasks-export.csv"'},
        )

    return schemas.Envelope(data=schemas.ExportData(
        exported_at=utc_now(),
        total_records=len(tasks),
        tasks=tasks,
    ))
