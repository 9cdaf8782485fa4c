from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import date, datetime
from typing import Annotated, Dict, Generic, List, Literal, Optional, TypeVar
from enum import Enum
import math

import config
from time_utils import ensure_utc, utc_now


class TaskStatus(str, Enum):
    todo = "todo"
    in_progress = "in-progress"
    in_review = "in-review"
    completed = "completed"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class UserRole(str, Enum):
    user = "user"
    admin = "admin"


SortField = Literal["createdAt", "updatedAt", "dueDate", "title", "status", "priority"]
SortOrder = Literal["asc", "desc"]
DateRange = Literal["week", "month", "quarter", "year"]
TrendGrouping = Literal["hour", "day", "week", "month"]
ExportFormat = Literal["json", "csv"]

Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    """Serialized with camelCase keys; accepts either camelCase or snake_case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RequestModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _future_due_date(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return value
    value = ensure_utc(value)
    if value <= utc_now():
        raise ValueError("Due date must be in the future")
    return value


# Envelope schemas
class Pagination(CamelModel):
    current: int
    pages: int
    total: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        pages = math.ceil(total / limit) if limit else 0
        return cls(current=page, pages=pages, total=total, has_next=page < pages, has_prev=page > 1)


class ErrorDetail(BaseModel):
    msg: str
    param: str
    location: str


class Envelope(CamelModel, Generic[DataT]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[DataT] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    message: str
    errors: List[ErrorDetail] = []


# User schemas
class UserSummary(CamelModel):
    id: int
    name: str
    email: str


class User(UserSummary):
    role: UserRole
    is_active: bool
    created_at: datetime


class UserList(CamelModel):
    users: List[UserSummary]


class RegisterRequest(RequestModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)


class LoginRequest(RequestModel):
    email: EmailStr
    password: str


class TokenData(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user: User


class UserData(CamelModel):
    user: User


# Attachment schemas
class Attachment(CamelModel):
    filename: str
    original_name: str
    mimetype: str
    size: int
    uploaded_at: datetime


class AttachmentList(CamelModel):
    files: List[Attachment]


class DeletedAttachment(CamelModel):
    deleted_file: Attachment


# Task schemas
class TaskCreate(RequestModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    status: TaskStatus = TaskStatus.todo
    priority: TaskPriority = TaskPriority.medium
    due_date: datetime
    tags: List[Tag] = Field(default_factory=list)
    assigned_to: int
    estimated_hours: Optional[float] = Field(None, ge=0, le=999, description="Estimated hours (0-999)")
    actual_hours: Optional[float] = Field(None, ge=0, le=999, description="Actual hours spent (0-999)")

    @field_validator("due_date")
    @classmethod
    def due_date_in_future(cls, value: datetime) -> datetime:
        return _future_due_date(value)


class TaskUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[Tag]] = None
    assigned_to: Optional[int] = None
    estimated_hours: Optional[float] = Field(None, ge=0, le=999, description="Estimated hours (0-999)")
    actual_hours: Optional[float] = Field(None, ge=0, le=999, description="Actual hours spent (0-999)")

    @field_validator("due_date")
    @classmethod
    def due_date_in_future(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _future_due_date(value)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "TaskUpdate":
        # Explicit nulls would violate NOT NULL columns; hours may be cleared
        for name in ("title", "description", "status", "priority", "due_date", "tags", "assigned_to"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self


class BulkTaskCreate(RequestModel):
    tasks: List[TaskCreate] = Field(..., min_length=1, max_length=config.MAX_BULK_TASKS)


class TaskFilters(CamelModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    search: Optional[str] = None
    due_date: Optional[date] = None
    overdue: bool = False


class Task(CamelModel):
    id: int
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime
    tags: List[str] = Field(default_factory=list)
    assigned_to: Optional[UserSummary] = None
    created_by: Optional[UserSummary] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    attachments: List[Attachment] = Field(default_factory=list)
    completed_at: Optional[datetime] = None
    is_overdue: bool = False
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TaskData(CamelModel):
    task: Task


class TaskListData(CamelModel):
    tasks: List[Task]
    pagination: Pagination


class TasksData(CamelModel):
    tasks: List[Task]


# Comment schemas
class CommentCreate(RequestModel):
    content: str = Field(..., min_length=1, max_length=1000)
    task_id: int


class CommentUpdate(RequestModel):
    content: str = Field(..., min_length=1, max_length=1000)


class CommentTask(CamelModel):
    id: int
    title: str


class Comment(CamelModel):
    id: int
    content: str
    task_id: int
    task: Optional[CommentTask] = None
    author: Optional[UserSummary] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CommentData(CamelModel):
    comment: Comment


class CommentListData(CamelModel):
    comments: List[Comment]
    pagination: Pagination


# Analytics schemas
class Overview(CamelModel):
    total_tasks: int
    completed_tasks: int
    completion_rate: float
    overdue_count: int
    status_stats: Dict[str, int] = Field(default_factory=dict)
    priority_stats: Dict[str, int] = Field(default_factory=dict)


class UserPerformance(CamelModel):
    user_id: int
    user_name: str
    user_email: str
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    completion_rate: float
    avg_estimated_hours: Optional[float] = None
    avg_actual_hours: Optional[float] = None


class PerformanceData(CamelModel):
    period: DateRange
    user_performance: List[UserPerformance]


class TrendBucket(BaseModel):
    year: int
    month: Optional[int] = None
    week: Optional[int] = None
    day: Optional[int] = None
    hour: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class CreationTrend(CamelModel):
    bucket: TrendBucket
    tasks_created: int
    tasks_completed: int


class CompletionTrend(CamelModel):
    bucket: TrendBucket
    completed_tasks: int


class TrendsData(CamelModel):
    period: DateRange
    group_by: TrendGrouping
    creation_trends: List[CreationTrend]
    completion_trends: List[CompletionTrend]


class ExportFilters(CamelModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ExportData(CamelModel):
    exported_at: datetime
    total_records: int
    tasks: List[Task]
