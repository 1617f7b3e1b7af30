"""Task domain models and enums."""

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field, PlainSerializer

from src.domain.user import Role


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_utc(value: datetime) -> str:
    """Fixed-width ISO form; lexical order equals chronological order."""
    return _as_utc(value).isoformat(timespec="microseconds")


UtcDatetime = Annotated[
    datetime,
    AfterValidator(_as_utc),
    PlainSerializer(format_utc, return_type=str, when_used="json"),
]


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


class TaskStatus(StrEnum):
    """Task lifecycle status; any status may move to any other."""

    TODO = "todo"
    IN_PROGRESS = "inprogress"
    DONE = "done"


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Subtask(BaseModel):
    """Checklist item owned by a task."""

    id: str = Field(default_factory=new_id, description="Subtask ID, unique within the task")
    text: str = Field(..., min_length=1, description="Subtask text")
    completed: bool = Field(default=False, description="Whether the item is checked off")
    created_at: UtcDatetime = Field(default_factory=utc_now, description="Creation timestamp")


class Comment(BaseModel):
    """Append-only comment; author fields are denormalized at write time."""

    id: str = Field(default_factory=new_id, description="Comment ID")
    text: str = Field(..., description="Comment body")
    author_id: str = Field(..., description="Author user ID")
    author_name: str = Field(default="", description="Author display name")
    author_role: Role = Field(..., description="Author role when the comment was written")
    created_at: UtcDatetime = Field(default_factory=utc_now, description="Creation timestamp")


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    created: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated: str | None = Field(default=None, description="Last update timestamp (ISO format)")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Current status")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Priority")
    assignee_id: str = Field(..., description="Assigned user ID")
    assignee_name: str = Field(default="", description="Assignee display name at assignment time")
    created_by_id: str = Field(..., description="Creator user ID")
    due_date: UtcDatetime = Field(..., description="Due date")
    tags: list[str] = Field(default_factory=list, description="Lowercased tags")
    subtasks: list[Subtask] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    time_spent_seconds: int = Field(default=0, ge=0, description="Tracked time in seconds")
    is_archived: bool = Field(default=False, description="Archived tasks are hidden from default listings")
    completed_at: UtcDatetime | None = Field(default=None, description="Set while status is done")

    def to_record(self) -> dict[str, Any]:
        """Store representation, including system fields; what filters are evaluated against."""
        return self.model_dump(mode="json")

    def to_document(self) -> dict[str, Any]:
        """Store representation without system fields."""
        return self.model_dump(mode="json", exclude={"id", "created", "updated"})

    def find_subtask(self, subtask_id: str) -> Subtask | None:
        return next((subtask for subtask in self.subtasks if subtask.id == subtask_id), None)


class SubtaskProgress(BaseModel):
    """Checklist completion summary."""

    completed: int = 0
    total: int = 0
    percentage: int = 0


class TaskView(Task):
    """Task plus derived fields; never persisted."""

    subtask_progress: SubtaskProgress = Field(default_factory=SubtaskProgress)
    is_overdue: bool = False
    time_spent_formatted: str = "0m"


class TaskStats(BaseModel):
    """Counts over the tasks visible to an actor, archived tasks excluded."""

    total: int = 0
    todo: int = 0
    inprogress: int = 0
    done: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    overdue: int = 0


class TaskPage(BaseModel):
    """One page of a task listing."""

    items: list[TaskView]
    total: int
    page: int
    limit: int
    pages: int
