"""Update models for database operations."""

from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.core.config import Constants
from src.domain.create_models import (
    clean_description,
    clean_email,
    clean_name,
    clean_subtask_text,
    clean_title,
    normalize_tags,
)
from src.domain.task import TaskPriority, TaskStatus, UtcDatetime
from src.domain.user import Role


class _Patch(BaseModel):
    """Partial update: unset fields are untouched, explicit nulls are rejected."""

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def reject_nulls(self) -> Self:
        nulls = [name for name in self.model_fields_set if getattr(self, name) is None]
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(sorted(nulls))}")
        return self

    def to_patch(self) -> dict[str, Any]:
        """Only the fields the caller supplied, in store representation."""
        return self.model_dump(mode="json", exclude_unset=True)


class SubtaskEntry(BaseModel):
    """One item of a replacement checklist; entries carrying an ``id`` keep that subtask."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = Field(default=None, min_length=1, description="Existing subtask ID")
    text: str = Field(..., description="Subtask text")
    completed: bool | None = Field(default=None, description="Defaults to the existing state, or False")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return clean_subtask_text(v)


class TaskUpdate(_Patch):
    """Update payload for a task."""

    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assignee_id: str | None = Field(default=None, min_length=1)
    due_date: UtcDatetime | None = None
    tags: list[str] | None = None
    time_spent_seconds: int | None = Field(default=None, ge=0)
    is_archived: bool | None = None
    subtasks: list[SubtaskEntry] | None = Field(default=None, description="Replaces the checklist")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return clean_title(v) if v is not None else v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        return clean_description(v) if v is not None else v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str] | None:
        return normalize_tags(v) if v is not None else v


class SubtaskUpdate(_Patch):
    """Update payload for a subtask."""

    text: str | None = None
    completed: bool | None = None

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Subtask text cannot be empty")
        return v


class BulkUpdateRequest(BaseModel):
    """Apply one patch to many tasks."""

    model_config = ConfigDict(extra="forbid")

    task_ids: list[str] = Field(..., min_length=1, description="Target task IDs")
    updates: TaskUpdate = Field(..., description="Patch applied to every visible target")

    @model_validator(mode="after")
    def require_updates(self) -> Self:
        if not self.updates.model_fields_set:
            raise ValueError("Updates object is required")
        return self


class BulkDeleteRequest(BaseModel):
    """Delete many tasks."""

    model_config = ConfigDict(extra="forbid")

    task_ids: list[str] = Field(..., min_length=1, description="Target task IDs")


SortField = Literal["created", "updated", "due_date", "priority", "status", "title"]


class TaskListQuery(BaseModel):
    """Filters, sort and pagination for task listings."""

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assignee_id: str | None = None
    tags: list[str] = Field(default_factory=list, description="Match tasks carrying any of these tags")
    search: str | None = Field(default=None, description="Case-insensitive match on title or description")
    include_archived: bool = False
    sort_by: SortField = "created"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=Constants.DEFAULT_PAGE_LIMIT, ge=1, le=Constants.MAX_PAGE_LIMIT)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        return normalize_tags(v)

    @property
    def sort(self) -> str:
        """Store sort expression (``-field`` for descending)."""
        return f"-{self.sort_by}" if self.sort_order == "desc" else self.sort_by


class UserUpdate(_Patch):
    """Admin update payload for a user account."""

    name: str | None = None
    email: str | None = None
    role: Role | None = None
    is_active: bool | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        return clean_name(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return clean_email(v) if v is not None else v


UserSortField = Literal["created", "updated", "name", "email", "role"]


class UserListQuery(BaseModel):
    """Filters, sort and pagination for user listings."""

    role: Role | None = None
    is_active: bool | None = None
    search: str | None = Field(default=None, description="Case-insensitive match on name or email")
    sort_by: UserSortField = "created"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=Constants.DEFAULT_PAGE_LIMIT, ge=1, le=Constants.MAX_PAGE_LIMIT)

    @property
    def sort(self) -> str:
        return f"-{self.sort_by}" if self.sort_order == "desc" else self.sort_by
