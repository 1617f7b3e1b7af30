"""Pydantic models for creating records in database."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.config import Constants
from src.domain.task import TaskPriority, TaskStatus, UtcDatetime
from src.domain.user import Role


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim and lowercase tags, dropping empty ones and duplicates."""
    normalized: list[str] = []
    for tag in tags:
        value = tag.strip().lower()
        if value and value not in normalized:
            normalized.append(value)
    return normalized


def clean_title(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Title is required")
    if len(v) > Constants.TITLE_MAX_LENGTH:
        raise ValueError(f"Title must be at most {Constants.TITLE_MAX_LENGTH} characters")
    return v


def clean_description(v: str) -> str:
    v = v.strip()
    if len(v) > Constants.DESCRIPTION_MAX_LENGTH:
        raise ValueError(f"Description must be at most {Constants.DESCRIPTION_MAX_LENGTH} characters")
    return v


def clean_name(v: str) -> str:
    v = v.strip()
    if not v or len(v) > Constants.NAME_MAX_LENGTH:
        raise ValueError(f"Name must be 1..{Constants.NAME_MAX_LENGTH} characters")
    return v


def clean_email(v: str) -> str:
    """Lowercase and sanity-check an email address."""
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("Please provide a valid email")
    return v


def clean_subtask_text(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Subtask text is required")
    return v


class SubtaskCreate(BaseModel):
    """Checklist item supplied with a new task."""

    model_config = ConfigDict(extra="forbid")

    text: str = Field(..., description="Subtask text")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return clean_subtask_text(v)


class TaskCreate(BaseModel):
    """Payload for creating a task."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    status: TaskStatus = Field(default=TaskStatus.TODO)
    assignee_id: str = Field(..., min_length=1, description="Assigned user ID")
    due_date: UtcDatetime = Field(..., description="Due date")
    tags: list[str] = Field(default_factory=list)
    subtasks: list[SubtaskCreate] = Field(default_factory=list)
    time_spent_seconds: int = Field(default=0, ge=0)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return clean_title(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        return clean_description(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        return normalize_tags(v)


class CommentCreate(BaseModel):
    """Payload for adding a comment."""

    model_config = ConfigDict(extra="forbid")

    text: str = Field(..., description="Comment body")

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Validate text is 1..500 characters after trimming."""
        v = v.strip()
        if not v:
            raise ValueError("Comment text is required")
        if len(v) > Constants.COMMENT_MAX_LENGTH:
            raise ValueError(f"Comment must be at most {Constants.COMMENT_MAX_LENGTH} characters")
        return v


class UserCreate(BaseModel):
    """Pydantic model for creating a user record."""

    name: str = Field(..., description="Display name of the user")
    email: str = Field(..., description="Unique email address")
    role: Role = Field(default=Role.CUSTOMER, description="User role")
    is_active: bool = Field(default=True, description="Whether the account may act")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return clean_name(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return clean_email(v)
