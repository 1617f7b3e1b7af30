"""Domain models and DTOs."""

from src.domain.create_models import CommentCreate, SubtaskCreate, TaskCreate, UserCreate
from src.domain.events import EventDescriptor, EventKind, RealtimeEvent
from src.domain.task import (
    Comment,
    Subtask,
    SubtaskProgress,
    Task,
    TaskPage,
    TaskPriority,
    TaskStats,
    TaskStatus,
    TaskView,
)
from src.domain.update_models import BulkDeleteRequest, BulkUpdateRequest, SubtaskUpdate, TaskListQuery, TaskUpdate
from src.domain.user import Actor, Role, User


__all__ = [
    "Actor",
    "BulkDeleteRequest",
    "BulkUpdateRequest",
    "Comment",
    "CommentCreate",
    "EventDescriptor",
    "EventKind",
    "RealtimeEvent",
    "Role",
    "Subtask",
    "SubtaskCreate",
    "SubtaskProgress",
    "SubtaskUpdate",
    "Task",
    "TaskCreate",
    "TaskListQuery",
    "TaskPage",
    "TaskPriority",
    "TaskStats",
    "TaskStatus",
    "TaskUpdate",
    "TaskView",
    "User",
    "UserCreate",
]
