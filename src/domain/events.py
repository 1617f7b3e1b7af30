"""Realtime event models and channel names."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from src.domain.user import Actor, Role


class EventKind(StrEnum):
    """What happened; each kind has a fixed channel rule and wire name."""

    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    COMMENT_ADDED = "comment_added"
    SUBTASK_UPDATED = "subtask_updated"
    BULK_OPERATION = "bulk_operation"
    PRESENCE_CHANGED = "presence_changed"
    NOTIFICATION = "notification"
    TYPING = "typing"


WIRE_NAMES: dict[EventKind, str] = {
    EventKind.TASK_CREATED: "taskCreated",
    EventKind.TASK_UPDATED: "taskUpdated",
    EventKind.TASK_DELETED: "taskDeleted",
    EventKind.COMMENT_ADDED: "commentAdded",
    EventKind.SUBTASK_UPDATED: "subtaskUpdated",
    EventKind.BULK_OPERATION: "bulkOperationPerformed",
    EventKind.PRESENCE_CHANGED: "userPresenceUpdate",
    EventKind.NOTIFICATION: "notification",
    EventKind.TYPING: "userTyping",
}

# Server-only frames
CONNECTED_EVENT = "connected"
ERROR_EVENT = "error"


class PresenceStatus(StrEnum):
    """Presence states an actor may report."""

    ONLINE = "online"
    AWAY = "away"
    BUSY = "busy"
    OFFLINE = "offline"


class BulkOperation(StrEnum):
    UPDATE = "update"
    DELETE = "delete"


class RealtimeEvent(BaseModel):
    """A frame as delivered to a connection: ``{"event": name, "data": payload}``."""

    event: str = Field(..., description="Wire event name")
    data: dict[str, Any] = Field(default_factory=dict, description="Self-contained payload")


@dataclass(frozen=True)
class EventDescriptor:
    """Everything the fanout router needs to route and render one event."""

    kind: EventKind
    payload: dict[str, Any]
    actor: Actor
    task_id: str | None = None
    target_user_id: str | None = None

    def to_event(self) -> RealtimeEvent:
        return RealtimeEvent(event=WIRE_NAMES[self.kind], data=self.payload)


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


def role_channel(role: Role | str) -> str:
    return f"role:{role}"


def task_channel(task_id: str) -> str:
    return f"task:{task_id}"
