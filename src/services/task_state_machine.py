"""Pure functions for task status transitions and derived fields.

Any status may move to any other status. The only invariant is that
``completed_at`` is set while a task is done and cleared otherwise.
"""

import math
from datetime import datetime
from typing import Any

from src.core.filters import Predicate, all_of, eq, lt, ne
from src.domain.task import SubtaskProgress, Task, TaskStatus, TaskView, format_utc


def apply_status(task: Task, new_status: TaskStatus, now: datetime) -> Task:
    """Return the task moved to ``new_status`` with ``completed_at`` kept consistent.

    Idempotent: moving a done task to done keeps its original ``completed_at``.
    """
    completed_at = task.completed_at
    if new_status == TaskStatus.DONE and completed_at is None:
        completed_at = now
    elif new_status != TaskStatus.DONE and completed_at is not None:
        completed_at = None
    return task.model_copy(update={"status": new_status, "completed_at": completed_at})


def status_patch(task: Task, patch: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Extend a single-task patch with the ``completed_at`` change its status implies."""
    if "status" not in patch:
        return patch
    moved = apply_status(task, TaskStatus(patch["status"]), now)
    if moved.completed_at == task.completed_at:
        return patch
    return {**patch, "completed_at": format_utc(moved.completed_at) if moved.completed_at else None}


def status_patches(patch: dict[str, Any], now: datetime) -> list[tuple[Predicate | None, dict[str, Any]]]:
    """Express ``apply_status`` for a set-based write.

    Returns:
        ``(extra predicate, patch)`` pairs; each pair is applied to the targets that
        also match its predicate (``None`` means no extra condition)
    """
    if "status" not in patch:
        return [(None, patch)]
    if patch["status"] == TaskStatus.DONE:
        return [
            (ne("completed_at", None), patch),
            (eq("completed_at", None), {**patch, "completed_at": format_utc(now)}),
        ]
    return [(None, {**patch, "completed_at": None})]


def subtask_progress(task: Task) -> SubtaskProgress:
    total = len(task.subtasks)
    if total == 0:
        return SubtaskProgress()
    completed = sum(1 for subtask in task.subtasks if subtask.completed)
    # half rounds up
    return SubtaskProgress(completed=completed, total=total, percentage=math.floor(completed / total * 100 + 0.5))


def is_overdue(task: Task, now: datetime) -> bool:
    return task.status != TaskStatus.DONE and task.due_date < now


def overdue_filter(now: datetime) -> Predicate:
    """Store predicate equivalent to ``is_overdue``."""
    return all_of(ne("status", TaskStatus.DONE.value), lt("due_date", format_utc(now)))


def format_time_spent(seconds: int) -> str:
    """Format tracked time as ``"2h 5m"`` or ``"7m"``."""
    hours, remainder = divmod(max(seconds, 0), 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def to_view(task: Task, now: datetime) -> TaskView:
    """Attach derived fields to a task."""
    return TaskView(
        **task.model_dump(),
        subtask_progress=subtask_progress(task),
        is_overdue=is_overdue(task, now),
        time_spent_formatted=format_time_spent(task.time_spent_seconds),
    )
