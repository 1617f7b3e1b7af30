"""Task service: every task mutation and read goes through here.

Each mutation checks preconditions in a fixed order (task exists, policy allows
it, references resolve), writes once, then publishes its event through the
injected fanout router and returns it alongside the result.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

from src.core import db_client
from src.core.errors import ForbiddenError, InvalidReferenceError, NotFoundError, ValidationFailedError
from src.core.filters import Predicate, all_of, any_of, contains, eq, has_any, one_of
from src.core.logging import log_with_actor_context, span
from src.domain.create_models import CommentCreate, TaskCreate
from src.domain.events import BulkOperation, EventDescriptor, EventKind
from src.domain.task import Comment, Subtask, Task, TaskPage, TaskStats, TaskStatus, TaskView, format_utc, utc_now
from src.domain.update_models import SubtaskEntry, SubtaskUpdate, TaskListQuery, TaskUpdate
from src.domain.user import Actor, User
from src.services import user_service
from src.services.fanout import FanoutRouter
from src.services.task_state_machine import (
    apply_status,
    overdue_filter,
    status_patch,
    status_patches,
    subtask_progress,
    to_view,
)
from src.services.visibility import Operation, require, visibility_for


logger = logging.getLogger(__name__)

TASKS = "tasks"
OVERDUE_LIMIT = 1000

T = TypeVar("T")


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """What a mutation produced and the event it published."""

    result: T
    event: EventDescriptor | None


class TaskService:
    """Mutation pipeline and read operations for tasks."""

    def __init__(self, fanout: FanoutRouter, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.fanout = fanout
        self._clock = clock

    def _publish(self, descriptor: EventDescriptor) -> EventDescriptor:
        # The write is already committed; delivery failures must not fail the mutation
        try:
            self.fanout.publish(descriptor)
        except Exception:
            logger.exception("Event publish failed", extra={"kind": descriptor.kind, "task_id": descriptor.task_id})
        return descriptor

    def _view(self, task: Task) -> TaskView:
        return to_view(task, self._clock())

    async def _load(self, task_id: str) -> Task:
        try:
            record = await db_client.get_record(collection=TASKS, record_id=task_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError("Task not found") from e
        return Task(**record)

    async def _resolve_assignee(self, assignee_id: str) -> User:
        user = await user_service.find_user(user_id=assignee_id)
        if user is None:
            raise InvalidReferenceError()
        return user

    def _task_event(self, kind: EventKind, task: Task, actor: Actor, **extra: Any) -> EventDescriptor:
        return EventDescriptor(
            kind=kind,
            actor=actor,
            task_id=task.id,
            payload={"task": self._view(task).model_dump(mode="json"), "actor": actor.summary(), **extra},
        )

    def _notify_assignee(self, task: Task, actor: Actor, message: str) -> None:
        if task.assignee_id == actor.id:
            return
        self._publish(
            EventDescriptor(
                kind=EventKind.NOTIFICATION,
                actor=actor,
                task_id=task.id,
                target_user_id=task.assignee_id,
                payload={
                    "type": "task_assigned",
                    "message": message,
                    "task_id": task.id,
                    "from": actor.summary(),
                    "timestamp": format_utc(self._clock()),
                },
            )
        )

    def _merge_subtasks(self, task: Task, entries: list[SubtaskEntry], now: datetime) -> list[dict[str, Any]]:
        """Build the replacement checklist; entries with an id keep that subtask's identity."""
        merged: list[Subtask] = []
        seen: set[str] = set()
        for entry in entries:
            if entry.id is None:
                merged.append(Subtask(text=entry.text, completed=bool(entry.completed), created_at=now))
                continue
            existing = task.find_subtask(entry.id)
            if existing is None or entry.id in seen:
                raise ValidationFailedError(f"Unknown or repeated subtask: {entry.id}")
            seen.add(entry.id)
            completed = existing.completed if entry.completed is None else entry.completed
            merged.append(existing.model_copy(update={"text": entry.text, "completed": completed}))
        return [subtask.model_dump(mode="json") for subtask in merged]

    async def create_task(self, actor: Actor, payload: TaskCreate) -> MutationResult[TaskView]:
        with span("task_service.create_task"):
            require(actor, None, Operation.CREATE)
            assignee = await self._resolve_assignee(payload.assignee_id)

            now = self._clock()
            draft = Task(
                id="",
                title=payload.title,
                description=payload.description,
                priority=payload.priority,
                assignee_id=assignee.id,
                assignee_name=assignee.name,
                created_by_id=actor.id,
                due_date=payload.due_date,
                tags=payload.tags,
                subtasks=[Subtask(text=item.text, created_at=now) for item in payload.subtasks],
                time_spent_seconds=payload.time_spent_seconds,
            )
            draft = apply_status(draft, payload.status, now)

            record = await db_client.create_record(collection=TASKS, data=draft.to_document())
            task = Task(**record)
            log_with_actor_context(logger, "info", "Task created", actor_id=actor.id, task_id=task.id)

            event = self._publish(self._task_event(EventKind.TASK_CREATED, task, actor))
            self._notify_assignee(task, actor, f"{actor.name or 'Someone'} assigned you a task: {task.title}")
            return MutationResult(self._view(task), event)

    async def update_task(self, actor: Actor, task_id: str, patch: TaskUpdate) -> MutationResult[TaskView]:
        with span("task_service.update_task"):
            fields = patch.to_patch()
            if not fields:
                raise ValidationFailedError("No fields to update")

            task = await self._load(task_id)
            policy = require(actor, task, Operation.UPDATE)
            policy.check_update_fields(fields)
            now = self._clock()
            if patch.subtasks is not None:
                fields["subtasks"] = self._merge_subtasks(task, patch.subtasks, now)

            reassigned = "assignee_id" in fields and fields["assignee_id"] != task.assignee_id
            if reassigned:
                assignee = await self._resolve_assignee(fields["assignee_id"])
                fields["assignee_name"] = assignee.name

            fields = status_patch(task, fields, now)
            record = await db_client.update_record(collection=TASKS, record_id=task_id, data=fields)
            updated = Task(**record)
            log_with_actor_context(
                logger, "info", "Task updated", actor_id=actor.id, task_id=task_id, fields=sorted(fields)
            )

            event = self._publish(
                self._task_event(EventKind.TASK_UPDATED, updated, actor, changes=sorted(fields))
            )
            if reassigned:
                self._notify_assignee(updated, actor, f"{actor.name or 'Someone'} assigned you a task: {updated.title}")
            return MutationResult(self._view(updated), event)

    async def delete_task(self, actor: Actor, task_id: str) -> MutationResult[TaskView]:
        with span("task_service.delete_task"):
            task = await self._load(task_id)
            require(actor, task, Operation.DELETE)

            try:
                await db_client.delete_record(collection=TASKS, record_id=task_id)
            except db_client.RecordNotFoundError as e:
                raise NotFoundError("Task not found") from e
            log_with_actor_context(logger, "info", "Task deleted", actor_id=actor.id, task_id=task_id)

            event = self._publish(self._task_event(EventKind.TASK_DELETED, task, actor, task_id=task_id))
            return MutationResult(self._view(task), event)

    async def bulk_update(self, actor: Actor, task_ids: list[str], patch: TaskUpdate) -> MutationResult[int]:
        """Apply one patch to the given tasks the actor may update.

        Targets outside the actor's scope are skipped silently; the result is the
        number of tasks actually modified.
        """
        with span("task_service.bulk_update"):
            policy = visibility_for(actor)
            scope = policy.bulk_scope()
            fields = patch.to_patch()
            if not fields:
                raise ValidationFailedError("Updates object is required")
            if "subtasks" in fields:
                raise ValidationFailedError("Subtasks cannot be changed in bulk")
            policy.check_update_fields(fields)
            if "assignee_id" in fields:
                assignee = await self._resolve_assignee(fields["assignee_id"])
                fields["assignee_name"] = assignee.name

            ids = list(dict.fromkeys(task_ids))
            target = all_of(one_of("id", ids), scope)

            modified = 0
            for extra, data in status_patches(fields, self._clock()):
                predicate = all_of(target, extra) if extra is not None else target
                modified += await db_client.update_many(
                    collection=TASKS, filter_query=predicate.to_query(), data=data
                )
            log_with_actor_context(
                logger, "info", "Bulk update applied", actor_id=actor.id, requested=len(ids), modified=modified
            )

            event = self._publish(
                EventDescriptor(
                    kind=EventKind.BULK_OPERATION,
                    actor=actor,
                    payload={
                        "operation": BulkOperation.UPDATE.value,
                        "task_ids": ids,
                        "updates": fields,
                        "modified_count": modified,
                        "actor": actor.summary(),
                    },
                )
            )
            return MutationResult(modified, event)

    async def bulk_delete(self, actor: Actor, task_ids: list[str]) -> MutationResult[int]:
        with span("task_service.bulk_delete"):
            if not visibility_for(actor).can_bulk_delete():
                raise ForbiddenError("Only admins may bulk delete tasks")

            ids = list(dict.fromkeys(task_ids))
            deleted = await db_client.delete_many(collection=TASKS, filter_query=one_of("id", ids).to_query())
            log_with_actor_context(
                logger, "info", "Bulk delete applied", actor_id=actor.id, requested=len(ids), deleted=deleted
            )

            event = self._publish(
                EventDescriptor(
                    kind=EventKind.BULK_OPERATION,
                    actor=actor,
                    payload={
                        "operation": BulkOperation.DELETE.value,
                        "task_ids": ids,
                        "deleted_count": deleted,
                        "actor": actor.summary(),
                    },
                )
            )
            return MutationResult(deleted, event)

    async def add_comment(self, actor: Actor, task_id: str, payload: CommentCreate) -> MutationResult[Comment]:
        with span("task_service.add_comment"):
            task = await self._load(task_id)
            require(actor, task, Operation.ADD_COMMENT)

            comment = Comment(
                text=payload.text,
                author_id=actor.id,
                author_name=actor.name,
                author_role=actor.role,
                created_at=self._clock(),
            )
            # Append to the freshest copy so concurrent comments are not lost
            latest = await self._load(task_id)
            comments = [*latest.comments, comment]
            await db_client.update_record(
                collection=TASKS,
                record_id=task_id,
                data={"comments": [item.model_dump(mode="json") for item in comments]},
            )
            log_with_actor_context(logger, "info", "Comment added", actor_id=actor.id, task_id=task_id)

            event = self._publish(
                EventDescriptor(
                    kind=EventKind.COMMENT_ADDED,
                    actor=actor,
                    task_id=task_id,
                    payload={"task_id": task_id, "comment": comment.model_dump(mode="json"), "actor": actor.summary()},
                )
            )
            return MutationResult(comment, event)

    async def update_subtask(
        self, actor: Actor, task_id: str, subtask_id: str, patch: SubtaskUpdate
    ) -> MutationResult[Subtask]:
        with span("task_service.update_subtask"):
            task = await self._load(task_id)
            policy = require(actor, task, Operation.UPDATE_SUBTASK)
            if task.find_subtask(subtask_id) is None:
                raise NotFoundError("Subtask not found")

            fields = patch.to_patch()
            if not fields:
                raise ValidationFailedError("No fields to update")
            policy.check_subtask_fields(fields)

            latest = await self._load(task_id)
            current = latest.find_subtask(subtask_id)
            if current is None:
                raise NotFoundError("Subtask not found")
            subtask = current.model_copy(update=fields)
            subtasks = [subtask if item.id == subtask_id else item for item in latest.subtasks]

            record = await db_client.update_record(
                collection=TASKS,
                record_id=task_id,
                data={"subtasks": [item.model_dump(mode="json") for item in subtasks]},
            )
            updated = Task(**record)
            log_with_actor_context(
                logger, "info", "Subtask updated", actor_id=actor.id, task_id=task_id, subtask_id=subtask_id
            )

            event = self._publish(
                EventDescriptor(
                    kind=EventKind.SUBTASK_UPDATED,
                    actor=actor,
                    task_id=task_id,
                    payload={
                        "task_id": task_id,
                        "subtask": subtask.model_dump(mode="json"),
                        "subtask_progress": subtask_progress(updated).model_dump(),
                        "actor": actor.summary(),
                    },
                )
            )
            return MutationResult(subtask, event)

    def _listing_filter(self, actor: Actor, query: TaskListQuery) -> Predicate:
        clauses: list[Predicate] = [visibility_for(actor).scope_filter()]
        if not query.include_archived:
            clauses.append(eq("is_archived", False))
        if query.status:
            clauses.append(eq("status", query.status.value))
        if query.priority:
            clauses.append(eq("priority", query.priority.value))
        if query.assignee_id:
            clauses.append(eq("assignee_id", query.assignee_id))
        if query.tags:
            clauses.append(any_of(*(has_any("tags", tag) for tag in query.tags)))
        search = (query.search or "").strip()
        if search:
            clauses.append(any_of(contains("title", search), contains("description", search)))
        return all_of(*clauses)

    async def list_tasks(self, actor: Actor, query: TaskListQuery | None = None) -> TaskPage:
        """List the tasks visible to an actor; filters only ever narrow the scope."""
        with span("task_service.list_tasks"):
            query = query or TaskListQuery()
            filter_query = self._listing_filter(actor, query).to_query()

            total = await db_client.count_records(collection=TASKS, filter_query=filter_query)
            records = await db_client.list_records(
                collection=TASKS,
                filter_query=filter_query,
                page=query.page,
                per_page=query.limit,
                sort=query.sort,
            )
            return TaskPage(
                items=[self._view(Task(**record)) for record in records],
                total=total,
                page=query.page,
                limit=query.limit,
                pages=math.ceil(total / query.limit),
            )

    async def get_task(self, actor: Actor, task_id: str) -> TaskView:
        with span("task_service.get_task"):
            task = await self._load(task_id)
            require(actor, task, Operation.READ)
            return self._view(task)

    async def get_stats(self, actor: Actor) -> TaskStats:
        with span("task_service.get_stats"):
            visible = all_of(visibility_for(actor).scope_filter(), eq("is_archived", False))
            counts = await db_client.aggregate_counts(
                collection=TASKS, filter_query=visible.to_query(), group_fields=["status", "priority"]
            )
            overdue = await db_client.count_records(
                collection=TASKS, filter_query=all_of(visible, overdue_filter(self._clock())).to_query()
            )
            by_status: dict[str, int] = counts.get("status", {})
            by_priority: dict[str, int] = counts.get("priority", {})
            return TaskStats(
                total=counts["total"],
                todo=by_status.get(TaskStatus.TODO.value, 0),
                inprogress=by_status.get(TaskStatus.IN_PROGRESS.value, 0),
                done=by_status.get(TaskStatus.DONE.value, 0),
                high=by_priority.get("high", 0),
                medium=by_priority.get("medium", 0),
                low=by_priority.get("low", 0),
                overdue=overdue,
            )

    async def get_overdue_tasks(self, actor: Actor) -> list[TaskView]:
        """Visible, unarchived, unfinished tasks past their due date, earliest first."""
        with span("task_service.get_overdue_tasks"):
            predicate = all_of(
                visibility_for(actor).scope_filter(), eq("is_archived", False), overdue_filter(self._clock())
            )
            records = await db_client.list_records(
                collection=TASKS, filter_query=predicate.to_query(), sort="due_date", per_page=OVERDUE_LIMIT
            )
            return [self._view(Task(**record)) for record in records]
