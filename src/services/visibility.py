"""Visibility policy: which tasks an actor may see and what it may do to them.

Read access is defined by a single predicate per actor (``scope_filter``). The
same predicate narrows store listings and answers single-task checks, so a task
is readable exactly when it would appear in the actor's listing.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from src.core.errors import ForbiddenError, UnauthorizedError
from src.core.filters import MATCH_ALL, Predicate, any_of, eq
from src.domain.task import Task
from src.domain.user import Actor, Role


logger = logging.getLogger(__name__)


class Operation(StrEnum):
    """Operations checked against the policy."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    ADD_COMMENT = "add_comment"
    UPDATE_SUBTASK = "update_subtask"
    DELETE = "delete"


ADMIN_ONLY_FIELDS = frozenset({"is_archived"})
CUSTOMER_SUBTASK_FIELDS = frozenset({"completed"})


def _as_record(task: Task | Mapping[str, Any]) -> Mapping[str, Any]:
    return task.to_record() if isinstance(task, Task) else task


class Visibility(ABC):
    """Role-specific rules for one actor."""

    role: Role
    task_operations: frozenset[Operation]
    may_create: bool = False

    def __init__(self, actor: Actor) -> None:
        self.actor = actor

    @abstractmethod
    def scope_filter(self) -> Predicate:
        """Predicate selecting the tasks this actor may read."""

    def can_read(self, task: Task | Mapping[str, Any]) -> bool:
        return self.scope_filter().matches(_as_record(task))

    def can_mutate(self, task: Task | Mapping[str, Any] | None, operation: Operation) -> bool:
        if operation == Operation.CREATE:
            return self.may_create
        if task is None or operation not in self.task_operations:
            return False
        return self.can_read(task)

    def check_update_fields(self, fields: Iterable[str]) -> None:
        """Raise ForbiddenError if the patch touches fields this role may not change."""
        denied = ADMIN_ONLY_FIELDS.intersection(fields)
        if denied:
            raise ForbiddenError(f"Only admins may change: {', '.join(sorted(denied))}")

    def check_subtask_fields(self, fields: Iterable[str]) -> None:
        return None

    def bulk_scope(self) -> Predicate:
        """Predicate narrowing bulk updates to the tasks this actor may update."""
        return self.scope_filter()

    def can_bulk_delete(self) -> bool:
        return False


class AdminVisibility(Visibility):
    role = Role.ADMIN
    task_operations = frozenset(Operation)
    may_create = True

    def scope_filter(self) -> Predicate:
        return MATCH_ALL

    def check_update_fields(self, fields: Iterable[str]) -> None:
        return None

    def can_bulk_delete(self) -> bool:
        return True


class VendorVisibility(Visibility):
    """Vendors see tasks they created or are assigned to."""

    role = Role.VENDOR
    task_operations = frozenset(
        {Operation.READ, Operation.UPDATE, Operation.ADD_COMMENT, Operation.UPDATE_SUBTASK}
    )
    may_create = True

    def scope_filter(self) -> Predicate:
        return any_of(eq("created_by_id", self.actor.id), eq("assignee_id", self.actor.id))


class CustomerVisibility(Visibility):
    """Customers see only tasks assigned to them and may not edit task fields."""

    role = Role.CUSTOMER
    task_operations = frozenset({Operation.READ, Operation.ADD_COMMENT, Operation.UPDATE_SUBTASK})

    def scope_filter(self) -> Predicate:
        return eq("assignee_id", self.actor.id)

    def check_subtask_fields(self, fields: Iterable[str]) -> None:
        denied = set(fields) - CUSTOMER_SUBTASK_FIELDS
        if denied:
            raise ForbiddenError(f"Customers may only change: {', '.join(sorted(CUSTOMER_SUBTASK_FIELDS))}")

    def bulk_scope(self) -> Predicate:
        raise ForbiddenError("Customers may not perform bulk updates")


_POLICIES: dict[Role, type[Visibility]] = {
    Role.ADMIN: AdminVisibility,
    Role.VENDOR: VendorVisibility,
    Role.CUSTOMER: CustomerVisibility,
}


def visibility_for(actor: Actor) -> Visibility:
    """Return the policy for an actor.

    Raises:
        UnauthorizedError: If the actor is deactivated
    """
    if not actor.is_active:
        logger.warning("Inactive actor refused", extra={"actor_id": actor.id})
        raise UnauthorizedError("User account is deactivated")
    return _POLICIES[actor.role](actor)


def scope_filter(actor: Actor) -> Predicate:
    return visibility_for(actor).scope_filter()


def can_mutate(actor: Actor, task: Task | Mapping[str, Any] | None, operation: Operation) -> bool:
    return visibility_for(actor).can_mutate(task, operation)


def bulk_scope(actor: Actor) -> Predicate:
    return visibility_for(actor).bulk_scope()


def require(actor: Actor, task: Task | None, operation: Operation) -> Visibility:
    """Check an operation and return the actor's policy.

    Raises:
        UnauthorizedError: If the actor is deactivated
        ForbiddenError: If the policy denies the operation
    """
    policy = visibility_for(actor)
    if not policy.can_mutate(task, operation):
        logger.info(
            "Operation denied",
            extra={"actor_id": actor.id, "role": actor.role, "operation": operation, "task_id": getattr(task, "id", None)},
        )
        raise ForbiddenError()
    return policy
