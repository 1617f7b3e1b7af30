"""User service for account records.

Reads are open to any active actor; changing or removing accounts and the
account statistics are reserved for admins.
"""

import logging
import math
from typing import Any

from src.core import db_client
from src.core.db_client import sanitize_param
from src.core.errors import ForbiddenError, NotFoundError, ValidationFailedError
from src.core.filters import Predicate, all_of, any_of, contains, eq
from src.core.logging import log_with_actor_context, span
from src.domain.create_models import UserCreate
from src.domain.update_models import UserListQuery, UserUpdate
from src.domain.user import (
    Actor,
    Role,
    User,
    UserDetails,
    UserOverview,
    UserPage,
    UserStats,
    UserTaskStats,
)
from src.services.visibility import visibility_for


logger = logging.getLogger(__name__)


async def create_user(*, payload: UserCreate) -> User:
    """Create a user record.

    Raises:
        ValidationFailedError: If the email is already registered
        db_client.DatabaseError: If database operation fails
    """
    with span("user_service.create_user"):
        existing = await db_client.get_first_record(
            collection="users",
            filter_query=f'email = "{sanitize_param(payload.email)}"',
        )
        if existing:
            msg = f"User with email {payload.email} already exists"
            logger.warning(msg)
            raise ValidationFailedError(msg)

        record = await db_client.create_record(collection="users", data=payload.model_dump(mode="json"))
        logger.info("Created user", extra={"user_id": record["id"], "role": payload.role})
        return User(**record)


async def get_user(*, user_id: str) -> User:
    """Get a user by ID.

    Raises:
        NotFoundError: If the user does not exist
    """
    with span("user_service.get_user"):
        try:
            record = await db_client.get_record(collection="users", record_id=user_id)
        except db_client.RecordNotFoundError as e:
            raise NotFoundError(f"User not found: {user_id}") from e
        return User(**record)


async def find_user(*, user_id: str) -> User | None:
    """Get a user by ID, or None if it does not exist."""
    try:
        return await get_user(user_id=user_id)
    except NotFoundError:
        return None


async def list_users(*, role: Role | None = None, active_only: bool = False) -> list[User]:
    """List users, optionally narrowed by role and active flag."""
    with span("user_service.list_users"):
        clauses: list[str] = []
        if role:
            clauses.append(f'role = "{role.value}"')
        if active_only:
            clauses.append("is_active = true")
        records: list[dict[str, Any]] = await db_client.list_records(
            collection="users",
            filter_query=" && ".join(clauses),
            per_page=500,
            sort="name",
        )
        return [User(**record) for record in records]


RECENT_USERS_LIMIT = 5


def _require_admin(actor: Actor) -> None:
    visibility_for(actor)
    if actor.role != Role.ADMIN:
        logger.info("User management denied", extra={"actor_id": actor.id, "role": actor.role})
        raise ForbiddenError("Only admins may manage users")


def _listing_filter(query: UserListQuery) -> Predicate:
    clauses: list[Predicate] = []
    if query.role:
        clauses.append(eq("role", query.role.value))
    if query.is_active is not None:
        clauses.append(eq("is_active", query.is_active))
    search = (query.search or "").strip()
    if search:
        clauses.append(any_of(contains("name", search), contains("email", search)))
    return all_of(*clauses)


async def search_users(*, actor: Actor, query: UserListQuery | None = None) -> UserPage:
    """One page of users matching the query."""
    with span("user_service.search_users"):
        visibility_for(actor)
        query = query or UserListQuery()
        filter_query = _listing_filter(query).to_query()

        total = await db_client.count_records(collection="users", filter_query=filter_query)
        records = await db_client.list_records(
            collection="users",
            filter_query=filter_query,
            page=query.page,
            per_page=query.limit,
            sort=query.sort,
        )
        return UserPage(
            items=[User(**record) for record in records],
            total=total,
            page=query.page,
            limit=query.limit,
            pages=math.ceil(total / query.limit),
        )


async def get_user_details(*, actor: Actor, user_id: str) -> UserDetails:
    """Get a user together with counts over their unarchived assigned tasks."""
    with span("user_service.get_user_details"):
        visibility_for(actor)
        user = await get_user(user_id=user_id)
        counts = await db_client.aggregate_counts(
            collection="tasks",
            filter_query=all_of(eq("assignee_id", user.id), eq("is_archived", False)).to_query(),
            group_fields=["status"],
            sum_fields=["time_spent_seconds"],
        )
        by_status: dict[str, int] = counts.get("status", {})
        return UserDetails(
            **user.model_dump(),
            task_stats=UserTaskStats(
                total=counts["total"],
                todo=by_status.get("todo", 0),
                inprogress=by_status.get("inprogress", 0),
                done=by_status.get("done", 0),
                total_time_spent_seconds=counts.get("sums", {}).get("time_spent_seconds", 0),
            ),
        )


async def update_user(*, actor: Actor, user_id: str, patch: UserUpdate) -> User:
    """Change a user's name, email, role or active flag.

    A new name is copied onto the tasks assigned to the user.

    Raises:
        ForbiddenError: If the actor is not an admin
        NotFoundError: If the user does not exist
        ValidationFailedError: If the patch is empty or the email is taken
    """
    with span("user_service.update_user"):
        _require_admin(actor)
        fields = patch.to_patch()
        if not fields:
            raise ValidationFailedError("No fields to update")

        user = await get_user(user_id=user_id)
        if "email" in fields and fields["email"] != user.email:
            existing = await db_client.get_first_record(
                collection="users",
                filter_query=f'email = "{sanitize_param(fields["email"])}"',
            )
            if existing and existing["id"] != user_id:
                raise ValidationFailedError("Email is already taken")

        record = await db_client.update_record(collection="users", record_id=user_id, data=fields)
        if "name" in fields and fields["name"] != user.name:
            await db_client.update_many(
                collection="tasks",
                filter_query=eq("assignee_id", user_id).to_query(),
                data={"assignee_name": fields["name"]},
            )

        log_with_actor_context(
            logger, "info", "User updated", actor_id=actor.id, user_id=user_id, fields=sorted(fields)
        )
        return User(**record)


async def delete_user(*, actor: Actor, user_id: str) -> None:
    """Delete a user who has no unarchived tasks assigned.

    Raises:
        ForbiddenError: If the actor is not an admin
        NotFoundError: If the user does not exist
        ValidationFailedError: If unarchived tasks are still assigned to the user
    """
    with span("user_service.delete_user"):
        _require_admin(actor)
        await get_user(user_id=user_id)

        assigned = await db_client.count_records(
            collection="tasks",
            filter_query=all_of(eq("assignee_id", user_id), eq("is_archived", False)).to_query(),
        )
        if assigned:
            raise ValidationFailedError(
                f"Cannot delete user. User has {assigned} assigned tasks. "
                "Please reassign or complete these tasks first."
            )

        await db_client.delete_record(collection="users", record_id=user_id)
        log_with_actor_context(logger, "info", "User deleted", actor_id=actor.id, user_id=user_id)


async def get_user_stats(*, actor: Actor) -> UserStats:
    """Account totals, active users per role, and the newest active users."""
    with span("user_service.get_user_stats"):
        _require_admin(actor)
        counts = await db_client.aggregate_counts(collection="users", group_fields=["role", "is_active"])
        active = eq("is_active", True).to_query()
        active_roles = await db_client.aggregate_counts(collection="users", filter_query=active, group_fields=["role"])
        recent = await db_client.list_records(
            collection="users", filter_query=active, sort="-created", per_page=RECENT_USERS_LIMIT
        )

        by_role: dict[str, int] = counts.get("role", {})
        # SQLite reports booleans as 0/1, which compare equal to False/True
        by_active: dict[Any, int] = counts.get("is_active", {})
        return UserStats(
            overview=UserOverview(
                total=counts["total"],
                active=by_active.get(True, 0),
                inactive=by_active.get(False, 0),
                admins=by_role.get(Role.ADMIN.value, 0),
                vendors=by_role.get(Role.VENDOR.value, 0),
                customers=by_role.get(Role.CUSTOMER.value, 0),
            ),
            role_distribution=dict(active_roles.get("role", {})),
            recent_users=[User(**record) for record in recent],
        )
