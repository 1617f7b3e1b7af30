"""REST endpoints for user accounts."""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query

from src.core.config import Constants
from src.domain.update_models import UserListQuery, UserSortField, UserUpdate
from src.domain.user import Actor, Role
from src.interface.deps import get_current_actor
from src.services import user_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("")
async def list_users(
    *,
    role: Role | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    sort_by: UserSortField = "created",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=Constants.DEFAULT_PAGE_LIMIT, ge=1, le=Constants.MAX_PAGE_LIMIT),
    actor: Actor = Depends(get_current_actor),
) -> dict[str, Any]:
    query = UserListQuery(
        role=role,
        is_active=is_active,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    result = await user_service.search_users(actor=actor, query=query)
    return {
        "success": True,
        "count": len(result.items),
        "total": result.total,
        "pagination": {"page": result.page, "limit": result.limit, "pages": result.pages},
        "data": [user.model_dump(mode="json") for user in result.items],
    }


@router.get("/stats")
async def get_user_stats(actor: Actor = Depends(get_current_actor)) -> dict[str, Any]:
    """Account statistics (admins only)."""
    stats = await user_service.get_user_stats(actor=actor)
    return {"success": True, "data": stats.model_dump(mode="json")}


@router.get("/{user_id}")
async def get_user(user_id: str, actor: Actor = Depends(get_current_actor)) -> dict[str, Any]:
    user = await user_service.get_user_details(actor=actor, user_id=user_id)
    return {"success": True, "data": user.model_dump(mode="json")}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    actor: Actor = Depends(get_current_actor),
) -> dict[str, Any]:
    user = await user_service.update_user(actor=actor, user_id=user_id, patch=payload)
    return {"success": True, "message": "User updated successfully", "data": user.model_dump(mode="json")}


@router.delete("/{user_id}")
async def delete_user(user_id: str, actor: Actor = Depends(get_current_actor)) -> dict[str, Any]:
    """Delete a user with no unarchived assigned tasks (admins only)."""
    await user_service.delete_user(actor=actor, user_id=user_id)
    return {"success": True, "message": "User deleted successfully"}
