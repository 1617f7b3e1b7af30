"""REST endpoints for tasks."""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, status

from src.core.config import Constants
from src.domain.create_models import CommentCreate, TaskCreate
from src.domain.task import TaskPriority, TaskStatus
from src.domain.update_models import BulkDeleteRequest, BulkUpdateRequest, SortField, SubtaskUpdate, TaskListQuery, TaskUpdate
from src.domain.user import Actor
from src.interface.deps import get_current_actor, get_task_service
from src.services.task_service import TaskService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("")
async def list_tasks(
    *,
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = None,
    assignee_id: str | None = None,
    tags: str | None = Query(default=None, description="Comma-separated tags; matches any"),
    search: str | None = None,
    include_archived: bool = False,
    sort_by: SortField = "created",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=Constants.DEFAULT_PAGE_LIMIT, ge=1, le=Constants.MAX_PAGE_LIMIT),
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    """List tasks visible to the caller."""
    query = TaskListQuery(
        status=task_status,
        priority=priority,
        assignee_id=assignee_id,
        tags=tags.split(",") if tags else [],
        search=search,
        include_archived=include_archived,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    result = await service.list_tasks(actor, query)
    return {
        "success": True,
        "count": len(result.items),
        "total": result.total,
        "pagination": {"page": result.page, "limit": result.limit, "pages": result.pages},
        "data": [item.model_dump(mode="json") for item in result.items],
    }


@router.get("/stats")
async def get_task_stats(
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    stats = await service.get_stats(actor)
    return {"success": True, "data": stats.model_dump()}


@router.get("/overdue")
async def get_overdue_tasks(
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    tasks = await service.get_overdue_tasks(actor)
    return {"success": True, "count": len(tasks), "data": [task.model_dump(mode="json") for task in tasks]}


@router.put("/bulk/update")
async def bulk_update_tasks(
    payload: BulkUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    """Apply one patch to many tasks; only tasks the caller may update are modified."""
    outcome = await service.bulk_update(actor, payload.task_ids, payload.updates)
    return {
        "success": True,
        "message": f"{outcome.result} tasks updated successfully",
        "modified_count": outcome.result,
    }


@router.delete("/bulk/delete")
async def bulk_delete_tasks(
    payload: BulkDeleteRequest,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    outcome = await service.bulk_delete(actor, payload.task_ids)
    return {
        "success": True,
        "message": f"{outcome.result} tasks deleted successfully",
        "deleted_count": outcome.result,
    }


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    task = await service.get_task(actor, task_id)
    return {"success": True, "data": task.model_dump(mode="json")}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    outcome = await service.create_task(actor, payload)
    return {"success": True, "message": "Task created successfully", "data": outcome.result.model_dump(mode="json")}


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    payload: TaskUpdate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    outcome = await service.update_task(actor, task_id, payload)
    return {"success": True, "message": "Task updated successfully", "data": outcome.result.model_dump(mode="json")}


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    await service.delete_task(actor, task_id)
    return {"success": True, "message": "Task deleted successfully"}


@router.post("/{task_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: str,
    payload: CommentCreate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    outcome = await service.add_comment(actor, task_id, payload)
    return {"success": True, "message": "Comment added successfully", "data": outcome.result.model_dump(mode="json")}


@router.put("/{task_id}/subtasks/{subtask_id}")
async def update_subtask(
    task_id: str,
    subtask_id: str,
    payload: SubtaskUpdate,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
) -> dict[str, Any]:
    outcome = await service.update_subtask(actor, task_id, subtask_id, payload)
    return {"success": True, "message": "Subtask updated successfully", "data": outcome.result.model_dump(mode="json")}
