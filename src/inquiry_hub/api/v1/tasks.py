"""Per-staff task list and activity feed endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.inquiry_hub.api.deps import get_task_repository
from src.inquiry_hub.errors import DocumentNotFoundError
from src.inquiry_hub.inquiries.repository import TaskRepository
from src.inquiry_hub.inquiries.schemas import ActivityItem, PriorityUpdate, Task, TaskStatus

router = APIRouter(prefix="/users/{uid}", tags=["tasks"])


# ── Tasks ────────────────────────────────────────────────────────────────────


@router.get("/tasks", response_model=list[Task])
async def list_tasks(
    uid: str,
    task_status: TaskStatus | None = Query(default=None, alias="status"),
    limit: int | None = Query(default=None, ge=1, le=500),
    tasks: TaskRepository = Depends(get_task_repository),
) -> list[Task]:
    return await tasks.list_tasks(uid, task_status, limit)


@router.get("/tasks/pending-count")
async def pending_task_count(uid: str, tasks: TaskRepository = Depends(get_task_repository)):
    return {"uid": uid, "pending": await tasks.pending_task_count(uid)}


@router.post("/tasks/{task_id}/complete", status_code=status.HTTP_204_NO_CONTENT)
async def complete_task(
    uid: str, task_id: str, tasks: TaskRepository = Depends(get_task_repository)
) -> None:
    try:
        await tasks.mark_task_complete(uid, task_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.patch("/tasks/{task_id}/priority", status_code=status.HTTP_204_NO_CONTENT)
async def update_task_priority(
    uid: str,
    task_id: str,
    body: PriorityUpdate,
    tasks: TaskRepository = Depends(get_task_repository),
) -> None:
    try:
        await tasks.update_task_priority(uid, task_id, body.priority)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


# ── Activity ─────────────────────────────────────────────────────────────────


@router.get("/activity", response_model=list[ActivityItem])
async def list_activity(
    uid: str,
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: int | None = Query(default=None, ge=1, le=500),
    tasks: TaskRepository = Depends(get_task_repository),
) -> list[ActivityItem]:
    return await tasks.list_activity(uid, unread_only, limit)


@router.post("/activity/{activity_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_activity_read(
    uid: str, activity_id: str, tasks: TaskRepository = Depends(get_task_repository)
) -> None:
    try:
        await tasks.mark_activity_read(uid, activity_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/activity/read-all")
async def mark_all_activity_read(uid: str, tasks: TaskRepository = Depends(get_task_repository)):
    return {"uid": uid, "marked": await tasks.mark_all_activity_read(uid)}
