"""Inbound lifecycle event webhooks.

The deployment's change-notification mechanism posts here when an inquiry
document is created or updated. A fan-out failure answers 500 so the sender
redelivers the event; CRM sync outcomes never affect the status code.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from src.inquiry_hub.api.deps import get_lifecycle_hooks
from src.inquiry_hub.errors import RecordStoreError
from src.inquiry_hub.inquiries.hooks import InquiryLifecycleHooks, LifecycleResult
from src.inquiry_hub.inquiries.schemas import InquiryCreatedEvent, InquiryUpdatedEvent

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _summary(result: LifecycleResult) -> dict:
    fanout = result.fanout
    return {
        "event": fanout.event,
        "inquiryId": fanout.inquiry_id,
        "skipped": fanout.skipped_reason,
        "tasksCreated": fanout.tasks_created,
        "activityCreated": fanout.activity_created,
        "tasksClosed": fanout.tasks_closed,
        "syncs": {
            target.value: sync.model_dump(mode="json", by_alias=True)
            for target, sync in result.syncs.items()
        },
    }


def _redeliver(event: str, inquiry_id: str, exc: RecordStoreError) -> HTTPException:
    logger.error("events.fanout_failed", lifecycle_event=event, inquiry_id=inquiry_id, error=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Fan-out failed, redeliver: {exc}",
    )


@router.post("/inquiry-created")
async def inquiry_created(
    body: InquiryCreatedEvent,
    hooks: InquiryLifecycleHooks = Depends(get_lifecycle_hooks),
):
    try:
        result = await hooks.on_inquiry_created(body.inquiry_id, body.service_area, body.data)
    except RecordStoreError as exc:
        raise _redeliver("created", body.inquiry_id, exc) from exc
    return _summary(result)


@router.post("/inquiry-updated")
async def inquiry_updated(
    body: InquiryUpdatedEvent,
    hooks: InquiryLifecycleHooks = Depends(get_lifecycle_hooks),
):
    try:
        result = await hooks.on_inquiry_updated(body.inquiry_id, body.service_area, body.before, body.after)
    except RecordStoreError as exc:
        raise _redeliver("updated", body.inquiry_id, exc) from exc
    return _summary(result)
