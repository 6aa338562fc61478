"""REST API endpoints for inquiries and their CRM sync state.

Provides submission, the dashboard status transitions (which deliver the
inquiry-updated lifecycle event inline), the per-target sync status view and
the manual sync retry action.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status

from src.inquiry_hub.api.deps import (
    get_inquiry_repository,
    get_inquiry_service,
    get_lifecycle_hooks,
    get_orchestrator,
)
from src.inquiry_hub.crm.sync import CRMSyncOrchestrator
from src.inquiry_hub.errors import (
    InquiryNotFoundError,
    InvalidPayloadError,
    RecordStoreError,
    SyncErrorKind,
)
from src.inquiry_hub.inquiries.fanout import EVENT_CREATED
from src.inquiry_hub.inquiries.hooks import InquiryLifecycleHooks, deliver_created
from src.inquiry_hub.inquiries.repository import InquiryRepository, InquiryService
from src.inquiry_hub.inquiries.schemas import (
    CalendlyScheduling,
    CamelModel,
    InquiryCreate,
    InquiryCreated,
    InquiryTransition,
    StatusUpdate,
    SyncResult,
    SyncStatus,
    SyncTarget,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/inquiries", tags=["inquiries"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class TransitionResponse(CamelModel):
    """Result of a status-changing dashboard action."""

    inquiry_id: str
    status: str | None = None
    tasks_created: int = 0
    tasks_closed: int = 0


# ── Lifecycle Delivery ───────────────────────────────────────────────────────


async def _deliver_created(
    hooks: InquiryLifecycleHooks,
    service: InquiryService,
    repository: InquiryRepository,
    created: InquiryCreated,
) -> None:
    """Run the created event after the submission response is sent."""
    try:
        await deliver_created(hooks, service, repository, created.id, created.service_area.value)
    except (RecordStoreError, InquiryNotFoundError) as exc:
        # The inquiry keeps its pending marker for redeliver_lifecycle_events.py.
        logger.error(
            "lifecycle.created_delivery_failed",
            inquiry_id=created.id,
            error=str(exc),
            left_pending=True,
        )


async def _deliver_transition(
    hooks: InquiryLifecycleHooks, transition: InquiryTransition
) -> TransitionResponse:
    try:
        result = await hooks.on_transition(transition)
    except RecordStoreError as exc:
        logger.error("lifecycle.updated_delivery_failed", inquiry_id=transition.inquiry_id, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Inquiry updated but staff fan-out failed: {exc}",
        ) from exc
    return TransitionResponse(
        inquiry_id=transition.inquiry_id,
        status=transition.after.get("status"),
        tasks_created=result.fanout.tasks_created,
        tasks_closed=result.fanout.tasks_closed,
    )


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("", response_model=InquiryCreated, status_code=status.HTTP_201_CREATED)
async def submit_inquiry(
    body: InquiryCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    service: InquiryService = Depends(get_inquiry_service),
    repository: InquiryRepository = Depends(get_inquiry_repository),
) -> InquiryCreated:
    """Record a new inquiry, then fan out to staff and sync to CRMs."""
    hooks = getattr(request.app.state, "lifecycle_hooks", None)
    inline = hooks is not None and getattr(request.app.state, "inline_lifecycle_events", True)
    try:
        created = await service.submit(
            body.form_type,
            body.form_data,
            body.submitted_by,
            pending_event=EVENT_CREATED if inline else None,
        )
    except InvalidPayloadError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "problems": exc.problems},
        ) from exc

    if inline:
        background_tasks.add_task(_deliver_created, hooks, service, repository, created)
    return created


@router.get("/{inquiry_id}/sync-status", response_model=dict[SyncTarget, SyncStatus])
async def get_sync_status(
    inquiry_id: str,
    service_area: str | None = Query(default=None, alias="serviceArea"),
    orchestrator: CRMSyncOrchestrator = Depends(get_orchestrator),
) -> dict[SyncTarget, SyncStatus]:
    try:
        return await orchestrator.get_sync_status(inquiry_id, service_area)
    except InquiryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/{inquiry_id}/sync/{target}", response_model=SyncResult)
async def retry_sync(
    inquiry_id: str,
    target: SyncTarget,
    service_area: str | None = Query(default=None, alias="serviceArea"),
    orchestrator: CRMSyncOrchestrator = Depends(get_orchestrator),
) -> SyncResult:
    """Manual retry. A failed sync is still a 200 carrying the failure."""
    result = await orchestrator.retry_sync(inquiry_id, target, service_area)
    if result.error_kind == SyncErrorKind.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return result


@router.post("/{inquiry_id}/status", response_model=TransitionResponse)
async def update_status(
    inquiry_id: str,
    body: StatusUpdate,
    service_area: str | None = Query(default=None, alias="serviceArea"),
    service: InquiryService = Depends(get_inquiry_service),
    hooks: InquiryLifecycleHooks = Depends(get_lifecycle_hooks),
) -> TransitionResponse:
    try:
        transition = await service.update_status(inquiry_id, body.status, service_area)
    except InquiryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return await _deliver_transition(hooks, transition)


@router.post("/{inquiry_id}/scheduling", response_model=TransitionResponse)
async def record_scheduling(
    inquiry_id: str,
    body: CalendlyScheduling,
    service_area: str | None = Query(default=None, alias="serviceArea"),
    service: InquiryService = Depends(get_inquiry_service),
    hooks: InquiryLifecycleHooks = Depends(get_lifecycle_hooks),
) -> TransitionResponse:
    """Store the booked intake time and move the inquiry to intake-scheduled."""
    scheduled = body.scheduled_time
    try:
        transition = await service.record_scheduling(
            inquiry_id,
            scheduled.isoformat() if hasattr(scheduled, "isoformat") else scheduled,
            event_uri=body.event_uri,
            invitee_uri=body.invitee_uri,
            service_area=service_area,
        )
    except InquiryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return await _deliver_transition(hooks, transition)
