"""Inbound lifecycle port: what happens when an inquiry is written or changed.

Runs the staff fan-out and, for new inquiries, the CRM syncs. The two are
independent: both always run, fan-out failures propagate so the event is
redelivered, and CRM sync outcomes are recorded on the inquiry without ever
failing the event.

Inquiries submitted through the API carry a ``lifecycleEventPending`` marker
until their created event has been handled; ``redeliver_pending_created``
replays the event for every inquiry still marked.

Exports:
    InquiryLifecycleHooks: Entry point for inquiry created/updated events.
    LifecycleResult: What one event produced.
    deliver_created: Handle a marked created event and clear its marker.
    redeliver_pending_created: Sweep for created events never handled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.inquiry_hub.crm.sync import CRMSyncOrchestrator
from src.inquiry_hub.errors import InquiryNotFoundError, RecordStoreError
from src.inquiry_hub.inquiries.fanout import EVENT_CREATED, FanoutEngine, FanoutResult
from src.inquiry_hub.inquiries.repository import InquiryRepository, InquiryService
from src.inquiry_hub.inquiries.schemas import InquiryTransition, SyncResult, SyncTarget

logger = structlog.get_logger(__name__)


@dataclass
class LifecycleResult:
    fanout: FanoutResult
    syncs: dict[SyncTarget, SyncResult] = field(default_factory=dict)


class InquiryLifecycleHooks:
    """Dispatches inquiry lifecycle events to the fan-out engine and CRM sync."""

    def __init__(self, fanout: FanoutEngine, orchestrator: CRMSyncOrchestrator) -> None:
        self._fanout = fanout
        self._orchestrator = orchestrator

    async def on_inquiry_created(
        self, inquiry_id: str, service_area: str, data: dict[str, Any]
    ) -> LifecycleResult:
        """Notify staff and mirror the inquiry into every mapped CRM.

        Both run to completion whatever the other does. A fan-out error is
        re-raised once the syncs have been recorded.
        """
        fanout, syncs = await asyncio.gather(
            self._fanout.on_inquiry_created(inquiry_id, service_area, data),
            self._orchestrator.sync_all(inquiry_id, service_area),
            return_exceptions=True,
        )
        for outcome in (fanout, syncs):
            if isinstance(outcome, BaseException):
                logger.error(
                    "lifecycle.created_failed",
                    inquiry_id=inquiry_id,
                    fanout_failed=isinstance(fanout, BaseException),
                    syncs_recorded=not isinstance(syncs, BaseException),
                    error=str(outcome),
                )
                raise outcome

        logger.info(
            "lifecycle.created_handled",
            inquiry_id=inquiry_id,
            staff_count=len(fanout.staff_ids),
            synced=sorted(t.value for t, r in syncs.items() if r.success),
            failed=sorted(t.value for t, r in syncs.items() if not r.success),
        )
        return LifecycleResult(fanout=fanout, syncs=syncs)

    async def on_inquiry_updated(
        self,
        inquiry_id: str,
        service_area: str,
        before: dict[str, Any],
        after: dict[str, Any],
    ) -> LifecycleResult:
        fanout = await self._fanout.on_inquiry_updated(inquiry_id, service_area, before, after)
        return LifecycleResult(fanout=fanout)

    async def on_transition(self, transition: InquiryTransition) -> LifecycleResult:
        return await self.on_inquiry_updated(
            transition.inquiry_id,
            transition.service_area,
            transition.before,
            transition.after,
        )


# ── Pending Created Events ──────────────────────────────────────────────────


async def deliver_created(
    hooks: InquiryLifecycleHooks,
    service: InquiryService,
    repository: InquiryRepository,
    inquiry_id: str,
    service_area: str,
) -> LifecycleResult:
    """Handle the created event for a stored inquiry, then clear its marker.

    Raises:
        InquiryNotFoundError: If the inquiry does not exist.
        RecordStoreError: If the fan-out failed; the marker is left set.
    """
    doc = await repository.require_document(inquiry_id, service_area)
    result = await hooks.on_inquiry_created(inquiry_id, service_area, doc.data)
    await service.clear_pending_event(doc.path)
    return result


async def redeliver_pending_created(
    hooks: InquiryLifecycleHooks,
    service: InquiryService,
    repository: InquiryRepository,
) -> tuple[int, int]:
    """Replay every created event still marked pending.

    Returns (delivered, still_pending). Redelivery is safe: the fan-out
    supersedes the tasks of an earlier partial round and syncs update
    records that already exist.
    """
    delivered = still_pending = 0
    for doc in await repository.list_pending_events(EVENT_CREATED):
        service_area = doc.path.split("/")[1]
        try:
            await deliver_created(hooks, service, repository, doc.id, service_area)
        except (RecordStoreError, InquiryNotFoundError) as exc:
            still_pending += 1
            logger.warning("lifecycle.redelivery_failed", inquiry_id=doc.id, error=str(exc))
        else:
            delivered += 1
    logger.info("lifecycle.redelivery_sweep", delivered=delivered, still_pending=still_pending)
    return delivered, still_pending
