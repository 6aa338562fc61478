"""CRM sync orchestrator: mirrors one inquiry into one external CRM.

Each (inquiry, target) sync is an independent, idempotent operation:

1. Load the inquiry (NotFound if absent; nothing is written).
2. Reject targets with no registered mapper or no configured adapter
   (Unsupported; status untouched).
3. Mark the target ``pending``.
4. Map the frozen formData snapshot into the target payload
   (InvalidPayload never reaches the network).
5. Update the stored external record if one exists, else create it.
6. Record ``success`` with the external reference, or
7. record ``failed`` with the error message.

``sync()`` never raises: the lifecycle events that call it must proceed
whatever the CRM outcome. Retries are explicit calls of the same operation
(``retry_sync`` or the sweep script); nothing here loops or backs off.
"""

from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from src.inquiry_hub.config import MappingContext
from src.inquiry_hub.core.monitoring import crm_sync_duration_seconds, crm_sync_total
from src.inquiry_hub.crm.adapter import CRMAdapter, ExternalRecord
from src.inquiry_hub.crm.mapping import has_mapper, map_inquiry
from src.inquiry_hub.crm.mapping import targets_for as mapped_targets
from src.inquiry_hub.crm.status import SYNC_FIELDS, SyncStatusTracker, read_status
from src.inquiry_hub.errors import (
    InquiryHubError,
    InquiryNotFoundError,
    SyncErrorKind,
    UnsupportedTargetError,
)
from src.inquiry_hub.inquiries.form_data import hydrate_form_data
from src.inquiry_hub.inquiries.repository import InquiryRepository
from src.inquiry_hub.inquiries.schemas import SyncResult, SyncState, SyncStatus, SyncTarget
from src.inquiry_hub.store.base import Document

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    """The parts of an inquiry one sync reads, captured once at load time."""

    path: str
    form_type: str
    form_data: dict[str, Any]
    external_id: str | None
    submitted_at: datetime | None

    @classmethod
    def from_document(cls, doc: Document, target: SyncTarget) -> _Snapshot:
        data = copy.deepcopy(doc.data)
        external_id = data.get(SYNC_FIELDS[target].external_id)
        submitted_at = data.get("submittedAt")
        form_data = data.get("formData")
        return cls(
            path=doc.path,
            form_type=str(data.get("formType") or ""),
            form_data=hydrate_form_data(form_data) if isinstance(form_data, dict) else {},
            external_id=str(external_id) if external_id not in (None, "") else None,
            submitted_at=submitted_at if isinstance(submitted_at, datetime) else None,
        )


def _error_kind(exc: Exception) -> SyncErrorKind:
    return exc.kind if isinstance(exc, InquiryHubError) else SyncErrorKind.UNEXPECTED


def _failure(target: SyncTarget, exc: Exception) -> SyncResult:
    return SyncResult(success=False, target=target, error=str(exc) or type(exc).__name__, error_kind=_error_kind(exc))


class CRMSyncOrchestrator:
    """Runs create-or-update syncs of inquiries into the configured CRMs.

    Args:
        repository: Inquiry reads.
        tracker: Per-target sync status writes.
        adapters: One CRMAdapter per configured target. A target without an
            adapter is treated as unsupported.
        mapping_context: Fixed ids and board layout handed to every mapper.
    """

    def __init__(
        self,
        repository: InquiryRepository,
        tracker: SyncStatusTracker,
        adapters: dict[SyncTarget, CRMAdapter],
        mapping_context: MappingContext,
    ) -> None:
        self._repository = repository
        self._tracker = tracker
        self._adapters = dict(adapters)
        self._context = mapping_context

    @property
    def configured_targets(self) -> list[SyncTarget]:
        return list(self._adapters)

    def targets_for(self, form_type: str) -> list[SyncTarget]:
        """Targets that both have a mapper for ``form_type`` and an adapter."""
        return [t for t in mapped_targets(form_type) if t in self._adapters]

    async def sync(
        self, inquiry_id: str, target: SyncTarget, service_area: str | None = None
    ) -> SyncResult:
        """Sync one inquiry into one target. Never raises."""
        target = SyncTarget(target)
        started = time.perf_counter()
        try:
            result = await self._sync(inquiry_id, target, service_area)
        except Exception as exc:
            logger.exception("crm_sync.unexpected_error", inquiry_id=inquiry_id, target=target.value)
            result = _failure(target, exc)

        outcome = "success" if result.success else (result.error_kind or SyncErrorKind.UNEXPECTED).value
        crm_sync_total.labels(target=target.value, outcome=outcome).inc()
        crm_sync_duration_seconds.labels(target=target.value).observe(time.perf_counter() - started)
        return result

    async def retry_sync(
        self, inquiry_id: str, target: SyncTarget, service_area: str | None = None
    ) -> SyncResult:
        """Manual retry; the same idempotent operation as ``sync``."""
        logger.info("crm_sync.retry_requested", inquiry_id=inquiry_id, target=SyncTarget(target).value)
        return await self.sync(inquiry_id, target, service_area)

    async def sync_all(
        self, inquiry_id: str, service_area: str | None = None
    ) -> dict[SyncTarget, SyncResult]:
        """Sync every applicable target concurrently.

        A failure on one target never cancels or rolls back another.
        """
        doc = await self._repository.get_document(inquiry_id, service_area)
        if doc is None:
            logger.warning("crm_sync.inquiry_not_found", inquiry_id=inquiry_id)
            return {t: _failure(t, InquiryNotFoundError(inquiry_id)) for t in self._adapters}

        form_type = str(doc.data.get("formType") or "")
        targets = self.targets_for(form_type)
        if not targets:
            logger.info("crm_sync.no_targets", inquiry_id=inquiry_id, form_type=form_type)
            return {}

        area = doc.path.split("/")[1]
        outcomes = await asyncio.gather(
            *(self.sync(inquiry_id, t, area) for t in targets),
            return_exceptions=True,
        )

        results: dict[SyncTarget, SyncResult] = {}
        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("crm_sync.task_failed", inquiry_id=inquiry_id, target=target.value, error=str(outcome))
                results[target] = _failure(target, outcome if isinstance(outcome, Exception) else RuntimeError(str(outcome)))
            else:
                results[target] = outcome
        return results

    async def get_sync_status(
        self, inquiry_id: str, service_area: str | None = None
    ) -> dict[SyncTarget, SyncStatus]:
        """Current status per target.

        Raises:
            InquiryNotFoundError: If the inquiry does not exist.
        """
        doc = await self._repository.require_document(inquiry_id, service_area)
        return {target: read_status(doc.data, target) for target in SyncTarget}

    # ── Internals ───────────────────────────────────────────────────────────

    async def _sync(self, inquiry_id: str, target: SyncTarget, service_area: str | None) -> SyncResult:
        log = logger.bind(inquiry_id=inquiry_id, target=target.value)

        doc = await self._repository.get_document(inquiry_id, service_area)
        if doc is None:
            log.warning("crm_sync.inquiry_not_found")
            return _failure(target, InquiryNotFoundError(inquiry_id))

        snapshot = _Snapshot.from_document(doc, target)
        adapter = self._adapters.get(target)
        if adapter is None or not has_mapper(snapshot.form_type, target):
            log.info("crm_sync.unsupported", form_type=snapshot.form_type, adapter_configured=adapter is not None)
            return _failure(target, UnsupportedTargetError(snapshot.form_type, target.value))

        await self._tracker.set_status(snapshot.path, target, SyncState.PENDING)
        log.info("crm_sync.started", form_type=snapshot.form_type, has_external_id=snapshot.external_id is not None)

        try:
            context = self._context.model_copy(update={"submitted_at": snapshot.submitted_at})
            payload = map_inquiry(
                snapshot.form_type,
                target,
                snapshot.form_data,
                context,
                for_update=snapshot.external_id is not None,
            )
            record = await self._push(adapter, snapshot.external_id, payload)
        except Exception as exc:
            kind = _error_kind(exc)
            if kind == SyncErrorKind.UNEXPECTED:
                log.exception("crm_sync.failed", error_kind=kind.value)
            else:
                log.warning("crm_sync.failed", error_kind=kind.value, error=str(exc))
            result = _failure(target, exc)
            await self._tracker.set_status(snapshot.path, target, SyncState.FAILED, error=result.error)
            return result

        await self._tracker.set_status(
            snapshot.path,
            target,
            SyncState.SUCCESS,
            external_id=record.id,
            external_url=record.url,
        )
        log.info(
            "crm_sync.succeeded",
            external_id=record.id,
            operation="update" if snapshot.external_id else "create",
        )
        return SyncResult(success=True, target=target, external_id=record.id, external_url=record.url)

    @staticmethod
    async def _push(adapter: CRMAdapter, external_id: str | None, payload: dict[str, Any]) -> ExternalRecord:
        if external_id:
            return await adapter.update_record(external_id, payload)
        return await adapter.create_record(payload)
