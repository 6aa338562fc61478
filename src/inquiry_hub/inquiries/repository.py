"""Inquiry, task and activity persistence on top of the record store.

Provides:
- Path helpers for the partitioned collections
- InquiryRepository: typed reads of inquiry documents
- InquiryService: submission and the dashboard state transitions, each
  returning before/after snapshots for the lifecycle hooks
- TaskRepository: per-staff task and activity operations
"""

from __future__ import annotations

from typing import Any

import structlog

from src.inquiry_hub.errors import InquiryNotFoundError
from src.inquiry_hub.inquiries.form_data import serialize_form_data
from src.inquiry_hub.inquiries.schemas import (
    FORM_TO_SERVICE_AREA,
    ActivityItem,
    FormType,
    Inquiry,
    InquiryCreated,
    InquiryStatus,
    InquiryTransition,
    Task,
    TaskPriority,
    TaskStatus,
    parse_form_data,
)
from src.inquiry_hub.store.base import SERVER_TIMESTAMP, Document, FieldFilter, RecordStore, join_path

logger = structlog.get_logger(__name__)

INQUIRY_GROUP = "inquiries"
TASK_GROUP = "tasks"
ACTIVITY_GROUP = "activity"
USERS = "users"

# Set at submission when the created event is delivered in-process; cleared
# once it has been handled.
PENDING_EVENT_FIELD = "lifecycleEventPending"


# ── Paths ───────────────────────────────────────────────────────────────────


def inquiry_collection(service_area: str) -> str:
    return join_path("serviceAreas", str(service_area), INQUIRY_GROUP)


def inquiry_path(service_area: str, inquiry_id: str) -> str:
    return join_path(inquiry_collection(service_area), inquiry_id)


def task_collection(uid: str) -> str:
    return join_path(USERS, uid, TASK_GROUP)


def activity_collection(uid: str) -> str:
    return join_path(USERS, uid, ACTIVITY_GROUP)


def inquiry_link(service_area: str, inquiry_id: str) -> str:
    return f"/dashboard/{service_area}/inquiries/{inquiry_id}"


def inquiry_from_document(doc: Document) -> Inquiry:
    return Inquiry.model_validate({**doc.data, "id": doc.id, "path": doc.path})


# ── Inquiries ───────────────────────────────────────────────────────────────


class InquiryRepository:
    """Reads inquiries by id, with or without their service area."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def get_document(self, inquiry_id: str, service_area: str | None = None) -> Document | None:
        if service_area:
            return await self._store.get(inquiry_path(service_area, inquiry_id))
        return await self._store.find_in_group(INQUIRY_GROUP, inquiry_id)

    async def get(self, inquiry_id: str, service_area: str | None = None) -> Inquiry | None:
        doc = await self.get_document(inquiry_id, service_area)
        return inquiry_from_document(doc) if doc is not None else None

    async def require_document(self, inquiry_id: str, service_area: str | None = None) -> Document:
        doc = await self.get_document(inquiry_id, service_area)
        if doc is None:
            raise InquiryNotFoundError(inquiry_id)
        return doc

    async def list_by_service_area(
        self,
        service_area: str,
        status: InquiryStatus | None = None,
        limit: int | None = None,
    ) -> list[Inquiry]:
        filters = [FieldFilter("status", "==", status.value)] if status else []
        docs = await self._store.query(
            inquiry_collection(service_area),
            filters,
            order_by="submittedAt",
            descending=True,
            limit=limit,
        )
        return [inquiry_from_document(d) for d in docs]

    async def list_pending_events(self, event: str) -> list[Document]:
        """Inquiries across every service area still marked with ``event``."""
        return await self._store.query_group(
            INQUIRY_GROUP, [FieldFilter(PENDING_EVENT_FIELD, "==", event)], order_by="submittedAt"
        )


class InquiryService:
    """Write-side inquiry operations.

    Each state-changing method returns an InquiryTransition (before/after
    data) so the caller can deliver ``on_inquiry_updated``.
    """

    def __init__(self, store: RecordStore, repository: InquiryRepository | None = None) -> None:
        self._store = store
        self._repository = repository or InquiryRepository(store)

    async def submit(
        self,
        form_type: FormType,
        form_data: dict[str, Any],
        submitted_by: str | None = None,
        pending_event: str | None = None,
    ) -> InquiryCreated:
        """Validate and record a new inquiry.

        ``pending_event`` marks the stored inquiry so an unhandled lifecycle
        event can be found and redelivered.

        Raises:
            InvalidPayloadError: When a mapped form type fails its schema.
        """
        form_type = FormType(form_type)
        parse_form_data(form_type.value, form_data)
        service_area = FORM_TO_SERVICE_AREA[form_type]

        data = {
            "formType": form_type.value,
            "serviceArea": service_area.value,
            "formData": serialize_form_data(form_data),
            "status": InquiryStatus.SUBMITTED.value,
            "submittedAt": SERVER_TIMESTAMP,
            "submittedBy": submitted_by or "anonymous",
            "submissionType": "authenticated" if submitted_by else "anonymous",
            "reviewed": False,
        }
        if pending_event:
            data[PENDING_EVENT_FIELD] = pending_event
        inquiry_id = await self._store.create(inquiry_collection(service_area.value), data)
        logger.info(
            "inquiry.submitted",
            inquiry_id=inquiry_id,
            form_type=form_type.value,
            service_area=service_area.value,
            authenticated=bool(submitted_by),
        )
        return InquiryCreated(
            id=inquiry_id,
            service_area=service_area,
            path=inquiry_path(service_area.value, inquiry_id),
        )

    async def clear_pending_event(self, inquiry_path: str) -> None:
        await self._store.update(inquiry_path, {PENDING_EVENT_FIELD: None})

    async def update_status(
        self, inquiry_id: str, status: InquiryStatus, service_area: str | None = None
    ) -> InquiryTransition:
        return await self._transition(inquiry_id, service_area, {"status": InquiryStatus(status).value})

    async def mark_reviewed(
        self, inquiry_id: str, reviewer: str, service_area: str | None = None
    ) -> InquiryTransition:
        return await self._transition(
            inquiry_id,
            service_area,
            {"reviewed": True, "reviewedAt": SERVER_TIMESTAMP, "reviewedBy": reviewer},
        )

    async def record_scheduling(
        self,
        inquiry_id: str,
        scheduled_time: str | None,
        event_uri: str | None = None,
        invitee_uri: str | None = None,
        service_area: str | None = None,
    ) -> InquiryTransition:
        """Store intake scheduling details and move to ``intake-scheduled``."""
        return await self._transition(
            inquiry_id,
            service_area,
            {
                "calendlyScheduling": {
                    "eventUri": event_uri,
                    "scheduledTime": scheduled_time,
                    "inviteeUri": invitee_uri,
                },
                "status": InquiryStatus.INTAKE_SCHEDULED.value,
            },
        )

    async def _transition(
        self, inquiry_id: str, service_area: str | None, fields: dict[str, Any]
    ) -> InquiryTransition:
        before = await self._repository.require_document(inquiry_id, service_area)
        await self._store.update(before.path, fields)
        after = await self._store.get(before.path)
        if after is None:
            raise InquiryNotFoundError(inquiry_id)
        logger.info(
            "inquiry.updated",
            inquiry_id=inquiry_id,
            fields=sorted(fields),
            status_before=before.data.get("status"),
            status_after=after.data.get("status"),
        )
        return InquiryTransition(
            inquiry_id=inquiry_id,
            service_area=before.path.split("/")[1],
            before=before.data,
            after=after.data,
        )


# ── Tasks and Activity ──────────────────────────────────────────────────────


def _task_from_document(doc: Document) -> Task:
    return Task.model_validate({**doc.data, "id": doc.id})


def _activity_from_document(doc: Document) -> ActivityItem:
    return ActivityItem.model_validate({**doc.data, "id": doc.id})


class TaskRepository:
    """Per-staff task and activity feed operations."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def list_tasks(
        self, uid: str, status: TaskStatus | None = None, limit: int | None = None
    ) -> list[Task]:
        filters = [FieldFilter("status", "==", status.value)] if status else []
        docs = await self._store.query(
            task_collection(uid), filters, order_by="createdAt", descending=True, limit=limit
        )
        return [_task_from_document(d) for d in docs]

    async def mark_task_complete(self, uid: str, task_id: str) -> None:
        await self._store.update(
            join_path(task_collection(uid), task_id),
            {"status": TaskStatus.DONE.value, "completedAt": SERVER_TIMESTAMP},
        )
        logger.info("tasks.completed", uid=uid, task_id=task_id)

    async def update_task_priority(self, uid: str, task_id: str, priority: TaskPriority) -> None:
        await self._store.update(
            join_path(task_collection(uid), task_id),
            {"priority": TaskPriority(priority).value},
        )

    async def pending_task_count(self, uid: str) -> int:
        docs = await self._store.query(
            task_collection(uid), [FieldFilter("status", "==", TaskStatus.PENDING.value)]
        )
        return len(docs)

    async def list_activity(
        self, uid: str, unread_only: bool = False, limit: int | None = None
    ) -> list[ActivityItem]:
        filters = [FieldFilter("read", "==", False)] if unread_only else []
        docs = await self._store.query(
            activity_collection(uid), filters, order_by="createdAt", descending=True, limit=limit
        )
        return [_activity_from_document(d) for d in docs]

    async def mark_activity_read(self, uid: str, activity_id: str) -> None:
        await self._store.update(join_path(activity_collection(uid), activity_id), {"read": True})

    async def mark_all_activity_read(self, uid: str) -> int:
        """Mark every unread item read in one batch. Returns the count."""
        unread = await self._store.query(activity_collection(uid), [FieldFilter("read", "==", False)])
        if not unread:
            return 0
        batch = self._store.batch()
        for doc in unread:
            batch.update(doc.path, {"read": True})
        await batch.commit()
        logger.info("activity.marked_all_read", uid=uid, count=len(unread))
        return len(unread)
