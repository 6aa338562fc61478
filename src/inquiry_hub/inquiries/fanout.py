"""Task/activity fan-out on inquiry lifecycle events.

Each qualifying event writes one Task and one ActivityItem per staff member
in a single atomic batch. Before a round is written, open tasks of the
superseded types for the same inquiry are closed across every staff
partition (collection-group query), also in one batch, so each staff member
holds at most one open task per (inquiryId, type).

Batch failures propagate to the caller so the event can be redelivered.
An empty staff directory is logged and treated as a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from src.inquiry_hub.core.monitoring import fanout_documents_total
from src.inquiry_hub.inquiries.directory import StaffDirectory
from src.inquiry_hub.inquiries.form_data import parse_scheduled_time, resolve_participant_name
from src.inquiry_hub.inquiries.repository import (
    TASK_GROUP,
    activity_collection,
    inquiry_link,
    task_collection,
)
from src.inquiry_hub.inquiries.schemas import (
    InquiryStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
    service_area_label,
)
from src.inquiry_hub.store.base import SERVER_TIMESTAMP, FieldFilter, RecordStore, get_field, join_path

logger = structlog.get_logger(__name__)

EVENT_CREATED = "inquiry_created"
EVENT_INTAKE_SCHEDULED = "intake_scheduled"


@dataclass
class FanoutResult:
    """What one lifecycle event wrote."""

    event: str
    inquiry_id: str
    staff_ids: list[str] = field(default_factory=list)
    tasks_created: int = 0
    activity_created: int = 0
    tasks_closed: int = 0
    skipped_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


@dataclass(frozen=True)
class _Round:
    """One task + activity round for every staff member."""

    event: str
    task_type: TaskType
    title: str
    message: str
    service_area: str
    inquiry_id: str
    priority: TaskPriority = TaskPriority.HIGH
    due: datetime | None = None

    @property
    def link(self) -> str:
        return inquiry_link(self.service_area, self.inquiry_id)


def is_intake_scheduled_transition(before: dict[str, Any], after: dict[str, Any]) -> bool:
    before_status = (before or {}).get("status")
    after_status = (after or {}).get("status")
    return before_status != after_status and after_status == InquiryStatus.INTAKE_SCHEDULED.value


class FanoutEngine:
    """Creates staff tasks and activity for inquiry lifecycle events."""

    def __init__(self, store: RecordStore, directory: StaffDirectory) -> None:
        self._store = store
        self._directory = directory

    async def on_inquiry_created(
        self, inquiry_id: str, service_area: str, data: dict[str, Any]
    ) -> FanoutResult:
        name = resolve_participant_name((data or {}).get("formData"))
        label = service_area_label(service_area)
        round_ = _Round(
            event=EVENT_CREATED,
            task_type=TaskType.NEW_INQUIRY,
            title=f"New {label} inquiry from {name}",
            message=f"New {label} inquiry from {name}.",
            service_area=service_area,
            inquiry_id=inquiry_id,
        )
        return await self._run(round_, supersedes=(TaskType.NEW_INQUIRY,))

    async def on_inquiry_updated(
        self,
        inquiry_id: str,
        service_area: str,
        before: dict[str, Any],
        after: dict[str, Any],
    ) -> FanoutResult:
        """React to a status change; only ``* -> intake-scheduled`` qualifies."""
        if not is_intake_scheduled_transition(before, after):
            return FanoutResult(
                event=EVENT_INTAKE_SCHEDULED,
                inquiry_id=inquiry_id,
                skipped_reason="not an intake-scheduled transition",
            )

        name = resolve_participant_name(after.get("formData"))
        round_ = _Round(
            event=EVENT_INTAKE_SCHEDULED,
            task_type=TaskType.INTAKE_CALL,
            title=f"Intake call with {name}",
            message=f"{name} has scheduled their intake.",
            service_area=service_area,
            inquiry_id=inquiry_id,
            due=parse_scheduled_time(get_field(after, "calendlyScheduling.scheduledTime")),
        )
        return await self._run(round_, supersedes=(TaskType.NEW_INQUIRY, TaskType.INTAKE_CALL))

    async def close_open_tasks(self, inquiry_id: str, task_types: tuple[TaskType, ...]) -> int:
        """Mark every pending task of ``task_types`` for the inquiry done, atomically."""
        open_tasks = await self._store.query_group(
            TASK_GROUP,
            [
                FieldFilter("inquiryId", "==", inquiry_id),
                FieldFilter("type", "in", [t.value for t in task_types]),
                FieldFilter("status", "==", TaskStatus.PENDING.value),
            ],
        )
        if not open_tasks:
            return 0

        batch = self._store.batch()
        for doc in open_tasks:
            batch.update(doc.path, {"status": TaskStatus.DONE.value, "completedAt": SERVER_TIMESTAMP})
        await batch.commit()
        logger.info("fanout.tasks_closed", inquiry_id=inquiry_id, count=len(open_tasks))
        return len(open_tasks)

    async def _run(self, round_: _Round, supersedes: tuple[TaskType, ...]) -> FanoutResult:
        result = FanoutResult(event=round_.event, inquiry_id=round_.inquiry_id)
        result.tasks_closed = await self.close_open_tasks(round_.inquiry_id, supersedes)

        staff_ids = await self._directory.resolve()
        if not staff_ids:
            result.skipped_reason = "no staff"
            logger.warning("fanout.no_staff", lifecycle_event=round_.event, inquiry_id=round_.inquiry_id)
            return result

        batch = self._store.batch()
        for staff_id in staff_ids:
            batch.set(join_path(task_collection(staff_id), self._store.new_id()), self._task(round_, staff_id))
            batch.set(join_path(activity_collection(staff_id), self._store.new_id()), self._activity(round_))
        await batch.commit()

        result.staff_ids = staff_ids
        result.tasks_created = len(staff_ids)
        result.activity_created = len(staff_ids)
        fanout_documents_total.labels(event=round_.event, kind="task").inc(len(staff_ids))
        fanout_documents_total.labels(event=round_.event, kind="activity").inc(len(staff_ids))
        logger.info(
            "fanout.batch_committed",
            lifecycle_event=round_.event,
            inquiry_id=round_.inquiry_id,
            staff_count=len(staff_ids),
            has_due=round_.due is not None,
        )
        return result

    @staticmethod
    def _task(round_: _Round, staff_id: str) -> dict[str, Any]:
        return {
            "title": round_.title,
            "type": round_.task_type.value,
            "status": TaskStatus.PENDING.value,
            "priority": round_.priority.value,
            "serviceArea": round_.service_area,
            "inquiryId": round_.inquiry_id,
            "link": round_.link,
            "assignedTo": staff_id,
            "createdAt": SERVER_TIMESTAMP,
            "due": round_.due,
            "completedAt": None,
        }

    @staticmethod
    def _activity(round_: _Round) -> dict[str, Any]:
        return {
            "message": round_.message,
            "type": round_.task_type.value,
            "serviceArea": round_.service_area,
            "inquiryId": round_.inquiry_id,
            "link": round_.link,
            "read": False,
            "createdAt": SERVER_TIMESTAMP,
        }
