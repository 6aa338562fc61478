"""Tests for inquiry submission, transitions and per-staff task operations."""

from __future__ import annotations

import pytest

from src.inquiry_hub.errors import DocumentNotFoundError, InquiryNotFoundError, InvalidPayloadError
from src.inquiry_hub.inquiries.repository import (
    InquiryRepository,
    InquiryService,
    TaskRepository,
    inquiry_link,
    inquiry_path,
)
from src.inquiry_hub.inquiries.schemas import (
    FormType,
    InquiryStatus,
    ServiceArea,
    TaskPriority,
    TaskStatus,
)


@pytest.fixture
def service(store) -> InquiryService:
    return InquiryService(store)


@pytest.fixture
def tasks(store) -> TaskRepository:
    return TaskRepository(store)


class TestPaths:
    def test_inquiry_path_and_link(self):
        assert inquiry_path("mediation", "abc") == "serviceAreas/mediation/inquiries/abc"
        assert inquiry_link("mediation", "abc") == "/dashboard/mediation/inquiries/abc"


class TestSubmit:
    async def test_mediation_lands_in_mediation_partition(self, store, service, mediation_form, now):
        created = await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)

        assert created.service_area == ServiceArea.MEDIATION
        doc = await store.get(created.path)
        assert doc.data["status"] == "submitted"
        assert doc.data["submittedAt"] == now
        assert doc.data["submittedBy"] == "anonymous"
        assert doc.data["submissionType"] == "anonymous"
        assert doc.data["formData"]["firstName"] == "Jane"

    async def test_authenticated_submission(self, store, service, restorative_form):
        created = await service.submit(FormType.RESTORATIVE_PROGRAM_REFERRAL, restorative_form, "staff-9")

        assert created.path.startswith("serviceAreas/restorativePractices/inquiries/")
        doc = await store.get(created.path)
        assert doc.data["submissionType"] == "authenticated"
        assert doc.data["submittedBy"] == "staff-9"

    async def test_unmapped_forms_are_stored_as_is(self, store, service):
        created = await service.submit(FormType.GROUP_FACILITATION_INQUIRY, {"name": "Pat", "groupSize": 12})

        assert created.service_area == ServiceArea.FACILITATION
        assert (await store.get(created.path)).data["formData"] == {"name": "Pat", "groupSize": 12}

    async def test_invalid_mapped_form_is_rejected(self, store, service, mediation_form):
        del mediation_form["phone"]

        with pytest.raises(InvalidPayloadError):
            await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)
        assert len(store) == 0


class TestRepository:
    async def test_lookup_with_and_without_service_area(self, store, service, mediation_form):
        created = await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)
        repository = InquiryRepository(store)

        by_group = await repository.get(created.id)
        by_area = await repository.get(created.id, "mediation")

        assert by_group.path == by_area.path == created.path
        assert by_group.form_type == "mediation-self-referral"
        assert await repository.get(created.id, "facilitation") is None

    async def test_require_document_raises(self, store):
        with pytest.raises(InquiryNotFoundError):
            await InquiryRepository(store).require_document("ghost")

    async def test_list_by_service_area_filters_status(self, store, service, mediation_form):
        first = await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)
        await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)
        await service.update_status(first.id, InquiryStatus.CLOSED)

        closed = await InquiryRepository(store).list_by_service_area("mediation", InquiryStatus.CLOSED)

        assert [i.id for i in closed] == [first.id]


class TestTransitions:
    async def test_update_status_returns_before_and_after(self, service, mediation_form):
        created = await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)

        transition = await service.update_status(created.id, InquiryStatus.IN_PROGRESS)

        assert transition.service_area == "mediation"
        assert transition.before["status"] == "submitted"
        assert transition.after["status"] == "in-progress"

    async def test_record_scheduling(self, service, mediation_form):
        created = await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)

        transition = await service.record_scheduling(
            created.id, "2026-03-10T14:00:00Z", event_uri="https://calendly.test/e/1"
        )

        assert transition.after["status"] == "intake-scheduled"
        assert transition.after["calendlyScheduling"]["scheduledTime"] == "2026-03-10T14:00:00Z"
        assert transition.after["calendlyScheduling"]["eventUri"] == "https://calendly.test/e/1"

    async def test_mark_reviewed(self, service, mediation_form, now):
        created = await service.submit(FormType.MEDIATION_SELF_REFERRAL, mediation_form)

        transition = await service.mark_reviewed(created.id, "coord-1")

        assert transition.after["reviewed"] is True
        assert transition.after["reviewedBy"] == "coord-1"
        assert transition.after["reviewedAt"] == now

    async def test_missing_inquiry_raises(self, service):
        with pytest.raises(InquiryNotFoundError):
            await service.update_status("ghost", InquiryStatus.CLOSED)


class TestTaskRepository:
    async def test_list_and_complete_tasks(self, store, tasks, now):
        await store.set("users/u1/tasks/t1", {"title": "A", "type": "new-inquiry", "assignedTo": "u1", "status": "pending"})
        await store.set("users/u1/tasks/t2", {"title": "B", "type": "intake-call", "assignedTo": "u1", "status": "pending"})

        await tasks.mark_task_complete("u1", "t1")

        pending = await tasks.list_tasks("u1", TaskStatus.PENDING)
        assert [t.id for t in pending] == ["t2"]
        done = (await store.get("users/u1/tasks/t1")).data
        assert done["status"] == "done"
        assert done["completedAt"] == now
        assert await tasks.pending_task_count("u1") == 1

    async def test_update_priority(self, store, tasks):
        await store.set("users/u1/tasks/t1", {"title": "A", "type": "follow-up", "assignedTo": "u1"})

        await tasks.update_task_priority("u1", "t1", TaskPriority.LOW)

        [task] = await tasks.list_tasks("u1")
        assert task.priority == TaskPriority.LOW

    async def test_completing_missing_task_raises(self, tasks):
        with pytest.raises(DocumentNotFoundError):
            await tasks.mark_task_complete("u1", "ghost")

    async def test_activity_read_state(self, store, tasks):
        await store.set("users/u1/activity/a1", {"message": "one", "read": False})
        await store.set("users/u1/activity/a2", {"message": "two", "read": False})
        await store.set("users/u1/activity/a3", {"message": "three", "read": True})

        await tasks.mark_activity_read("u1", "a1")
        unread = await tasks.list_activity("u1", unread_only=True)

        assert [a.id for a in unread] == ["a2"]

    async def test_mark_all_activity_read(self, store, tasks):
        await store.set("users/u1/activity/a1", {"message": "one", "read": False})
        await store.set("users/u1/activity/a2", {"message": "two", "read": False})
        await store.set("users/u2/activity/a3", {"message": "other", "read": False})

        assert await tasks.mark_all_activity_read("u1") == 2
        assert await tasks.mark_all_activity_read("u1") == 0
        assert await tasks.list_activity("u1", unread_only=True) == []
        assert len(await tasks.list_activity("u2", unread_only=True)) == 1
