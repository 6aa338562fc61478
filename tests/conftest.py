"""Shared test fixtures.

Provides:
- In-memory record store with a fixed clock and a seeded staff directory
- ``any_store``: the same contract on the in-memory and SQLite-backed stores
- Fake CRM adapters recording every create/update call
- ``outage_store``: staffed in-memory store rejecting activity writes on demand
- Sample form data for the two mapped intake forms
- A MappingContext with a Monday board configured
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio

from src.inquiry_hub.config import MappingContext, MondayMappingDefaults
from src.inquiry_hub.core.database import build_engine, init_db, session_factory_for
from src.inquiry_hub.crm.adapter import CRMAdapter, ExternalRecord
from src.inquiry_hub.errors import RecordStoreError
from src.inquiry_hub.store.memory import InMemoryRecordStore
from src.inquiry_hub.store.sql import SqlRecordStore

FIXED_NOW = datetime(2026, 3, 2, 15, 30, tzinfo=timezone.utc)

MEDIATION_FORM: dict[str, Any] = {
    "prefix": "Ms.",
    "firstName": "Jane",
    "lastName": "Doe",
    "phone": "(555) 123-4567",
    "email": "jane@example.com",
    "preferredContactMethod": "Email",
    "allowVoicemail": "Yes",
    "allowText": "No",
    "streetAddress": "1 Main St",
    "city": "Rockville",
    "state": "MD",
    "zipCode": "20850",
    "referralSource": "Friend",
    "conflictOverview": "Ongoing dispute with a neighbor about a shared fence.",
    "isCourtOrdered": "No",
    "accessibilityNeeds": "None",
    "additionalInfo": "Evenings are best.",
}

RESTORATIVE_FORM: dict[str, Any] = {
    "referrerName": "Sam Lee",
    "referrerEmail": "sam.lee@school.org",
    "referrerPhone": "301-555-0100",
    "referrerOrg": "school",
    "referrerRole": "Counselor",
    "participantName": "Alex Kim",
    "participantSchool": "Rockville High",
    "incidentDescription": "Conflict between two students after a group project.",
    "serviceRequested": "restorative-circle",
    "urgency": "high",
}


class FakeCRMAdapter(CRMAdapter):
    """Records calls; optionally raises a configured error on every write."""

    def __init__(self, prefix: str, error: Exception | None = None) -> None:
        self.prefix = prefix
        self.error = error
        self.created: list[dict[str, Any]] = []
        self.updated: list[tuple[str, dict[str, Any]]] = []

    async def create_record(self, payload: dict[str, Any]) -> ExternalRecord:
        if self.error is not None:
            raise self.error
        self.created.append(payload)
        record_id = f"{self.prefix}-{len(self.created)}"
        return ExternalRecord(id=record_id, url=f"https://crm.test/{self.prefix}/{record_id}")

    async def update_record(self, external_id: str, payload: dict[str, Any]) -> ExternalRecord:
        if self.error is not None:
            raise self.error
        self.updated.append((external_id, payload))
        return ExternalRecord(id=external_id, url=f"https://crm.test/{self.prefix}/{external_id}")


class ActivityOutageStore(InMemoryRecordStore):
    """Rejects any commit that writes an activity item while ``reject_activity`` is set."""

    reject_activity = True

    def _apply_write(self, staged, write, now):
        if self.reject_activity and "/activity/" in write.path:
            raise RecordStoreError(f"write rejected: {write.path}")
        super()._apply_write(staged, write, now)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore(clock=lambda: FIXED_NOW)


@pytest_asyncio.fixture(params=["memory", "sql"])
async def any_store(request, tmp_path):
    """Each record store implementation, both on the fixed clock."""
    if request.param == "memory":
        yield InMemoryRecordStore(clock=lambda: FIXED_NOW)
        return

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_db(engine)
    yield SqlRecordStore(session_factory_for(engine), clock=lambda: FIXED_NOW)
    await engine.dispose()


@pytest_asyncio.fixture
async def staffed_store(store: InMemoryRecordStore) -> InMemoryRecordStore:
    """Store with two staff members (admin, coordinator) and one volunteer."""
    await store.set("users/admin-1", {"role": "admin", "displayName": "Ada"})
    await store.set("users/coord-1", {"role": "coordinator", "displayName": "Cy"})
    await store.set("users/vol-1", {"role": "volunteer", "displayName": "Vi"})
    return store


@pytest_asyncio.fixture
async def outage_store() -> ActivityOutageStore:
    """Two staff members; every fan-out batch fails until ``reject_activity`` is cleared."""
    store = ActivityOutageStore(clock=lambda: FIXED_NOW)
    await store.set("users/admin-1", {"role": "admin"})
    await store.set("users/coord-1", {"role": "coordinator"})
    return store


@pytest.fixture
def mapping_context() -> MappingContext:
    return MappingContext(monday=MondayMappingDefaults(board_id=987654), submitted_at=FIXED_NOW)


@pytest.fixture
def mediation_form() -> dict[str, Any]:
    return dict(MEDIATION_FORM)


@pytest.fixture
def restorative_form() -> dict[str, Any]:
    return dict(RESTORATIVE_FORM)


@pytest.fixture
def now() -> datetime:
    """The clock value the ``store`` fixture stamps on SERVER_TIMESTAMP."""
    return FIXED_NOW


@pytest.fixture
def fake_crm() -> type[FakeCRMAdapter]:
    """Factory for FakeCRMAdapter doubles: ``fake_crm("ins", error=...)``."""
    return FakeCRMAdapter
