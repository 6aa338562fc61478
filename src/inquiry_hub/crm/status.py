"""Per-target sync status stored as flat, target-prefixed inquiry fields.

Each target owns a disjoint set of fields on the inquiry document. Writes go
through a single partial ``update`` naming only those fields, never a
read-modify-write of the whole document, so concurrent syncs for different
targets (or edits to formData) cannot clobber each other.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from src.inquiry_hub.inquiries.schemas import SyncState, SyncStatus, SyncTarget
from src.inquiry_hub.store.base import SERVER_TIMESTAMP, Document, FieldFilter, RecordStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SyncFields:
    """Document field names holding one target's sync state."""

    status: str
    external_id: str
    external_url: str
    error: str
    last_synced_at: str

    def all(self) -> tuple[str, ...]:
        return (self.status, self.external_id, self.external_url, self.error, self.last_synced_at)


SYNC_FIELDS: dict[SyncTarget, SyncFields] = {
    SyncTarget.INSIGHTLY: SyncFields(
        status="insightlySyncStatus",
        external_id="insightlyLeadId",
        external_url="insightlyLeadUrl",
        error="insightlyLastSyncError",
        last_synced_at="insightlyLastSyncedAt",
    ),
    SyncTarget.MONDAY: SyncFields(
        status="mondaySyncStatus",
        external_id="mondayItemId",
        external_url="mondayItemUrl",
        error="mondaySyncError",
        last_synced_at="mondayLastSyncedAt",
    ),
}


def read_status(data: dict[str, Any], target: SyncTarget) -> SyncStatus:
    """Extract one target's SyncStatus from raw inquiry data."""
    fields = SYNC_FIELDS[target]
    raw_status = data.get(fields.status)
    if raw_status is None:
        return SyncStatus(status=SyncState.NEVER_SYNCED)

    external_id = data.get(fields.external_id)
    last_synced = data.get(fields.last_synced_at)
    return SyncStatus(
        status=SyncState(raw_status),
        external_id=str(external_id) if external_id not in (None, "") else None,
        external_url=data.get(fields.external_url) or None,
        error=data.get(fields.error) or None,
        last_synced_at=last_synced if isinstance(last_synced, datetime) else None,
    )


class SyncStatusTracker:
    """Reads and writes per-target sync sub-records on inquiry documents."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def set_status(
        self,
        inquiry_path: str,
        target: SyncTarget,
        status: SyncState,
        external_id: str | None = None,
        external_url: str | None = None,
        error: str | None = None,
    ) -> None:
        """Write ``target``'s fields only.

        ``pending`` touches status and timestamp; ``success`` stores the
        external reference and clears the error; ``failed`` records the error
        and keeps any prior reference so a retry can update instead of create.
        """
        if status == SyncState.NEVER_SYNCED:
            raise ValueError("never-synced is a read-only state")

        fields = SYNC_FIELDS[target]
        update: dict[str, Any] = {
            fields.status: status.value,
            fields.last_synced_at: SERVER_TIMESTAMP,
        }
        if status == SyncState.SUCCESS:
            update[fields.error] = None
        elif status == SyncState.FAILED:
            update[fields.error] = error or "Unknown error"
        if external_id is not None:
            update[fields.external_id] = external_id
        if external_url is not None:
            update[fields.external_url] = external_url

        await self._store.update(inquiry_path, update)
        logger.info(
            "sync_status.updated",
            inquiry_path=inquiry_path,
            target=target.value,
            status=status.value,
            has_external_id=external_id is not None,
        )

    async def get_status(self, inquiry_path: str, target: SyncTarget) -> SyncStatus:
        doc = await self._store.get(inquiry_path)
        if doc is None:
            return SyncStatus(status=SyncState.NEVER_SYNCED)
        return read_status(doc.data, target)

    async def get_all(self, inquiry_path: str) -> dict[SyncTarget, SyncStatus]:
        doc = await self._store.get(inquiry_path)
        data = doc.data if doc is not None else {}
        return {target: read_status(data, target) for target in SyncTarget}

    async def list_failed(self, target: SyncTarget) -> list[Document]:
        """Inquiries whose ``target`` sync is currently failed."""
        fields = SYNC_FIELDS[target]
        return await self._store.query_group(
            "inquiries",
            [FieldFilter(fields.status, "==", SyncState.FAILED.value)],
            order_by="submittedAt",
        )

    async def list_never_synced(self, target: SyncTarget) -> list[Document]:
        """Inquiries with no recorded sync attempt for ``target``."""
        fields = SYNC_FIELDS[target]
        return await self._store.query_group(
            "inquiries",
            [FieldFilter(fields.status, "==", None)],
            order_by="submittedAt",
        )
