"""Staff directory resolver: who receives tasks and activity."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from src.inquiry_hub.inquiries.schemas import StaffRole
from src.inquiry_hub.store.base import FieldFilter, RecordStore

logger = structlog.get_logger(__name__)

DEFAULT_STAFF_ROLES = (StaffRole.ADMIN.value, StaffRole.COORDINATOR.value)


class StaffDirectory:
    """Resolves the ids of ``users`` documents holding a staff role."""

    def __init__(self, store: RecordStore, roles: Iterable[str] = DEFAULT_STAFF_ROLES) -> None:
        self._store = store
        self._roles = [str(r) for r in roles]

    async def resolve(self) -> list[str]:
        docs = await self._store.query("users", [FieldFilter("role", "in", self._roles)])
        staff_ids = sorted(doc.id for doc in docs)
        if not staff_ids:
            logger.warning("staff_directory.empty", roles=self._roles)
        return staff_ids
