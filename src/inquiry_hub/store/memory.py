"""In-memory RecordStore for tests and local development.

Batches are applied to a staged copy of the document map and swapped in only
after every write succeeded, so a failure part-way through leaves the store
untouched. Reads return deep copies; callers can never mutate stored state.
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from src.inquiry_hub.store.base import (
    BatchWrite,
    Document,
    FieldFilter,
    RecordStore,
    WriteBatch,
    apply_write,
    collection_group,
    join_path,
    select_documents,
    split_path,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


class InMemoryWriteBatch(WriteBatch):
    def __init__(self, store: InMemoryRecordStore) -> None:
        super().__init__()
        self._store = store

    async def _commit(self, writes: list[BatchWrite]) -> None:
        self._store._commit(writes)


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed document store.

    Args:
        clock: Returns the value substituted for SERVER_TIMESTAMP.
        id_factory: Produces ids for ``create`` and ``new_id``.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._docs: dict[str, dict[str, Any]] = {}

    def new_id(self) -> str:
        return self._id_factory()

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self.new_id()
        self._commit([BatchWrite("set", join_path(collection, doc_id), copy.deepcopy(data))])
        return doc_id

    async def get(self, path: str) -> Document | None:
        data = self._docs.get(path.strip("/"))
        if data is None:
            return None
        return self._to_document(path.strip("/"), data)

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._commit([BatchWrite("set", path, copy.deepcopy(data), merge)])

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        self._commit([BatchWrite("update", path, copy.deepcopy(fields))])

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        collection = collection.strip("/")
        candidates = [
            self._to_document(path, data)
            for path, data in self._docs.items()
            if split_path(path)[0] == collection
        ]
        return select_documents(candidates, filters, order_by, descending, limit)

    async def query_group(
        self,
        group: str,
        filters: Iterable[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        candidates = [
            self._to_document(path, data)
            for path, data in self._docs.items()
            if collection_group(split_path(path)[0]) == group
        ]
        return select_documents(candidates, filters, order_by, descending, limit)

    def batch(self) -> WriteBatch:
        return InMemoryWriteBatch(self)

    # ── Internals ───────────────────────────────────────────────────────────

    def _commit(self, writes: list[BatchWrite]) -> None:
        now = self._clock()
        staged = dict(self._docs)
        for write in writes:
            self._apply_write(staged, write, now)
        self._docs = staged

    def _apply_write(
        self, staged: dict[str, dict[str, Any]], write: BatchWrite, now: datetime
    ) -> None:
        path = write.path.strip("/")
        split_path(path)
        staged[path] = apply_write(staged.get(path), write, now)

    @staticmethod
    def _to_document(path: str, data: dict[str, Any]) -> Document:
        return Document(id=split_path(path)[1], path=path, data=copy.deepcopy(data))

    def __len__(self) -> int:
        return len(self._docs)
