"""Record store port -- the document-database collaborator every component talks to.

The store holds schemaless documents addressed by slash-separated paths
(``serviceAreas/mediation/inquiries/abc123``). A collection is the path minus
its last segment; a collection group is every collection sharing the same
final segment (``users/*/tasks``), which is how staff partitions are queried
as one set.

Guarantees every implementation must honour:
- Single-document writes are linearizable: a write is visible to the next read.
- ``SERVER_TIMESTAMP`` anywhere inside written data (including dotted update
  keys) is replaced by the store's clock at write time.
- ``WriteBatch.commit()`` is all-or-nothing.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from src.inquiry_hub.errors import DocumentNotFoundError


class _ServerTimestamp:
    """Sentinel resolved to the store's current time when a write is applied."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo: dict[int, Any]) -> _ServerTimestamp:
        return self


SERVER_TIMESTAMP = _ServerTimestamp()

FilterOp = Literal["==", "!=", "in"]


@dataclass(frozen=True)
class FieldFilter:
    """Equality-style predicate on a (possibly dotted) document field."""

    field: str
    op: FilterOp
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        actual = get_field(data, self.field)
        if self.op == "==":
            return actual == self.value
        if self.op == "!=":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class Document:
    """A document snapshot returned by reads and queries."""

    id: str
    path: str
    data: dict[str, Any]

    @property
    def collection(self) -> str:
        return split_path(self.path)[0]


@dataclass
class BatchWrite:
    """One staged write inside a WriteBatch."""

    kind: Literal["set", "update"]
    path: str
    data: dict[str, Any]
    merge: bool = False


class WriteBatch(ABC):
    """Collects writes and commits them atomically."""

    def __init__(self) -> None:
        self._writes: list[BatchWrite] = []
        self._committed = False

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> WriteBatch:
        self._writes.append(BatchWrite("set", path, copy.deepcopy(data), merge))
        return self

    def update(self, path: str, fields: dict[str, Any]) -> WriteBatch:
        self._writes.append(BatchWrite("update", path, copy.deepcopy(fields)))
        return self

    @property
    def writes(self) -> list[BatchWrite]:
        return list(self._writes)

    def __len__(self) -> int:
        return len(self._writes)

    async def commit(self) -> None:
        """Apply every staged write, or none of them."""
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        if not self._writes:
            self._committed = True
            return
        await self._commit(self._writes)
        self._committed = True

    @abstractmethod
    async def _commit(self, writes: list[BatchWrite]) -> None: ...


class RecordStore(ABC):
    """Abstract document store used for inquiries, tasks, activity and staff."""

    @abstractmethod
    def new_id(self) -> str:
        """Return a fresh document id (for pre-allocating paths inside a batch)."""
        ...

    @abstractmethod
    async def create(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a store-assigned id and return the id."""
        ...

    @abstractmethod
    async def get(self, path: str) -> Document | None:
        """Read a single document, None if absent."""
        ...

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or replace a document (or deep-merge into it when ``merge``)."""
        ...

    @abstractmethod
    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Partially update an existing document.

        Only the named fields change. Dotted keys address nested fields.

        Raises:
            DocumentNotFoundError: If no document exists at ``path``.
        """
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Query one collection."""
        ...

    @abstractmethod
    async def query_group(
        self,
        group: str,
        filters: Iterable[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Query every collection whose final path segment is ``group``."""
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        """Start a new atomic write batch."""
        ...

    async def find_in_group(self, group: str, doc_id: str) -> Document | None:
        """Locate a document by id across every collection in ``group``."""
        for doc in await self.query_group(group):
            if doc.id == doc_id:
                return doc
        return None


# ── Shared helpers for implementations ─────────────────────────────────────


def join_path(*segments: str) -> str:
    return "/".join(s.strip("/") for s in segments)


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection, doc_id)."""
    collection, _, doc_id = path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


def collection_group(collection: str) -> str:
    return collection.strip("/").rsplit("/", 1)[-1]


def get_field(data: dict[str, Any], dotted: str) -> Any:
    """Read a dotted field (``calendlyScheduling.scheduledTime``), None if missing."""
    current: Any = data
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def resolve_server_timestamps(value: Any, now: datetime) -> Any:
    """Replace every SERVER_TIMESTAMP sentinel inside ``value`` with ``now``."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {k: resolve_server_timestamps(v, now) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_server_timestamps(v, now) for v in value]
    return value


def deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_field_updates(data: dict[str, Any], fields: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Return a copy of ``data`` with dotted ``fields`` written into it."""
    result = copy.deepcopy(data)
    for dotted, value in fields.items():
        parts = dotted.split(".")
        target = result
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = resolve_server_timestamps(copy.deepcopy(value), now)
    return result


def apply_write(existing: dict[str, Any] | None, write: BatchWrite, now: datetime) -> dict[str, Any]:
    """Compute the document contents after ``write``.

    Raises:
        DocumentNotFoundError: For an ``update`` against a missing document.
    """
    if write.kind == "update":
        if existing is None:
            raise DocumentNotFoundError(write.path)
        return apply_field_updates(existing, write.data, now)

    resolved = resolve_server_timestamps(write.data, now)
    if write.merge and existing is not None:
        return deep_merge(existing, resolved)
    return resolved


def select_documents(
    docs: Iterable[Document],
    filters: Iterable[FieldFilter],
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list[Document]:
    """Filter, order and limit an in-memory candidate set."""
    filters = list(filters)
    selected = [d for d in docs if all(f.matches(d.data) for f in filters)]
    if order_by is not None:
        present = [d for d in selected if get_field(d.data, order_by) is not None]
        missing = [d for d in selected if get_field(d.data, order_by) is None]
        present.sort(key=lambda d: get_field(d.data, order_by), reverse=descending)
        selected = present + missing
    if limit is not None:
        selected = selected[:limit]
    return selected
