"""SQLAlchemy-backed RecordStore.

Provides SqlRecordStore with the session_factory callable pattern. Documents
live in the single ``documents`` table (see store.models). Datetimes inside
document data are stored as ``{"$ts": "<iso>"}`` so they survive the JSON
column and come back as timezone-aware ``datetime`` values.

A WriteBatch runs inside one session transaction: every staged write is
applied and committed together, or the transaction is rolled back.

Writes lock the rows they read (SELECT ... FOR UPDATE where the dialect has
it) and the version column catches the rest: a transaction whose row changed
after it was read is rolled back and re-applied from a fresh read, so two
partial updates to different fields of one document both survive.

String equality and membership filters on top-level fields run in SQL;
anything else is checked in Python over the narrowed rows.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from src.inquiry_hub.errors import RecordStoreError
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
from src.inquiry_hub.store.models import DocumentModel

logger = structlog.get_logger(__name__)

_TS_KEY = "$ts"


# ── Serialization Helpers ───────────────────────────────────────────────────


def encode_value(value: Any) -> Any:
    """Convert document data into JSON-safe form."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {_TS_KEY: value.isoformat()}
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    """Inverse of encode_value."""
    if isinstance(value, dict):
        if set(value) == {_TS_KEY}:
            return datetime.fromisoformat(value[_TS_KEY])
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def _model_to_document(model: DocumentModel) -> Document:
    return Document(id=model.doc_id, path=model.path, data=decode_value(model.data))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Query Pushdown ──────────────────────────────────────────────────────────


def _as_text(value: Any) -> str | None:
    if isinstance(value, Enum):
        value = value.value
    return value if isinstance(value, str) else None


def _sql_predicates(filters: list[FieldFilter]) -> tuple[list[Any], bool]:
    """Translate the filters SQL can answer exactly.

    Returns the predicates and whether every filter was translated.
    """
    clauses: list[Any] = []
    complete = True
    for f in filters:
        text = _as_text(f.value) if f.op == "==" else None
        members = [_as_text(v) for v in f.value] if f.op == "in" else []
        if "." in f.field:
            complete = False
        elif text is not None:
            clauses.append(DocumentModel.data[f.field].as_string() == text)
        elif members and None not in members:
            clauses.append(DocumentModel.data[f.field].as_string().in_(members))
        else:
            complete = False
    return clauses, complete


# Concurrent writers to one row: the loser re-reads and re-applies.
_stale_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_random(min=0, max=0.05),
    retry=retry_if_exception_type(StaleDataError),
    reraise=True,
)


# ── Batch ───────────────────────────────────────────────────────────────────


class SqlWriteBatch(WriteBatch):
    def __init__(self, store: SqlRecordStore) -> None:
        super().__init__()
        self._store = store

    async def _commit(self, writes: list[BatchWrite]) -> None:
        await self._store._apply_writes(writes)


# ── Store ───────────────────────────────────────────────────────────────────


class SqlRecordStore(RecordStore):
    """Record store persisted through SQLAlchemy async sessions.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
        clock: Returns the value substituted for SERVER_TIMESTAMP.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncGenerator[AsyncSession, None]],
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self.new_id()
        await self._apply_writes([BatchWrite("set", join_path(collection, doc_id), data)])
        return doc_id

    async def get(self, path: str) -> Document | None:
        try:
            async for session in self._session_factory():
                model = await session.get(DocumentModel, path.strip("/"))
                return _model_to_document(model) if model is not None else None
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Failed to read {path}: {exc}") from exc
        return None

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await self._apply_writes([BatchWrite("set", path, data, merge)])

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self._apply_writes([BatchWrite("update", path, fields)])

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        stmt = select(DocumentModel).where(DocumentModel.collection == collection.strip("/"))
        return await self._select(stmt, list(filters), order_by, descending, limit)

    async def query_group(
        self,
        group: str,
        filters: Iterable[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        stmt = select(DocumentModel).where(DocumentModel.collection_group == group)
        return await self._select(stmt, list(filters), order_by, descending, limit)

    async def find_in_group(self, group: str, doc_id: str) -> Document | None:
        stmt = select(DocumentModel).where(
            DocumentModel.collection_group == group,
            DocumentModel.doc_id == doc_id,
        )
        docs = await self._fetch(stmt)
        return docs[0] if docs else None

    def batch(self) -> WriteBatch:
        return SqlWriteBatch(self)

    # ── Internals ───────────────────────────────────────────────────────────

    async def _select(
        self,
        stmt: Any,
        filters: list[FieldFilter],
        order_by: str | None,
        descending: bool,
        limit: int | None,
    ) -> list[Document]:
        # Ordering stays in Python: timestamps are stored as {"$ts": ...}
        # objects and JSON values of mixed types have no portable SQL order.
        clauses, complete = _sql_predicates(filters)
        if clauses:
            stmt = stmt.where(*clauses)
        if complete and order_by is None and limit is not None:
            stmt = stmt.limit(limit)
        return select_documents(await self._fetch(stmt), filters, order_by, descending, limit)

    async def _fetch(self, stmt: Any) -> list[Document]:
        try:
            async for session in self._session_factory():
                result = await session.execute(stmt)
                return [_model_to_document(m) for m in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Query failed: {exc}") from exc
        return []

    async def _apply_writes(self, writes: list[BatchWrite]) -> None:
        """Apply writes in one transaction; nothing is committed on error."""
        now = self._clock()
        try:
            await self._commit_writes(writes, now)
        except SQLAlchemyError as exc:
            logger.error("record_store.write_failed", writes=len(writes), error=str(exc))
            raise RecordStoreError(f"Write failed: {exc}") from exc

    @_stale_retry
    async def _commit_writes(self, writes: list[BatchWrite], now: datetime) -> None:
        async for session in self._session_factory():
            try:
                for write in writes:
                    await self._apply_one(session, write, now)
                await session.commit()
            except StaleDataError:
                await session.rollback()
                logger.info("record_store.write_conflict", paths=[w.path for w in writes])
                raise
            except Exception:
                await session.rollback()
                raise

    async def _apply_one(self, session: AsyncSession, write: BatchWrite, now: datetime) -> None:
        path = write.path.strip("/")
        collection, doc_id = split_path(path)
        stmt = select(DocumentModel).where(DocumentModel.path == path).with_for_update()
        model = (await session.execute(stmt)).scalar_one_or_none()
        existing = decode_value(model.data) if model is not None else None
        data = encode_value(apply_write(existing, write, now))
        if model is None:
            session.add(
                DocumentModel(
                    path=path,
                    collection=collection,
                    collection_group=collection_group(collection),
                    doc_id=doc_id,
                    data=data,
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.flush()
        else:
            model.data = data
            model.updated_at = now
