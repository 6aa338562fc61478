"""Document record store: port, in-memory and SQL implementations."""

from src.inquiry_hub.store.base import (
    SERVER_TIMESTAMP,
    Document,
    FieldFilter,
    RecordStore,
    WriteBatch,
)
from src.inquiry_hub.store.memory import InMemoryRecordStore

__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "FieldFilter",
    "InMemoryRecordStore",
    "RecordStore",
    "WriteBatch",
]
