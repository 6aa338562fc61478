"""Record store persistence model.

One table holds every document. ``collection`` is the parent path
(``users/u1/tasks``) and ``collection_group`` its final segment (``tasks``),
so both collection and collection-group queries are a single indexed lookup.

``version`` is an optimistic-concurrency counter: an UPDATE against a row
that changed after it was read matches nothing and raises StaleDataError.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.inquiry_hub.core.database import DocumentBase


class DocumentModel(DocumentBase):
    """A single schemaless document addressed by its full path."""

    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_collection", "collection"),
        Index("ix_documents_collection_group", "collection_group"),
    )

    path: Mapped[str] = mapped_column(String(500), primary_key=True)
    collection: Mapped[str] = mapped_column(String(450), nullable=False)
    collection_group: Mapped[str] = mapped_column(String(100), nullable=False)
    doc_id: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": version}
