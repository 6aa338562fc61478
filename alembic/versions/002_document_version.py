"""Add the optimistic-concurrency version column to documents.

Revision ID: 002_document_version
Revises: 001_documents
Create Date: 2026-10-17

Partial updates re-read and re-apply when the row changed underneath them,
so two writers touching different fields of one document both land.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002_document_version"
down_revision: Union[str, None] = "001_documents"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "documents",
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )


def downgrade() -> None:
    op.drop_column("documents", "version")
