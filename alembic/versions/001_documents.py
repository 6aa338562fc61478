"""Create the documents table backing the record store.

Revision ID: 001_documents
Revises:
Create Date: 2026-10-17

Every inquiry, task, activity item and staff user is one row keyed by its
full path. Collection and collection-group columns are indexed so partition
queries and cross-staff task queries are single index lookups.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_documents"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column("path", sa.String(500), primary_key=True),
        sa.Column("collection", sa.String(450), nullable=False),
        sa.Column("collection_group", sa.String(100), nullable=False),
        sa.Column("doc_id", sa.String(100), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_documents_collection", "documents", ["collection"])
    op.create_index("ix_documents_collection_group", "documents", ["collection_group"])


def downgrade() -> None:
    op.drop_index("ix_documents_collection_group", table_name="documents")
    op.drop_index("ix_documents_collection", table_name="documents")
    op.drop_table("documents")
