"""Create records table

Revision ID: 001
Revises: None
Create Date: 2025-05-20 00:00:00.000000+00:00

What:  Creates the `records` table shared by every resource collection.
How:   Promoted columns for id/collection/owner/status/timestamps, JSON payload
       for everything else, and one composite index per common query pattern.

Rollback: downgrade() drops the table entirely (destructive, all data is lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the records table with its indexes. See clutch/models/record.py."""
    op.create_table(
        "records",
        sa.Column("id", sa.String(36), nullable=False,
                  comment="UUID string, unique across all collections"),
        sa.Column("collection", sa.String(64), nullable=False,
                  comment="Resource collection this record belongs to"),
        sa.Column("owner_id", sa.String(64), nullable=True,
                  comment="User who created the record (Ownership Guard)"),
        sa.Column("status", sa.String(50), nullable=True,
                  comment="Resource-specific status string"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  comment="When the record was created (UTC)"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False,
                  comment="Last mutation time (UTC), never before created_at"),
        sa.Column("data", sa.JSON(), nullable=False,
                  comment="All non-promoted fields of the record"),
        sa.PrimaryKeyConstraint("id"),
    )

    # Every query is scoped to one collection, so it leads each index
    op.create_index("idx_records_collection_created", "records", ["collection", "created_at"])
    op.create_index("idx_records_collection_status", "records", ["collection", "status"])
    op.create_index("idx_records_collection_owner", "records", ["collection", "owner_id"])


def downgrade() -> None:
    """Drop the records table. WARNING: destroys every resource's data."""
    op.drop_index("idx_records_collection_owner", table_name="records")
    op.drop_index("idx_records_collection_status", table_name="records")
    op.drop_index("idx_records_collection_created", table_name="records")
    op.drop_table("records")
