"""
Clutch Backend — Stored Record SQLAlchemy Model
=================================================

What:  ORM model for the `records` table that backs every resource collection.
Why:   Resources share one generic shape (id, owner, status, timestamps plus
       free-form fields), so one table with a JSON payload serves them all.
How:   Fields the engine filters and sorts on constantly are promoted to real
       columns; everything else lives in the JSON `data` column and is queried
       through JSON path extraction.
Who:   Used by SQLDocumentStore and by Alembic for schema management.

Table Design Rationale:
    - id: UUID string generated in Python (portable across PostgreSQL/SQLite)
    - collection: resource collection name ("bookings", "vehicles", ...)
    - owner_id / status: the Ownership Guard and most list filters use these
    - created_at / updated_at: UTC with timezone, set by the CRUD engine
    - data: every other field, JSON-encoded (datetimes as ISO-8601 strings)

    Composite indexes lead with `collection` because every query is scoped
    to one collection.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from clutch.database import Base


class StoredRecord(Base):
    """A single document of any resource collection."""

    __tablename__ = "records"

    # ── Primary Key ───────────────────────────────────────────────────────
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="UUID string, unique across all collections",
    )

    collection: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Resource collection this record belongs to",
    )

    # ── Promoted Fields ───────────────────────────────────────────────────
    owner_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="User who created the record (Ownership Guard)",
    )

    status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Resource-specific status string",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the record was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Last mutation time (UTC), never before created_at",
    )

    # ── Payload ───────────────────────────────────────────────────────────
    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="All non-promoted fields of the record",
    )

    __table_args__ = (
        Index("idx_records_collection_created", "collection", "created_at"),
        Index("idx_records_collection_status", "collection", "status"),
        Index("idx_records_collection_owner", "collection", "owner_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<StoredRecord(id={self.id}, collection='{self.collection}', "
            f"status='{self.status}')>"
        )
