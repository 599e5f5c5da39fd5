"""
Clutch Backend — SQL Document Store
=====================================

What:  DocumentStore implementation over the `records` table (async SQLAlchemy).
Why:   Production persistence with real indexes for the hot paths
       (collection + created_at / status / owner_id) while keeping resources
       schema-free in the JSON `data` column.
How:   One instance per request, bound to the request's AsyncSession
       (see clutch.dependencies.get_store). Filter clauses become SQLAlchemy expressions:
         - promoted keys map to real columns
         - other keys use JSON path extraction, typed by the comparison value
           (as_string / as_float / as_boolean)
       Writes are flushed immediately; the session dependency commits at the
       end of the request or rolls back on error.

Portability:
    Works on PostgreSQL (asyncpg) and SQLite (aiosqlite). SQLite hands back
    naive datetimes, so timestamps are re-tagged as UTC on the way out.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from clutch.models.record import StoredRecord
from clutch.services.filters import AnyOf, Clause, Contains, Eq, Filter, In, Range, SortKey
from clutch.services.store_base import (
    PROMOTED_FIELDS,
    DocumentStore,
    Record,
    encode_fields,
    encode_value,
    group_key,
)

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: StoredRecord) -> Record:
    record: Record = dict(row.data or {})
    record.update(
        id=row.id,
        ownerId=row.owner_id,
        status=row.status,
        createdAt=_aware(row.created_at),
        updatedAt=_aware(row.updated_at),
    )
    return record


def _field(field: str, sample: Any = None):
    """
    Resolves a record key to a column or a typed JSON path expression.

    `sample` is a representative comparison value: booleans compare as
    booleans, numbers as floats, everything else (including encoded
    datetimes) as text.
    """
    if field in PROMOTED_FIELDS:
        return getattr(StoredRecord, PROMOTED_FIELDS[field])
    element = StoredRecord.data[field]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, (int, float)):
        return element.as_float()
    return element.as_string()


def _operand(field: str, value: Any) -> Any:
    if field not in PROMOTED_FIELDS and isinstance(value, datetime):
        return encode_value(value)
    return value


def _compile(clause: Clause):
    if isinstance(clause, AnyOf):
        return or_(*[_compile(inner) for inner in clause.clauses])

    if isinstance(clause, Eq):
        if clause.value is None:
            return _field(clause.field).is_(None)
        return _field(clause.field, clause.value) == _operand(clause.field, clause.value)

    if isinstance(clause, In):
        sample = clause.values[0] if clause.values else None
        return _field(clause.field, sample).in_(
            [_operand(clause.field, v) for v in clause.values]
        )

    if isinstance(clause, Contains):
        return func.lower(_field(clause.field)).contains(clause.value.lower(), autoescape=True)

    if isinstance(clause, Range):
        bounds = [b for b in (clause.gte, clause.lte, clause.gt, clause.lt) if b is not None]
        expr = _field(clause.field, bounds[0] if bounds else None)
        conditions = []
        if clause.gte is not None:
            conditions.append(expr >= _operand(clause.field, clause.gte))
        if clause.lte is not None:
            conditions.append(expr <= _operand(clause.field, clause.lte))
        if clause.gt is not None:
            conditions.append(expr > _operand(clause.field, clause.gt))
        if clause.lt is not None:
            conditions.append(expr < _operand(clause.field, clause.lt))
        return and_(*conditions) if conditions else StoredRecord.id.isnot(None)

    raise TypeError(f"Unsupported filter clause: {clause!r}")


class SQLDocumentStore(DocumentStore):
    """Request-scoped DocumentStore bound to one AsyncSession."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def _where(self, collection: str, filter: Filter) -> list:
        return [StoredRecord.collection == collection] + [_compile(c) for c in filter.clauses]

    async def _row(self, collection: str, record_id: str) -> Optional[StoredRecord]:
        result = await self._session.execute(
            select(StoredRecord).where(
                StoredRecord.collection == collection,
                StoredRecord.id == record_id,
            )
        )
        return result.scalar_one_or_none()

    # ── CRUD ──────────────────────────────────────────────────────────────
    async def insert(self, collection: str, record: Record) -> Record:
        encoded = encode_fields(record)
        row = StoredRecord(
            id=str(uuid.uuid4()),
            collection=collection,
            owner_id=encoded.get("ownerId"),
            status=encoded.get("status"),
            created_at=encoded["createdAt"],
            updated_at=encoded["updatedAt"],
            data={k: v for k, v in encoded.items() if k not in PROMOTED_FIELDS},
        )
        self._session.add(row)
        await self._session.flush()
        logger.debug("Inserted %s/%s", collection, row.id)
        return _to_record(row)

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        row = await self._row(collection, record_id)
        return _to_record(row) if row is not None else None

    async def find(
        self,
        collection: str,
        filter: Filter,
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Record]:
        order_by = []
        for key in sort:
            expr = _field(key.field, 0.0 if key.numeric else None)
            order_by.append(expr.desc() if key.descending else expr.asc())
        order_by.append(StoredRecord.id.asc())

        query = (
            select(StoredRecord)
            .where(*self._where(collection, filter))
            .order_by(*order_by)
            .offset(skip)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self._session.execute(query)
        return [_to_record(row) for row in result.scalars().all()]

    async def count(self, collection: str, filter: Filter) -> int:
        result = await self._session.execute(
            select(func.count(StoredRecord.id)).where(*self._where(collection, filter))
        )
        return result.scalar() or 0

    async def update(
        self, collection: str, record_id: str, changes: Mapping[str, Any]
    ) -> Optional[Record]:
        row = await self._row(collection, record_id)
        if row is None:
            return None
        data = dict(row.data or {})
        for key, value in encode_fields(changes).items():
            if key == "id":
                continue
            if key in PROMOTED_FIELDS:
                setattr(row, PROMOTED_FIELDS[key], value)
            else:
                data[key] = value
        # Reassign so SQLAlchemy sees the JSON column as dirty
        row.data = data
        await self._session.flush()
        return _to_record(row)

    async def delete(self, collection: str, record_id: str) -> bool:
        row = await self._row(collection, record_id)
        if row is None:
            return False
        await self._session.delete(row)
        await self._session.flush()
        return True

    # ── Aggregation ───────────────────────────────────────────────────────
    async def group_count(
        self, collection: str, filter: Filter, field: str
    ) -> Dict[str, int]:
        key = _field(field)
        result = await self._session.execute(
            select(key, func.count(StoredRecord.id))
            .where(*self._where(collection, filter))
            .group_by(key)
        )
        counts: Dict[str, int] = {}
        for value, total in result.all():
            name = group_key(value)
            counts[name] = counts.get(name, 0) + int(total)
        return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))

    async def group_sum(
        self, collection: str, filter: Filter, group_field: str, sum_field: str
    ) -> Dict[str, float]:
        key = _field(group_field)
        result = await self._session.execute(
            select(key, func.coalesce(func.sum(_field(sum_field, 0.0)), 0))
            .where(*self._where(collection, filter))
            .group_by(key)
        )
        totals: Dict[str, float] = {}
        for value, total in result.all():
            name = group_key(value)
            totals[name] = totals.get(name, 0.0) + float(total or 0)
        return dict(sorted(totals.items(), key=lambda item: (-item[1], item[0])))

    async def sum(self, collection: str, filter: Filter, field: str) -> float:
        result = await self._session.execute(
            select(func.coalesce(func.sum(_field(field, 0.0)), 0))
            .where(*self._where(collection, filter))
        )
        return float(result.scalar() or 0)

    async def average(
        self, collection: str, filter: Filter, field: str
    ) -> Optional[float]:
        result = await self._session.execute(
            select(func.avg(_field(field, 0.0))).where(*self._where(collection, filter))
        )
        value = result.scalar()
        return float(value) if value is not None else None

    async def distinct(
        self, collection: str, filter: Filter, field: str
    ) -> List[Any]:
        expr = _field(field)
        result = await self._session.execute(
            select(expr)
            .where(*self._where(collection, filter), expr.isnot(None))
            .distinct()
        )
        return sorted((value for (value,) in result.all()), key=str)

    async def ping(self) -> bool:
        try:
            await self._session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database ping failed: %s", str(e))
            return False
