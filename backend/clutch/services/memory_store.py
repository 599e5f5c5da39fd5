"""
Clutch Backend — In-Memory Document Store
===========================================

What:  DocumentStore implementation backed by process-local dicts.
Why:   Lets the API run without a database (STORE_BACKEND=memory) and gives
       tests a fast, isolated store with the same filter semantics as SQL.
How:   collection → {id → record}. Filters are evaluated in Python against the
       same JSON-encoded payload the SQL store keeps in its `data` column.
       Records are deep-copied on the way in and out so callers never share
       mutable state with the store.

Limitations:
    - No persistence across restarts
    - No cross-process sharing (one store per worker)
"""

import copy
import uuid
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from clutch.services.filters import AnyOf, Clause, Contains, Eq, Filter, In, Range, SortKey
from clutch.services.store_base import (
    PROMOTED_FIELDS,
    DocumentStore,
    Record,
    encode_fields,
    encode_value,
    group_key,
)


def _probe(field: str, value: Any) -> Any:
    # Payload fields are stored encoded, so comparison values must be too
    if value is None or field in PROMOTED_FIELDS:
        return value
    if isinstance(value, datetime):
        return encode_value(value)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _matches(record: Record, clause: Clause) -> bool:
    if isinstance(clause, AnyOf):
        return any(_matches(record, inner) for inner in clause.clauses)

    actual = record.get(clause.field)

    if isinstance(clause, Eq):
        return actual == _probe(clause.field, clause.value)

    if isinstance(clause, In):
        return actual in [_probe(clause.field, v) for v in clause.values]

    if isinstance(clause, Contains):
        return isinstance(actual, str) and clause.value.lower() in actual.lower()

    if isinstance(clause, Range):
        if actual is None:
            return False
        try:
            if clause.gte is not None and not actual >= _probe(clause.field, clause.gte):
                return False
            if clause.lte is not None and not actual <= _probe(clause.field, clause.lte):
                return False
            if clause.gt is not None and not actual > _probe(clause.field, clause.gt):
                return False
            if clause.lt is not None and not actual < _probe(clause.field, clause.lt):
                return False
        except TypeError:
            return False
        return True

    raise TypeError(f"Unsupported filter clause: {clause!r}")


def _sort_value(record: Record, key: SortKey):
    value = record.get(key.field)
    if value is None:
        return (0, 0)
    if key.numeric:
        try:
            return (1, float(value))
        except (TypeError, ValueError):
            return (0, 0)
    return (1, value)


class MemoryDocumentStore(DocumentStore):
    """Dict-backed DocumentStore. One instance is shared by every request."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Record]] = defaultdict(dict)

    def _select(self, collection: str, filter: Filter) -> List[Record]:
        return [
            record
            for record in self._collections[collection].values()
            if all(_matches(record, clause) for clause in filter.clauses)
        ]

    async def insert(self, collection: str, record: Record) -> Record:
        stored = encode_fields(record)
        stored["id"] = str(uuid.uuid4())
        self._collections[collection][stored["id"]] = copy.deepcopy(stored)
        return stored

    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        record = self._collections[collection].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def find(
        self,
        collection: str,
        filter: Filter,
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Record]:
        rows = sorted(self._select(collection, filter), key=lambda r: r["id"])
        # Stable sorts applied from the least to the most significant key
        for key in reversed(list(sort)):
            rows.sort(key=lambda r, k=key: _sort_value(r, k), reverse=key.descending)
        end = None if limit is None else skip + limit
        return copy.deepcopy(rows[skip:end])

    async def count(self, collection: str, filter: Filter) -> int:
        return len(self._select(collection, filter))

    async def update(
        self, collection: str, record_id: str, changes: Mapping[str, Any]
    ) -> Optional[Record]:
        record = self._collections[collection].get(record_id)
        if record is None:
            return None
        record.update(copy.deepcopy(encode_fields(changes)))
        record["id"] = record_id
        return copy.deepcopy(record)

    async def delete(self, collection: str, record_id: str) -> bool:
        return self._collections[collection].pop(record_id, None) is not None

    async def group_count(
        self, collection: str, filter: Filter, field: str
    ) -> Dict[str, int]:
        counts = Counter(group_key(r.get(field)) for r in self._select(collection, filter))
        return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))

    async def group_sum(
        self, collection: str, filter: Filter, group_field: str, sum_field: str
    ) -> Dict[str, float]:
        totals: Dict[str, float] = defaultdict(float)
        for record in self._select(collection, filter):
            value = record.get(sum_field)
            totals[group_key(record.get(group_field))] += float(value) if _is_number(value) else 0.0
        return dict(sorted(totals.items(), key=lambda item: (-item[1], item[0])))

    async def sum(self, collection: str, filter: Filter, field: str) -> float:
        return float(sum(
            r.get(field) for r in self._select(collection, filter) if _is_number(r.get(field))
        ))

    async def average(
        self, collection: str, filter: Filter, field: str
    ) -> Optional[float]:
        values = [
            float(r.get(field)) for r in self._select(collection, filter) if _is_number(r.get(field))
        ]
        return sum(values) / len(values) if values else None

    async def distinct(
        self, collection: str, filter: Filter, field: str
    ) -> List[Any]:
        values = {r.get(field) for r in self._select(collection, filter)}
        values.discard(None)
        return sorted(values, key=str)

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        self._collections.clear()
