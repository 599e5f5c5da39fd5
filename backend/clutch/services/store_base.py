"""
Clutch Backend — Abstract Document Store Interface
====================================================

What:  Abstract base class defining the persistence contract for resource records.
Why:   The CRUD engine only needs filtered find/count/insert/update/delete and
       simple group-by aggregation. Hiding the backend behind this interface
       lets the same engine run on PostgreSQL in production and on plain dicts
       in development and tests. This is the Strategy design pattern.
How:   Concrete implementations inherit from DocumentStore:
         - SQLDocumentStore:    async SQLAlchemy over the `records` table
         - MemoryDocumentStore: process-local dicts
Who:   Called by CrudEngine, the resource services and EmailService.

Record representation:
    Plain dicts with camelCase keys. The five promoted keys (id, ownerId,
    status, createdAt, updatedAt) keep their Python types; every other value
    is JSON-encoded with encode_fields() before storage so datetimes become
    ISO-8601 UTC strings in BOTH implementations and range filters compare the
    same way everywhere.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from fastapi.encoders import jsonable_encoder

from clutch.services.filters import Filter, SortKey

Record = Dict[str, Any]

# Record key → StoredRecord column
PROMOTED_FIELDS: Dict[str, str] = {
    "id": "id",
    "ownerId": "owner_id",
    "status": "status",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

# Group key used when the grouped field is missing or null
UNKNOWN_GROUP = "unknown"


def utc_isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def encode_value(value: Any) -> Any:
    """JSON-encodes one value the way it is stored in a record's payload."""
    return jsonable_encoder(value, custom_encoder={datetime: utc_isoformat})


def encode_fields(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Encodes every non-promoted field; promoted fields pass through untouched."""
    return {
        key: (value if key in PROMOTED_FIELDS else encode_value(value))
        for key, value in values.items()
    }


def group_key(value: Any) -> str:
    if value is None:
        return UNKNOWN_GROUP
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class DocumentStore(ABC):
    """
    Abstract interface for collection-scoped document persistence.

    Contract:
        - Every method is scoped to one collection name
        - insert() generates the id; callers never supply one
        - find() applies sort keys in order, then `id` ascending as a tie
          breaker so pagination is deterministic
        - update() merges `changes` into the record (last write wins) and
          returns the updated record, or None when the id does not exist
        - Aggregations over an empty set return 0 / {} / None, never raise
        - Implementation errors propagate; the CRUD engine wraps them
    """

    @abstractmethod
    async def insert(self, collection: str, record: Record) -> Record:
        """Persists a new record and returns it with its generated `id`."""
        ...

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    async def find(
        self,
        collection: str,
        filter: Filter,
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Returns the records matching `filter`, sorted, then sliced by skip/limit."""
        ...

    async def find_one(
        self,
        collection: str,
        filter: Filter,
        sort: Sequence[SortKey] = (),
    ) -> Optional[Record]:
        matches = await self.find(collection, filter, sort=sort, limit=1)
        return matches[0] if matches else None

    @abstractmethod
    async def count(self, collection: str, filter: Filter) -> int:
        ...

    @abstractmethod
    async def update(
        self, collection: str, record_id: str, changes: Mapping[str, Any]
    ) -> Optional[Record]:
        ...

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> bool:
        """Removes the record. Returns False when it did not exist."""
        ...

    @abstractmethod
    async def group_count(
        self, collection: str, filter: Filter, field: str
    ) -> Dict[str, int]:
        """Counts matching records per distinct value of `field` (keys stringified)."""
        ...

    @abstractmethod
    async def group_sum(
        self, collection: str, filter: Filter, group_field: str, sum_field: str
    ) -> Dict[str, float]:
        ...

    @abstractmethod
    async def sum(self, collection: str, filter: Filter, field: str) -> float:
        """Sums a numeric field over matching records; 0 for an empty set."""
        ...

    @abstractmethod
    async def average(
        self, collection: str, filter: Filter, field: str
    ) -> Optional[float]:
        ...

    @abstractmethod
    async def distinct(
        self, collection: str, filter: Filter, field: str
    ) -> List[Any]:
        """Sorted distinct non-null values of `field`."""
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Lightweight connectivity check for the health endpoint."""
        ...
