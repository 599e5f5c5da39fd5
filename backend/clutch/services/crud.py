"""
Clutch Backend — Generic CRUD Engine
======================================

What:  One parameterised implementation of list / get / create / update /
       patch-status / delete / stats for every resource.
Why:   Resources differ only in data (required fields, filters, status
       timestamps, stats), so each one is a ResourceSchema declaration and
       this engine does the work.
How:   CrudEngine(schema, store) is built per request. Each operation:
         1. validates and coerces input (ValidationError → 400)
         2. loads the target record (NotFoundError → 404 <RESOURCE>_NOT_FOUND)
         3. applies the Ownership Guard on mutations (ForbiddenError → 403)
         4. performs the store call(s)
       Store failures that are not ClutchErrors are logged and re-raised as
       UnexpectedError (500 <OPERATION>_<RESOURCE>_FAILED). No retries.
Who:   Called by the generic resource router and the resource-specific
       services (bookings, discounts, payouts, ...).

Timestamp invariants:
    - create sets createdAt == updatedAt
    - every write sets updatedAt strictly after its previous value
    - callers can never set id, ownerId, createdAt or updatedAt
    - update never overwrites generated references or status timestamps
"""

import logging
import secrets
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple

from clutch.auth import Caller
from clutch.exceptions import (
    ClutchError,
    ConflictError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)
from clutch.services.filters import (
    NEWEST_FIRST,
    Clause,
    Eq,
    Filter,
    FilterSpec,
    SortKey,
    build_filter,
    parse_bool,
    parse_datetime,
    parse_id,
    parse_number,
)
from clutch.services.ownership import ensure_can_modify, owner_clause
from clutch.services.pagination import PagedResult, PageRequest, paginate
from clutch.services.stats import StatsSpec, compute_stats
from clutch.services.store_base import DocumentStore, Record

logger = logging.getLogger(__name__)

# Keys only the engine may write
ENGINE_FIELDS = frozenset({"id", "ownerId", "createdAt", "updatedAt"})

CreateHook = Callable[["CrudEngine", Dict[str, Any], Caller], Awaitable[None]]
UpdateHook = Callable[["CrudEngine", Record, Dict[str, Any], Caller], Awaitable[None]]
WriteHook = Callable[["CrudEngine", Record, str], Awaitable[None]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_reference(prefix: str) -> str:
    """Human-facing reference number: <PREFIX>-<epoch ms>-<0..999>."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(1000)}"


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _join_fields(names: Sequence[str]) -> str:
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + " and " + names[-1]


@dataclass(frozen=True)
class ResourceSchema:
    """
    Declarative description of one resource.

    Attributes (selection):
        name:              URL segment under /api ("roadside-assistance")
        collection:        store collection name
        noun / plural:     used in messages and error codes (BOOKING_NOT_FOUND)
        required:          fields create() insists on (MISSING_REQUIRED_FIELDS)
        defaults:          values (or zero-arg callables) applied on create
        numbers / integers / dates / ids / uppercase:
                           payload fields coerced on create, update and
                           status patch
        statuses:          allowed status values (None accepts any)
        status_timestamps: status → field stamped with "now" on transition
        status_defaults:   status → extra fields defaulted on transition
        status_extras:     payload fields a status patch may carry
        status_flag:       (field, on, off) boolean kept in step with status,
                           e.g. ("isActive", "active", "inactive")
        reference:         (field, prefix) for generated reference numbers
        unique:            field → 409 error code
        delete_mode:       "hard" removes; "soft" applies soft_delete changes
        read_policy:       "any" or "owner" (non-admins only see their records)
    """

    name: str
    collection: str
    noun: str
    plural: str
    required: Tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)
    numbers: Tuple[str, ...] = ()
    integers: Tuple[str, ...] = ()
    dates: Tuple[str, ...] = ()
    ids: Tuple[str, ...] = ()
    uppercase: Tuple[str, ...] = ()
    initial_status: str = "pending"
    statuses: Optional[Tuple[str, ...]] = None
    status_timestamps: Mapping[str, str] = field(default_factory=dict)
    status_defaults: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    status_extras: Tuple[str, ...] = ("notes",)
    status_flag: Optional[Tuple[str, str, str]] = None
    reference: Optional[Tuple[str, str]] = None
    unique: Mapping[str, str] = field(default_factory=dict)
    filters: FilterSpec = field(default_factory=FilterSpec)
    stats: StatsSpec = field(default_factory=StatsSpec)
    default_sort: Tuple[SortKey, ...] = NEWEST_FIRST
    delete_mode: str = "hard"
    soft_delete: Mapping[str, Any] = field(default_factory=dict)
    read_policy: str = "any"
    create_hook: Optional[CreateHook] = None
    update_hook: Optional[UpdateHook] = None
    after_write: Optional[WriteHook] = None

    @property
    def label(self) -> str:
        return self.noun.upper().replace(" ", "_").replace("-", "_")

    @property
    def plural_label(self) -> str:
        return self.plural.upper().replace(" ", "_").replace("-", "_")

    @property
    def title(self) -> str:
        return self.noun.capitalize()

    @property
    def generated_fields(self) -> frozenset:
        """Fields only the engine writes: status, its timestamps, the reference."""
        names = {"status", "deletedAt", *self.status_timestamps.values()}
        if self.reference is not None:
            names.add(self.reference[0])
        return frozenset(names)

    def status_for_flag(self, value: Any) -> str:
        flag, on, off = self.status_flag
        return on if parse_bool(value, flag) else off


@contextmanager
def store_errors(code: str, message: str) -> Iterator[None]:
    """Re-raises anything that is not a ClutchError as UnexpectedError(code)."""
    try:
        yield
    except ClutchError:
        raise
    except Exception as e:
        logger.error("%s: %s", code, str(e), exc_info=True)
        raise UnexpectedError(message=message, code=code, context={"error": str(e)}) from e


class CrudEngine:
    """Runs the generic operations for one ResourceSchema against one store."""

    def __init__(self, schema: ResourceSchema, store: DocumentStore):
        self.schema = schema
        self.store = store

    # ── Helpers ───────────────────────────────────────────────────────────
    def coerce(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Drops engine-owned keys and coerces declared field types."""
        s = self.schema
        data = {k: v for k, v in payload.items() if k not in ENGINE_FIELDS}
        for key, value in list(data.items()):
            if value is None or value == "":
                continue
            if key in s.numbers:
                data[key] = parse_number(value, key)
            elif key in s.integers:
                number = parse_number(value, key)
                if not number.is_integer():
                    raise ValidationError(f"'{key}' must be a whole number", code="INVALID_NUMBER", field=key)
                data[key] = int(number)
            elif key in s.dates:
                data[key] = parse_datetime(value, key)
            elif key in s.ids:
                data[key] = parse_id(value, key)
            elif key in s.uppercase:
                data[key] = str(value).strip().upper()
        return data

    def next_timestamp(self, previous: Optional[datetime]) -> datetime:
        now = utcnow()
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    async def _ensure_unique(self, data: Mapping[str, Any], current_id: Optional[str] = None) -> None:
        for unique_field, code in self.schema.unique.items():
            value = data.get(unique_field)
            if _is_missing(value):
                continue
            existing = await self.store.find_one(self.schema.collection, Filter((Eq(unique_field, value),)))
            if existing is not None and existing["id"] != current_id:
                raise ConflictError(
                    message=f"A {self.schema.noun} with this {unique_field} already exists",
                    code=code,
                    context={"field": unique_field},
                )

    async def _after_write(self, record: Record, action: str) -> None:
        if self.schema.after_write is not None:
            await self.schema.after_write(self, record, action)

    async def load(self, record_id: str) -> Record:
        """Fetches a record by id or raises <RESOURCE>_NOT_FOUND."""
        record_id = parse_id(record_id)
        with store_errors(f"GET_{self.schema.label}_FAILED", f"Failed to retrieve {self.schema.noun}"):
            record = await self.store.get(self.schema.collection, record_id)
        if record is None:
            raise NotFoundError(self.schema.noun, record_id, code=f"{self.schema.label}_NOT_FOUND")
        return record

    async def write(self, record: Record, changes: Mapping[str, Any], operation: str = "UPDATE") -> Record:
        """Persists `changes` on an already-loaded record and bumps updatedAt."""
        changes = dict(changes)
        changes["updatedAt"] = self.next_timestamp(record.get("updatedAt"))
        with store_errors(f"{operation}_{self.schema.label}_FAILED", f"Failed to update {self.schema.noun}"):
            updated = await self.store.update(self.schema.collection, record["id"], changes)
        if updated is None:
            raise NotFoundError(self.schema.noun, record["id"], code=f"{self.schema.label}_NOT_FOUND")
        return updated

    def scope(self, caller: Caller) -> Tuple[Clause, ...]:
        if self.schema.read_policy == "owner":
            clause = owner_clause(caller)
            return (clause,) if clause is not None else ()
        return ()

    # ── Operations ────────────────────────────────────────────────────────
    async def list(
        self,
        params: Mapping[str, Any],
        caller: Caller,
        extra: Sequence[Clause] = (),
        sort: Optional[Sequence[SortKey]] = None,
    ) -> PagedResult:
        """Paged, filtered list. Zero matches is an empty page, never an error."""
        page_request = PageRequest.from_params(params)
        filter = build_filter(params, self.schema.filters).and_(*self.scope(caller), *extra)
        with store_errors(f"GET_{self.schema.plural_label}_FAILED", f"Failed to retrieve {self.schema.plural}"):
            return await paginate(
                self.store,
                self.schema.collection,
                filter,
                page_request,
                sort=sort or self.schema.default_sort,
            )

    async def get_by_id(self, record_id: str, caller: Caller) -> Record:
        record = await self.load(record_id)
        if self.schema.read_policy == "owner":
            ensure_can_modify(record, caller, self.schema.noun, action="view")
        return record

    async def create(self, payload: Mapping[str, Any], caller: Caller) -> Record:
        s = self.schema
        missing = [name for name in s.required if _is_missing(payload.get(name))]
        if missing:
            raise ValidationError(
                message=f"{_join_fields(list(s.required))} are required"
                if len(s.required) > 1 else f"{s.required[0]} is required",
                code="MISSING_REQUIRED_FIELDS",
                context={"missing": missing},
            )

        data: Dict[str, Any] = {}
        for key, default in s.defaults.items():
            data[key] = default() if callable(default) else default
        data.update({k: v for k, v in payload.items() if v is not None})
        data.pop("status", None)
        data = self.coerce(data)

        if s.create_hook is not None:
            await s.create_hook(self, data, caller)
        await self._ensure_unique(data)

        if s.reference is not None:
            ref_field, prefix = s.reference
            data[ref_field] = generate_reference(prefix)

        now = utcnow()
        data.update(status=s.initial_status, ownerId=caller.id, createdAt=now, updatedAt=now)

        with store_errors(f"CREATE_{s.label}_FAILED", f"Failed to create {s.noun}"):
            record = await self.store.insert(s.collection, data)
        logger.info("Created %s %s by %s", s.noun, record["id"], caller.id)
        await self._after_write(record, "create")
        return record

    async def update(self, record_id: str, payload: Mapping[str, Any], caller: Caller) -> Record:
        """Merges `payload` over the record. Status only moves here through status_flag."""
        record = await self.load(record_id)
        ensure_can_modify(record, caller, self.schema.plural, action="update")

        s = self.schema
        changes = self.coerce({k: v for k, v in payload.items() if k not in s.generated_fields})
        if s.status_flag is not None and s.status_flag[0] in changes:
            status = s.status_for_flag(changes[s.status_flag[0]])
            changes.update(s.status_defaults.get(status, {}))
            changes[s.status_flag[0]] = status == s.status_flag[1]
            changes["status"] = status
        if self.schema.update_hook is not None:
            await self.schema.update_hook(self, record, changes, caller)
        await self._ensure_unique(changes, current_id=record["id"])

        updated = await self.write(record, changes)
        logger.info("Updated %s %s by %s", self.schema.noun, record["id"], caller.id)
        await self._after_write(updated, "update")
        return updated

    async def patch_status(
        self,
        record_id: str,
        status: Optional[str],
        extra: Mapping[str, Any],
        caller: Caller,
    ) -> Record:
        s = self.schema
        if _is_missing(status) and s.status_flag is not None and s.status_flag[0] in extra:
            status = s.status_for_flag(extra[s.status_flag[0]])
        if _is_missing(status):
            raise ValidationError("Status is required", code="MISSING_STATUS", field="status")
        status = str(status).strip()
        if s.statuses is not None and status not in s.statuses:
            raise ValidationError(
                message=f"Invalid status '{status}'. Must be one of: {', '.join(s.statuses)}",
                code="INVALID_STATUS",
                field="status",
            )

        record = await self.load(record_id)
        ensure_can_modify(record, caller, s.plural, action="update")

        changes: Dict[str, Any] = dict(s.status_defaults.get(status, {}))
        changes.update(self.coerce({k: v for k, v in extra.items() if k in s.status_extras}))
        changes["status"] = status
        stamp = s.status_timestamps.get(status)
        if stamp:
            changes[stamp] = utcnow()

        updated = await self.write(record, changes, operation="UPDATE_STATUS")
        logger.info("%s %s status %s → %s", s.title, record["id"], record.get("status"), status)
        await self._after_write(updated, "status")
        return updated

    async def delete(self, record_id: str, caller: Caller) -> Record:
        """Hard or soft delete according to the schema. Returns the affected record."""
        s = self.schema
        record = await self.load(record_id)
        ensure_can_modify(record, caller, s.plural, action="delete")

        if s.delete_mode == "soft":
            changes = dict(s.soft_delete)
            changes["deletedAt"] = utcnow()
            result = await self.write(record, changes, operation="DELETE")
        else:
            with store_errors(f"DELETE_{s.label}_FAILED", f"Failed to delete {s.noun}"):
                removed = await self.store.delete(s.collection, record["id"])
            if not removed:
                raise NotFoundError(s.noun, record["id"], code=f"{s.label}_NOT_FOUND")
            result = record

        logger.info("Deleted (%s) %s %s by %s", s.delete_mode, s.noun, record["id"], caller.id)
        await self._after_write(result, "delete")
        return result

    async def stats_overview(self, params: Mapping[str, Any], caller: Caller) -> Dict[str, Any]:
        filter = build_filter(params, self.schema.filters).and_(*self.scope(caller))
        with store_errors(f"GET_{self.schema.label}_STATS_FAILED", f"Failed to retrieve {self.schema.noun} statistics"):
            return await compute_stats(self.store, self.schema.collection, filter, self.schema.stats)
