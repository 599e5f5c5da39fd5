"""
Clutch Backend — Filter Builder
=================================

What:  Turns a request's query parameters into a structured, store-neutral Filter.
Why:   Every resource accepts the same families of filters (exact match, id,
       boolean, substring, numeric range, date range). Declaring which fields
       a resource recognizes in a FilterSpec replaces per-route parsing code.
How:   build_filter() walks the FilterSpec, parses each supplied parameter and
       emits clauses. Absent or empty parameters impose no constraint.
       Malformed values raise ValidationError (400) with a specific code.
Who:   Used by the CRUD engine; the clause types are interpreted by both
       DocumentStore implementations.
When:  Once per list / stats request. Pure, no side effects.

Clause semantics:
    Eq(field, value)          field == value (None matches missing/null)
    In(field, values)         field is one of values
    Range(field, gte, lte,…)  only the supplied bounds constrain
    Contains(field, text)     case-insensitive substring
    AnyOf(clauses)            OR of the nested clauses
    A Filter is the AND of its clauses; an empty Filter matches everything.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional, Tuple, Union

from clutch.exceptions import ValidationError


# ── Clauses ───────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Range:
    field: str
    gte: Any = None
    lte: Any = None
    gt: Any = None
    lt: Any = None


@dataclass(frozen=True)
class Contains:
    field: str
    value: str


@dataclass(frozen=True)
class AnyOf:
    clauses: Tuple["Clause", ...]


Clause = Union[Eq, In, Range, Contains, AnyOf]


@dataclass(frozen=True)
class Filter:
    """Immutable conjunction of clauses."""

    clauses: Tuple[Clause, ...] = ()

    def and_(self, *clauses: Clause) -> "Filter":
        return Filter(self.clauses + tuple(clauses))

    def merge(self, other: "Filter") -> "Filter":
        return Filter(self.clauses + other.clauses)


@dataclass(frozen=True)
class SortKey:
    """One ORDER BY term. `numeric` sorts JSON fields as numbers instead of text."""

    field: str
    descending: bool = False
    numeric: bool = False


NEWEST_FIRST: Tuple[SortKey, ...] = (SortKey("createdAt", descending=True),)


# ── Per-resource declaration ──────────────────────────────────────────────
@dataclass(frozen=True)
class FilterSpec:
    """
    The filterable fields a resource recognizes.

    Attributes:
        exact:      string fields compared by equality
        numbers:    numeric fields compared by equality (e.g. rating, year)
        booleans:   "true"/"false" parameters
        ids:        query parameter → record field, value must be a UUID
        like:       fields matched as case-insensitive substrings of their own parameter
        search:     fields OR-searched by the `q` parameter
        ranges:     stem → numeric field, read from min<Stem>/max<Stem>
        date_field: field targeted by startDate/endDate (None disables)
    """

    exact: Tuple[str, ...] = ()
    numbers: Tuple[str, ...] = ()
    booleans: Tuple[str, ...] = ()
    ids: Mapping[str, str] = field(default_factory=dict)
    like: Tuple[str, ...] = ()
    search: Tuple[str, ...] = ()
    ranges: Mapping[str, str] = field(default_factory=dict)
    date_field: Optional[str] = "createdAt"


# ── Value parsers ─────────────────────────────────────────────────────────
def parse_id(value: Any, field_name: str = "id") -> str:
    """Parses a record/user id into canonical UUID form or raises INVALID_ID."""
    try:
        return str(uuid.UUID(str(value).strip()))
    except (ValueError, AttributeError, TypeError):
        raise ValidationError(
            message=f"Invalid {field_name} format",
            code="INVALID_ID",
            field=field_name,
        )


def parse_datetime(value: Any, field_name: str) -> datetime:
    """
    Parses an ISO-8601 date or datetime into an aware UTC datetime.

    Naive values are taken to be UTC; offset values are converted to UTC so
    that stored ISO strings compare correctly.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                message=f"Invalid date for '{field_name}': {value}",
                code="INVALID_DATE",
                field=field_name,
            )
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"'{field_name}' must be a number", code="INVALID_NUMBER", field=field_name)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{field_name}' must be a number", code="INVALID_NUMBER", field=field_name)
    if not math.isfinite(number):
        raise ValidationError(f"'{field_name}' must be a finite number", code="INVALID_NUMBER", field=field_name)
    return number


def parse_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise ValidationError(
        f"'{field_name}' must be true or false",
        code="INVALID_BOOLEAN",
        field=field_name,
    )


def _present(params: Mapping[str, Any], name: str) -> Optional[str]:
    value = params.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ── Builder ───────────────────────────────────────────────────────────────
def build_filter(params: Mapping[str, Any], spec: FilterSpec) -> Filter:
    """
    Builds a Filter from query parameters according to `spec`.

    Unrecognized parameters (page, limit, sort…) are ignored.

    Raises:
        ValidationError: INVALID_ID, INVALID_DATE, INVALID_NUMBER or INVALID_BOOLEAN
    """
    clauses = []

    for name in spec.exact:
        value = _present(params, name)
        if value is not None:
            clauses.append(Eq(name, value))

    for name in spec.numbers:
        value = _present(params, name)
        if value is not None:
            clauses.append(Eq(name, parse_number(value, name)))

    for name in spec.booleans:
        value = _present(params, name)
        if value is not None:
            clauses.append(Eq(name, parse_bool(value, name)))

    for param, target in spec.ids.items():
        value = _present(params, param)
        if value is not None:
            clauses.append(Eq(target, parse_id(value, param)))

    for name in spec.like:
        value = _present(params, name)
        if value is not None:
            clauses.append(Contains(name, value))

    query = _present(params, "q")
    if query is not None and spec.search:
        clauses.append(AnyOf(tuple(Contains(name, query) for name in spec.search)))

    for stem, target in spec.ranges.items():
        low = _present(params, f"min{stem}")
        high = _present(params, f"max{stem}")
        if low is None and high is None:
            continue
        clauses.append(Range(
            target,
            gte=parse_number(low, f"min{stem}") if low is not None else None,
            lte=parse_number(high, f"max{stem}") if high is not None else None,
        ))

    if spec.date_field:
        start = _present(params, "startDate")
        end = _present(params, "endDate")
        if start is not None or end is not None:
            clauses.append(Range(
                spec.date_field,
                gte=parse_datetime(start, "startDate") if start is not None else None,
                lte=parse_datetime(end, "endDate") if end is not None else None,
            ))

    return Filter(tuple(clauses))
