"""
Clutch Backend — Stats Aggregator
===================================

What:  Computes a resource's /stats/overview payload over a filtered set.
How:   A StatsSpec names the aggregations; compute_stats() runs each one as a
       store call scoped by the request's filter:
         - total              count of the filtered set
         - counts             count with extra clauses (e.g. status=completed)
         - group_counts       count per distinct value of a field
         - sums               sum of a numeric field, optionally narrowed
         - group_sums         sum of a numeric field per distinct group value
         - averages           mean of a numeric field
       Empty sets produce 0 for counts, sums and averages and {} for groups.

Extra clauses may be given as a tuple or as a zero-argument callable for
clauses that depend on "now" (e.g. overdue = dueDate < now).
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from clutch.services.filters import Clause, Filter
from clutch.services.store_base import DocumentStore

Where = Union[Tuple[Clause, ...], Callable[[], Tuple[Clause, ...]]]


def _clauses(where: Where) -> Tuple[Clause, ...]:
    return where() if callable(where) else where


@dataclass(frozen=True)
class SumSpec:
    field: str
    where: Where = ()


@dataclass(frozen=True)
class StatsSpec:
    total: str = "total"
    counts: Mapping[str, Where] = field(default_factory=dict)
    group_counts: Mapping[str, str] = field(default_factory=dict)
    sums: Mapping[str, SumSpec] = field(default_factory=dict)
    group_sums: Mapping[str, Tuple[str, str]] = field(default_factory=dict)
    averages: Mapping[str, str] = field(default_factory=dict)
    group_limit: Optional[int] = None


def _top(groups: Dict[str, Any], limit: Optional[int]) -> Dict[str, Any]:
    if limit is None:
        return groups
    return dict(list(groups.items())[:limit])


async def compute_stats(
    store: DocumentStore,
    collection: str,
    filter: Filter,
    spec: StatsSpec,
) -> Dict[str, Any]:
    """Runs every aggregation in `spec` and returns them keyed by output name."""
    stats: Dict[str, Any] = {spec.total: await store.count(collection, filter)}

    for name, where in spec.counts.items():
        stats[name] = await store.count(collection, filter.and_(*_clauses(where)))

    for name, group_field in spec.group_counts.items():
        groups = await store.group_count(collection, filter, group_field)
        stats[name] = _top(groups, spec.group_limit)

    for name, sum_spec in spec.sums.items():
        scoped = filter.and_(*_clauses(sum_spec.where))
        stats[name] = round(await store.sum(collection, scoped, sum_spec.field), 2)

    for name, (group_field, sum_field) in spec.group_sums.items():
        groups = await store.group_sum(collection, filter, group_field, sum_field)
        stats[name] = {key: round(value, 2) for key, value in _top(groups, spec.group_limit).items()}

    for name, avg_field in spec.averages.items():
        average = await store.average(collection, filter, avg_field)
        stats[name] = round(average, 2) if average is not None else 0

    return stats
