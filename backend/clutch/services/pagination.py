"""
Clutch Backend — Pagination Envelope
======================================

What:  Page/limit parsing and the paged fetch shared by every list endpoint.
How:   PageRequest.from_params() reads `page` and `limit`, clamping bad values
       instead of failing; paginate() issues one count and one bounded,
       sorted fetch and returns a PagedResult carrying
       {page, limit, total, pages}.

Clamping rules:
    page  < 1            → 1
    limit <= 0           → default limit (10)
    limit > max limit    → max limit (100)
    non-integer values   → 400 INVALID_PAGINATION
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from clutch.config import settings
from clutch.exceptions import ValidationError
from clutch.services.filters import NEWEST_FIRST, Filter, SortKey
from clutch.services.store_base import DocumentStore, Record


def _as_int(value: Any, name: str) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(
            message=f"'{name}' must be an integer",
            code="INVALID_PAGINATION",
            field=name,
        )


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 10

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        default_limit: Optional[int] = None,
        max_limit: Optional[int] = None,
    ) -> "PageRequest":
        default_limit = default_limit or settings.default_page_limit
        max_limit = max_limit or settings.max_page_limit

        page = _as_int(params.get("page"), "page") or 1
        limit = _as_int(params.get("limit"), "limit")
        if limit is None or limit <= 0:
            limit = default_limit
        return cls(page=max(page, 1), limit=min(limit, max_limit))


@dataclass
class PagedResult:
    items: List[Record]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
        }


async def paginate(
    store: DocumentStore,
    collection: str,
    filter: Filter,
    page_request: PageRequest,
    sort: Sequence[SortKey] = NEWEST_FIRST,
) -> PagedResult:
    """Counts the filtered set, then fetches one sorted page of it."""
    total = await store.count(collection, filter)
    items = await store.find(
        collection,
        filter,
        sort=sort,
        skip=page_request.skip,
        limit=page_request.limit,
    )
    return PagedResult(
        items=items,
        page=page_request.page,
        limit=page_request.limit,
        total=total,
    )
