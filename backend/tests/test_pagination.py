"""
Clutch Backend — Pagination Unit Tests
========================================

What:  PageRequest clamping and the paged fetch over the memory store.

What we test:
    ✅ Defaults, clamping of page < 1 and limit outside 1..100
    ✅ Non-integer page/limit → 400 INVALID_PAGINATION
    ✅ pages = ceil(total / limit); a page past the end is empty, not an error
"""

import pytest

from clutch.exceptions import ValidationError
from clutch.services.filters import Filter, SortKey
from clutch.services.pagination import PagedResult, PageRequest, paginate


class TestPageRequest:
    def test_defaults(self):
        request = PageRequest.from_params({})
        assert (request.page, request.limit, request.skip) == (1, 10, 0)

    def test_page_below_one_is_clamped(self):
        assert PageRequest.from_params({"page": "-3"}).page == 1

    def test_zero_limit_falls_back_to_default(self):
        assert PageRequest.from_params({"limit": "0"}).limit == 10

    def test_limit_above_max_is_clamped(self):
        assert PageRequest.from_params({"limit": "500"}).limit == 100

    def test_skip(self):
        assert PageRequest.from_params({"page": "3", "limit": "20"}).skip == 40

    @pytest.mark.parametrize("params", [{"page": "two"}, {"limit": "1.5"}])
    def test_non_integer_rejected(self, params):
        with pytest.raises(ValidationError) as exc_info:
            PageRequest.from_params(params)
        assert exc_info.value.code == "INVALID_PAGINATION"


class TestPagedResult:
    def test_pages_rounds_up(self):
        assert PagedResult(items=[], page=1, limit=10, total=21).pages == 3

    def test_no_matches_has_zero_pages(self):
        assert PagedResult(items=[], page=1, limit=10, total=0).pagination() == {
            "page": 1, "limit": 10, "total": 0, "pages": 0,
        }


class TestPaginate:
    @pytest.mark.asyncio
    async def test_pages_through_sorted_records(self, store):
        for n in range(25):
            await store.insert("items", {"n": n})

        request = PageRequest.from_params({"page": "3", "limit": "10"})
        result = await paginate(store, "items", Filter(), request, sort=(SortKey("n", numeric=True),))

        assert [item["n"] for item in result.items] == [20, 21, 22, 23, 24]
        assert result.pagination() == {"page": 3, "limit": 10, "total": 25, "pages": 3}

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, store):
        await store.insert("items", {"n": 1})
        result = await paginate(store, "items", Filter(), PageRequest(page=5, limit=10))
        assert result.items == []
        assert result.total == 1
