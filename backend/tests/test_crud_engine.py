"""
Clutch Backend — CRUD Engine Unit Tests
=========================================

What:  CrudEngine over a small test schema and the memory store.
Why:   Every resource runs through this engine; its invariants (timestamps,
       ownership, coercion, status stamping, soft delete) hold everywhere.

What we test:
    ✅ create: required fields, defaults, engine-owned keys, reference numbers
    ✅ update: merge, updatedAt strictly increases, status and generated fields untouched
    ✅ patch_status: allowed values, timestamp and default stamping, extras
    ✅ delete: hard and soft; unknown id → 404
    ✅ Ownership Guard: non-owner mutations → 403 and the record is unchanged
    ✅ Owner read policy and store failures → 500 <OP>_<RESOURCE>_FAILED
"""

from unittest.mock import AsyncMock

import pytest

from clutch.exceptions import ConflictError, ForbiddenError, NotFoundError, UnexpectedError, ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema
from clutch.services.filters import Eq, Filter, FilterSpec
from clutch.services.stats import StatsSpec, SumSpec

WIDGETS = ResourceSchema(
    name="widgets",
    collection="widgets",
    noun="widget",
    plural="widgets",
    required=("name", "price"),
    defaults={"color": "grey", "tags": []},
    numbers=("price",),
    integers=("quantity",),
    dates=("shipBy",),
    uppercase=("sku",),
    statuses=("pending", "shipped", "cancelled"),
    status_timestamps={"shipped": "shippedAt"},
    status_defaults={"shipped": {"trackingNumber": "none"}},
    status_extras=("notes", "trackingNumber"),
    reference=("widgetReference", "WID"),
    unique={"sku": "SKU_ALREADY_EXISTS"},
    filters=FilterSpec(exact=("status", "color"), ids={"userId": "ownerId"}),
    stats=StatsSpec(
        total="totalWidgets",
        counts={"shippedWidgets": (Eq("status", "shipped"),)},
        group_counts={"widgetsByColor": "color"},
        sums={"totalValue": SumSpec("price")},
    ),
    delete_mode="soft",
    soft_delete={"status": "cancelled"},
)

PRIVATE = ResourceSchema(
    name="diaries",
    collection="diaries",
    noun="diary",
    plural="diaries",
    read_policy="owner",
)


@pytest.fixture
def engine(store):
    return CrudEngine(WIDGETS, store)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_applies_defaults_and_engine_fields(self, engine, user):
        widget = await engine.create({"name": "Bolt", "price": "2.50", "sku": " ab-1 "}, user)

        assert widget["price"] == 2.5
        assert widget["sku"] == "AB-1"
        assert widget["color"] == "grey"
        assert widget["status"] == "pending"
        assert widget["ownerId"] == user.id
        assert widget["createdAt"] == widget["updatedAt"]
        assert widget["widgetReference"].startswith("WID-")

    @pytest.mark.asyncio
    async def test_client_cannot_set_engine_fields(self, engine, user, other):
        widget = await engine.create(
            {"name": "Bolt", "price": 1, "id": "x", "ownerId": other.id, "status": "shipped"},
            user,
        )
        assert widget["id"] != "x"
        assert widget["ownerId"] == user.id
        assert widget["status"] == "pending"

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, engine, user):
        with pytest.raises(ValidationError) as exc_info:
            await engine.create({"name": "Bolt"}, user)
        assert exc_info.value.code == "MISSING_REQUIRED_FIELDS"
        assert exc_info.value.context["missing"] == ["price"]
        assert await engine.store.count("widgets", Filter()) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload, code",
        [
            ({"price": "cheap"}, "INVALID_NUMBER"),
            ({"quantity": "2.5"}, "INVALID_NUMBER"),
            ({"shipBy": "next week"}, "INVALID_DATE"),
        ],
    )
    async def test_coercion_errors(self, engine, user, payload, code):
        with pytest.raises(ValidationError) as exc_info:
            await engine.create({"name": "Bolt", "price": 1, **payload}, user)
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_unique_field_conflict(self, engine, user):
        await engine.create({"name": "Bolt", "price": 1, "sku": "AB-1"}, user)
        with pytest.raises(ConflictError) as exc_info:
            await engine.create({"name": "Nut", "price": 1, "sku": "ab-1"}, user)
        assert exc_info.value.code == "SKU_ALREADY_EXISTS"
        assert exc_info.value.status_code == 409


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_merges_and_bumps_updated_at(self, engine, user):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        updated = await engine.update(widget["id"], {"color": "red", "status": "shipped"}, user)

        assert updated["color"] == "red"
        assert updated["name"] == "Bolt"
        assert updated["status"] == "pending"
        assert updated["updatedAt"] > widget["updatedAt"]
        assert updated["createdAt"] == widget["createdAt"]

    @pytest.mark.asyncio
    async def test_consecutive_writes_strictly_increase_updated_at(self, engine, user):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        first = await engine.update(widget["id"], {"color": "red"}, user)
        second = await engine.update(widget["id"], {"color": "blue"}, user)
        assert widget["updatedAt"] < first["updatedAt"] < second["updatedAt"]

    @pytest.mark.asyncio
    async def test_non_owner_is_rejected_and_record_unchanged(self, engine, user, other):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        with pytest.raises(ForbiddenError) as exc_info:
            await engine.update(widget["id"], {"color": "red"}, other)
        assert exc_info.value.code == "UNAUTHORIZED"
        assert (await engine.load(widget["id"]))["color"] == "grey"

    @pytest.mark.asyncio
    async def test_admin_may_update_any_record(self, engine, user, admin):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        updated = await engine.update(widget["id"], {"color": "red"}, admin)
        assert updated["color"] == "red"
        assert updated["ownerId"] == user.id

    @pytest.mark.asyncio
    async def test_generated_fields_survive_update(self, engine, user):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        shipped = await engine.patch_status(widget["id"], "shipped", {}, user)

        updated = await engine.update(
            widget["id"],
            {"widgetReference": "WID-1", "shippedAt": "2000-01-01", "deletedAt": "2000-01-01", "color": "red"},
            user,
        )
        assert updated["color"] == "red"
        assert updated["widgetReference"] == widget["widgetReference"]
        assert updated["shippedAt"] == shipped["shippedAt"]
        assert "deletedAt" not in updated

    @pytest.mark.asyncio
    async def test_unknown_id(self, engine, user):
        with pytest.raises(NotFoundError) as exc_info:
            await engine.update("6f1c1c1e-0000-4000-8000-000000000000", {"color": "red"}, user)
        assert exc_info.value.code == "WIDGET_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_malformed_id(self, engine, user):
        with pytest.raises(ValidationError) as exc_info:
            await engine.get_by_id("42", user)
        assert exc_info.value.code == "INVALID_ID"


class TestPatchStatus:
    @pytest.mark.asyncio
    async def test_stamps_timestamp_defaults_and_extras(self, engine, user):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        shipped = await engine.patch_status(widget["id"], "shipped", {"notes": "fragile", "color": "red"}, user)

        assert shipped["status"] == "shipped"
        assert shipped["shippedAt"]
        assert shipped["trackingNumber"] == "none"
        assert shipped["notes"] == "fragile"
        assert shipped["color"] == "grey"

    @pytest.mark.asyncio
    async def test_extra_overrides_status_default(self, engine, user):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        shipped = await engine.patch_status(widget["id"], "shipped", {"trackingNumber": "1Z999"}, user)
        assert shipped["trackingNumber"] == "1Z999"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, code", [(None, "MISSING_STATUS"), ("lost", "INVALID_STATUS")])
    async def test_rejected_status(self, engine, user, status, code):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        with pytest.raises(ValidationError) as exc_info:
            await engine.patch_status(widget["id"], status, {}, user)
        assert exc_info.value.code == code


class TestDelete:
    @pytest.mark.asyncio
    async def test_soft_delete_keeps_record(self, engine, user):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        deleted = await engine.delete(widget["id"], user)

        assert deleted["status"] == "cancelled"
        assert deleted["deletedAt"]
        assert (await engine.load(widget["id"]))["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_hard_delete_removes_record(self, store, user):
        engine = CrudEngine(PRIVATE, store)
        diary = await engine.create({"title": "Day 1"}, user)
        await engine.delete(diary["id"], user)
        with pytest.raises(NotFoundError) as exc_info:
            await engine.load(diary["id"])
        assert exc_info.value.code == "DIARY_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_id(self, engine, user):
        with pytest.raises(NotFoundError) as exc_info:
            await engine.delete("6f1c1c1e-0000-4000-8000-000000000000", user)
        assert exc_info.value.code == "WIDGET_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(self, engine, user, other):
        widget = await engine.create({"name": "Bolt", "price": 1}, user)
        with pytest.raises(ForbiddenError):
            await engine.delete(widget["id"], other)
        assert (await engine.load(widget["id"]))["status"] == "pending"


class TestListAndStats:
    @pytest.mark.asyncio
    async def test_list_filters_and_paginates(self, engine, user, other):
        for n in range(3):
            await engine.create({"name": f"w{n}", "price": n, "color": "red"}, user)
        await engine.create({"name": "blue one", "price": 9, "color": "blue"}, other)

        result = await engine.list({"color": "red", "limit": "2"}, user)
        assert result.total == 3
        assert len(result.items) == 2
        assert result.pages == 2

    @pytest.mark.asyncio
    async def test_stats_overview(self, engine, user):
        a = await engine.create({"name": "a", "price": 10, "color": "red"}, user)
        await engine.create({"name": "b", "price": 5.5, "color": "red"}, user)
        await engine.create({"name": "c", "price": 1, "color": "blue"}, user)
        await engine.patch_status(a["id"], "shipped", {}, user)

        stats = await engine.stats_overview({}, user)
        assert stats == {
            "totalWidgets": 3,
            "shippedWidgets": 1,
            "widgetsByColor": {"red": 2, "blue": 1},
            "totalValue": 16.5,
        }

    @pytest.mark.asyncio
    async def test_stats_on_empty_collection(self, engine, user):
        stats = await engine.stats_overview({}, user)
        assert stats == {"totalWidgets": 0, "shippedWidgets": 0, "widgetsByColor": {}, "totalValue": 0}

    @pytest.mark.asyncio
    async def test_owner_read_policy(self, store, user, other, admin):
        engine = CrudEngine(PRIVATE, store)
        mine = await engine.create({"title": "mine"}, user)
        await engine.create({"title": "theirs"}, other)

        assert [d["title"] for d in (await engine.list({}, user)).items] == ["mine"]
        assert (await engine.list({}, admin)).total == 2
        with pytest.raises(ForbiddenError):
            await engine.get_by_id(mine["id"], other)


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_unexpected_store_error_is_wrapped(self, engine, user):
        engine.store.insert = AsyncMock(side_effect=RuntimeError("disk full"))
        with pytest.raises(UnexpectedError) as exc_info:
            await engine.create({"name": "Bolt", "price": 1}, user)
        assert exc_info.value.code == "CREATE_WIDGET_FAILED"
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_list_failure_code_uses_plural(self, engine, user):
        engine.store.count = AsyncMock(side_effect=RuntimeError("connection reset"))
        with pytest.raises(UnexpectedError) as exc_info:
            await engine.list({}, user)
        assert exc_info.value.code == "GET_WIDGETS_FAILED"
