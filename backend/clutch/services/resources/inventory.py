"""
Catalogue inventory: products and parts.

Both share one shape and the same stock operations; only the collection
and error codes differ.

Stock adjustment:
    PATCH /{id}/stock {"quantity": n, "operation": "add" | "subtract"}
    subtracting more than is in stock → 400 INSUFFICIENT_STOCK
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from clutch.auth import Caller
from clutch.exceptions import ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, store_errors
from clutch.services.filters import Eq, Filter, FilterSpec, Range, SortKey, parse_number
from clutch.services.ownership import ensure_can_modify
from clutch.services.pagination import PagedResult
from clutch.services.stats import StatsSpec

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 10
STOCK_OPERATIONS = ("add", "subtract")


def _catalogue_schema(name: str, noun: str, plural: str) -> ResourceSchema:
    title = plural.capitalize()
    return ResourceSchema(
        name=name,
        collection=name,
        noun=noun,
        plural=plural,
        required=("name", "description", "category", "price"),
        defaults={
            "brand": "",
            "stockQuantity": 0,
            "images": [],
            "specifications": {},
            "tags": [],
        },
        numbers=("price",),
        integers=("stockQuantity",),
        initial_status="active",
        statuses=("active", "inactive", "discontinued"),
        filters=FilterSpec(
            exact=("status", "category", "brand"),
            ids={"userId": "ownerId"},
            search=("name", "description", "brand", "category"),
            ranges={"Price": "price"},
        ),
        stats=StatsSpec(
            total=f"total{title}",
            counts={
                f"active{title}": (Eq("status", "active"),),
                f"inactive{title}": (Eq("status", "inactive"),),
                f"lowStock{title}": (
                    Eq("status", "active"),
                    Range("stockQuantity", lte=LOW_STOCK_THRESHOLD),
                ),
            },
            group_counts={f"{plural}ByCategory": "category", f"{plural}ByBrand": "brand"},
        ),
    )


PRODUCTS = _catalogue_schema("products", "product", "products")
PARTS = _catalogue_schema("parts", "part", "parts")


async def adjust_stock(
    engine: CrudEngine,
    item_id: str,
    quantity: Any,
    operation: Optional[str],
    caller: Caller,
) -> Dict[str, Any]:
    """
    Adds to or subtracts from an item's stockQuantity.

    Returns:
        {"item": <updated record>, "newQuantity": int}
    """
    if quantity in (None, "") or not operation:
        raise ValidationError("Quantity and operation are required", code="MISSING_REQUIRED_FIELDS")
    if operation not in STOCK_OPERATIONS:
        raise ValidationError(
            "Operation must be 'add' or 'subtract'",
            code="INVALID_OPERATION",
            field="operation",
        )
    amount = parse_number(quantity, "quantity")
    if not amount.is_integer() or amount < 0:
        raise ValidationError("Quantity must be a non-negative whole number", code="INVALID_NUMBER", field="quantity")

    item = await engine.load(item_id)
    ensure_can_modify(item, caller, engine.schema.plural, action="update")

    current = int(item.get("stockQuantity") or 0)
    if operation == "add":
        new_quantity = current + int(amount)
    else:
        if current < amount:
            raise ValidationError(
                "Insufficient stock",
                code="INSUFFICIENT_STOCK",
                context={"available": current, "requested": int(amount)},
            )
        new_quantity = current - int(amount)

    updated = await engine.write(item, {"stockQuantity": new_quantity}, operation="UPDATE_STOCK")
    logger.info(
        "%s %s stock %s by %d → %d", engine.schema.title, item["id"], operation, int(amount), new_quantity
    )
    return {"item": updated, "newQuantity": new_quantity}


async def list_low_stock(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    """Active items at or below `threshold` (default 10), scarcest first."""
    raw = params.get("threshold")
    threshold = parse_number(raw, "threshold") if raw not in (None, "") else LOW_STOCK_THRESHOLD
    return await engine.list(
        params,
        caller,
        extra=(Eq("status", "active"), Range("stockQuantity", lte=threshold)),
        sort=(SortKey("stockQuantity", numeric=True),),
    )


async def _distinct(engine: CrudEngine, field: str) -> List[Any]:
    label = engine.schema.label
    with store_errors(f"GET_{label}_{field.upper()}_FAILED", f"Failed to retrieve {engine.schema.noun} {field} values"):
        return await engine.store.distinct(
            engine.schema.collection,
            Filter((Eq("status", "active"),)),
            field,
        )


async def list_categories(engine: CrudEngine) -> List[Any]:
    return await _distinct(engine, "category")


async def list_brands(engine: CrudEngine) -> List[Any]:
    return [brand for brand in await _distinct(engine, "brand") if brand]


async def list_by_category(
    engine: CrudEngine, category: str, params: Mapping[str, Any], caller: Caller
) -> PagedResult:
    return await engine.list(
        params,
        caller,
        extra=(Eq("category", category), Eq("status", "active")),
        sort=(SortKey("name"),),
    )


async def search_items(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    if not str(params.get("q") or "").strip():
        raise ValidationError("Search query is required", code="MISSING_QUERY", field="q")
    return await engine.list(params, caller, extra=(Eq("status", "active"),), sort=(SortKey("name"),))
