"""
Discount codes and the validate / apply arithmetic.

Checks run in a fixed order so clients always see the first failing rule:
    MISSING_REQUIRED_FIELDS → INVALID_AMOUNT → DISCOUNT_NOT_FOUND →
    DISCOUNT_NOT_YET_VALID → DISCOUNT_EXPIRED →
    DISCOUNT_USAGE_LIMIT_EXCEEDED → MINIMUM_AMOUNT_NOT_MET

Amounts:
    percentage  amount * value / 100, capped at maxDiscount when maxDiscount > 0
    fixed       value
    The discount lies between 0 and the amount, so finalAmount never goes
    negative and never exceeds the amount.

status ("active" | "inactive") is authoritative; isActive mirrors it and a
PUT or status patch carrying only isActive moves status with it.
The terms checked on create are re-checked against the merged record on PUT.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from clutch.auth import Caller
from clutch.exceptions import NotFoundError, ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, store_errors, utcnow
from clutch.services.filters import AnyOf, Eq, Filter, FilterSpec, Range, parse_datetime, parse_number
from clutch.services.stats import StatsSpec

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = ("percentage", "fixed")


async def check_discount_terms(engine: CrudEngine, data: Dict[str, Any], caller: Caller) -> None:
    if data.get("type") not in DISCOUNT_TYPES:
        raise ValidationError(
            f"Discount type must be one of: {', '.join(DISCOUNT_TYPES)}",
            code="INVALID_DISCOUNT_TYPE",
            field="type",
        )
    value = data.get("value")
    if not isinstance(value, (int, float)) or value <= 0 or (data["type"] == "percentage" and value > 100):
        raise ValidationError(
            "Discount value must be positive (and at most 100 for percentages)",
            code="INVALID_DISCOUNT_VALUE",
            field="value",
        )
    valid_from, valid_until = _when(data.get("validFrom")), _when(data.get("validUntil"))
    if valid_from is not None and valid_until is not None and valid_until < valid_from:
        raise ValidationError("validUntil must be after validFrom", code="INVALID_DATE", field="validUntil")


async def check_discount_changes(
    engine: CrudEngine, record: Dict[str, Any], changes: Dict[str, Any], caller: Caller
) -> None:
    await check_discount_terms(engine, {**record, **changes}, caller)


def _expired_clauses():
    return (Range("validUntil", lt=utcnow()),)


DISCOUNTS = ResourceSchema(
    name="discounts",
    collection="discounts",
    noun="discount",
    plural="discounts",
    required=("code", "name", "type", "value"),
    defaults={
        "description": "",
        "minAmount": 0,
        "maxDiscount": 0,
        "usageLimit": 0,
        "usageCount": 0,
        "validFrom": utcnow,
        "validUntil": None,
        "applicableTo": [],
        "conditions": {},
        "isActive": True,
    },
    numbers=("value", "minAmount", "maxDiscount"),
    integers=("usageLimit", "usageCount"),
    dates=("validFrom", "validUntil"),
    uppercase=("code",),
    initial_status="active",
    statuses=("active", "inactive"),
    status_defaults={"active": {"isActive": True}, "inactive": {"isActive": False}},
    status_flag=("isActive", "active", "inactive"),
    unique={"code": "DISCOUNT_CODE_EXISTS"},
    filters=FilterSpec(
        exact=("status", "type"),
        booleans=("isActive",),
        ids={"userId": "ownerId"},
        search=("code", "name", "description"),
        ranges={"Value": "value"},
    ),
    stats=StatsSpec(
        total="totalDiscounts",
        counts={
            "activeDiscounts": (Eq("status", "active"),),
            "inactiveDiscounts": (Eq("status", "inactive"),),
            "expiredDiscounts": _expired_clauses,
        },
        group_counts={"discountsByType": "type", "discountsByStatus": "status"},
    ),
    delete_mode="soft",
    soft_delete={"status": "inactive", "isActive": False},
    create_hook=check_discount_terms,
    update_hook=check_discount_changes,
)


def active_clauses():
    """Active codes whose validity window has not closed."""
    now = utcnow()
    return (
        Eq("status", "active"),
        AnyOf((Eq("validUntil", None), Range("validUntil", gte=now))),
    )


def _when(value: Any) -> Optional[datetime]:
    return parse_datetime(value, "date") if value else None


def calculate(discount: Dict[str, Any], amount: float) -> Dict[str, Any]:
    """Runs the eligibility rules against `discount` and prices `amount`."""
    now = utcnow()
    valid_from = _when(discount.get("validFrom"))
    valid_until = _when(discount.get("validUntil"))

    if valid_from is not None and now < valid_from:
        raise ValidationError("Discount is not yet valid", code="DISCOUNT_NOT_YET_VALID")
    if valid_until is not None and now > valid_until:
        raise ValidationError("Discount has expired", code="DISCOUNT_EXPIRED")

    usage_limit = discount.get("usageLimit") or 0
    if usage_limit > 0 and (discount.get("usageCount") or 0) >= usage_limit:
        raise ValidationError("Discount usage limit exceeded", code="DISCOUNT_USAGE_LIMIT_EXCEEDED")

    min_amount = discount.get("minAmount") or 0
    if min_amount > 0 and amount < min_amount:
        raise ValidationError(
            f"Minimum amount of {min_amount} required",
            code="MINIMUM_AMOUNT_NOT_MET",
        )

    value = float(discount.get("value") or 0)
    if discount.get("type") == "percentage":
        discount_amount = amount * value / 100
        max_discount = discount.get("maxDiscount") or 0
        if max_discount > 0:
            discount_amount = min(discount_amount, max_discount)
    else:
        discount_amount = value
    discount_amount = round(max(min(discount_amount, amount), 0.0), 2)

    return {
        "discount": discount,
        "discountAmount": discount_amount,
        "finalAmount": round(amount - discount_amount, 2),
    }


async def _lookup(engine: CrudEngine, code: Any, amount: Any) -> tuple:
    if not code or amount in (None, ""):
        raise ValidationError("Code and amount are required", code="MISSING_REQUIRED_FIELDS")
    amount = parse_number(amount, "amount")
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero", code="INVALID_AMOUNT", field="amount")

    with store_errors("VALIDATE_DISCOUNT_FAILED", "Failed to validate discount"):
        discount = await engine.store.find_one(
            engine.schema.collection,
            Filter((Eq("code", str(code).strip().upper()), Eq("status", "active"))),
        )
    if discount is None:
        raise NotFoundError("discount", code="DISCOUNT_NOT_FOUND", message="Invalid discount code")
    return discount, amount


async def validate_discount(engine: CrudEngine, code: Any, amount: Any) -> Dict[str, Any]:
    """Prices `amount` with `code` without consuming a use."""
    discount, amount = await _lookup(engine, code, amount)
    return calculate(discount, amount)


async def apply_discount(engine: CrudEngine, code: Any, amount: Any, caller: Caller) -> Dict[str, Any]:
    """Validates like validate_discount, then records one use of the code."""
    discount, amount = await _lookup(engine, code, amount)
    result = calculate(discount, amount)
    result["discount"] = await engine.write(
        discount,
        {"usageCount": int(discount.get("usageCount") or 0) + 1},
        operation="APPLY",
    )
    logger.info("Discount %s applied by %s (-%.2f)", discount.get("code"), caller.id, result["discountAmount"])
    return result
