"""
Payouts to mechanics and partners.

Lifecycle:
    pending → processing → completed | failed
    pending → cancelled
Processing and cancellation are only possible from `pending`
(400 INVALID_PAYOUT_STATUS otherwise).
"""

import logging
import time
from typing import Any, Dict, Mapping, Optional

from clutch.auth import Caller
from clutch.exceptions import ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, store_errors, utcnow
from clutch.services.filters import Eq, FilterSpec, SortKey, build_filter, parse_id
from clutch.services.ownership import ensure_can_modify
from clutch.services.pagination import PagedResult
from clutch.services.stats import StatsSpec, SumSpec, compute_stats

logger = logging.getLogger(__name__)

PAYOUTS = ResourceSchema(
    name="payouts",
    collection="payouts",
    noun="payout",
    plural="payouts",
    required=("recipientId", "amount", "paymentMethod"),
    defaults={
        "currency": "USD",
        "bankDetails": {},
        "description": "",
        "scheduledDate": utcnow,
    },
    numbers=("amount",),
    dates=("scheduledDate",),
    ids=("recipientId",),
    uppercase=("currency",),
    statuses=("pending", "processing", "completed", "failed", "cancelled"),
    status_timestamps={
        "processing": "processingAt",
        "completed": "completedAt",
        "failed": "failedAt",
        "cancelled": "cancelledAt",
    },
    status_extras=("notes", "transactionId", "failureReason"),
    reference=("payoutReference", "PAY"),
    filters=FilterSpec(
        exact=("status", "paymentMethod", "currency"),
        ids={"userId": "ownerId", "recipientId": "recipientId"},
        search=("payoutReference", "description"),
        ranges={"Amount": "amount"},
    ),
    stats=StatsSpec(
        total="totalPayouts",
        group_counts={"payoutsByStatus": "status", "payoutsByMethod": "paymentMethod"},
        sums={"totalAmount": SumSpec("amount")},
        group_sums={"totalAmountByStatus": ("status", "amount")},
    ),
    delete_mode="soft",
    soft_delete={"status": "cancelled"},
)

SUMMARY = StatsSpec(
    total="totalPayouts",
    counts={
        "completedPayouts": (Eq("status", "completed"),),
        "pendingPayouts": (Eq("status", "pending"),),
    },
    sums={
        "totalAmount": SumSpec("amount"),
        "completedAmount": SumSpec("amount", where=(Eq("status", "completed"),)),
        "pendingAmount": SumSpec("amount", where=(Eq("status", "pending"),)),
    },
)


def _require_pending(payout: Dict[str, Any], action: str) -> None:
    if payout.get("status") != "pending":
        raise ValidationError(
            f"Only pending payouts can be {action} (current status: {payout.get('status')})",
            code="INVALID_PAYOUT_STATUS",
        )


async def process_payout(
    engine: CrudEngine, payout_id: str, transaction_id: Optional[str], caller: Caller
) -> Dict[str, Any]:
    payout = await engine.load(payout_id)
    ensure_can_modify(payout, caller, "payouts", action="process")
    _require_pending(payout, "processed")

    updated = await engine.write(
        payout,
        {
            "status": "processing",
            "processingAt": utcnow(),
            "processedBy": caller.id,
            "transactionId": transaction_id or f"TXN-{int(time.time() * 1000)}",
        },
        operation="PROCESS",
    )
    logger.info("Payout %s moved to processing by %s", payout["id"], caller.id)
    return updated


async def cancel_payout(
    engine: CrudEngine, payout_id: str, reason: Optional[str], caller: Caller
) -> Dict[str, Any]:
    payout = await engine.load(payout_id)
    ensure_can_modify(payout, caller, "payouts", action="cancel")
    _require_pending(payout, "cancelled")

    return await engine.write(
        payout,
        {
            "status": "cancelled",
            "cancelledAt": utcnow(),
            "cancelledBy": caller.id,
            "cancellationReason": reason or "Cancelled by user",
        },
        operation="CANCEL",
    )


async def list_pending(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    """Pending payouts, oldest scheduled first."""
    return await engine.list(
        params,
        caller,
        extra=(Eq("status", "pending"),),
        sort=(SortKey("scheduledDate"), SortKey("createdAt")),
    )


async def list_for_recipient(
    engine: CrudEngine, recipient_id: str, params: Mapping[str, Any], caller: Caller
) -> PagedResult:
    return await engine.list(
        params,
        caller,
        extra=(Eq("recipientId", parse_id(recipient_id, "recipientId")),),
    )


async def recipient_summary(
    engine: CrudEngine, recipient_id: str, params: Mapping[str, Any]
) -> Dict[str, Any]:
    """Totals for one recipient, optionally within startDate/endDate."""
    filter = build_filter(params, FilterSpec()).and_(
        Eq("recipientId", parse_id(recipient_id, "recipientId"))
    )
    with store_errors("GET_PAYOUT_SUMMARY_FAILED", "Failed to retrieve payout summary"):
        return await compute_stats(engine.store, engine.schema.collection, filter, SUMMARY)
