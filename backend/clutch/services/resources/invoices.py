"""
Customer invoices, overdue tracking and payment reminders.

An invoice is overdue while it is still `pending` after its due date
(30 days after creation unless given).
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

from clutch.auth import Caller
from clutch.exceptions import ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, utcnow
from clutch.services.filters import Eq, FilterSpec, Range, SortKey
from clutch.services.ownership import ensure_can_modify
from clutch.services.pagination import PagedResult
from clutch.services.stats import StatsSpec, SumSpec

logger = logging.getLogger(__name__)

PAYMENT_TERM_DAYS = 30


def _default_due_date():
    return utcnow() + timedelta(days=PAYMENT_TERM_DAYS)


def overdue_clauses():
    return (Eq("status", "pending"), Range("dueDate", lt=utcnow()))


INVOICES = ResourceSchema(
    name="invoices",
    collection="invoices",
    noun="invoice",
    plural="invoices",
    required=("customerId", "items", "totalAmount"),
    defaults={
        "subtotal": 0,
        "taxAmount": 0,
        "discountAmount": 0,
        "dueDate": _default_due_date,
        "notes": "",
        "paymentTerms": f"Net {PAYMENT_TERM_DAYS}",
        "reminders": [],
    },
    numbers=("subtotal", "taxAmount", "discountAmount", "totalAmount"),
    dates=("dueDate",),
    ids=("customerId",),
    statuses=("pending", "paid", "overdue", "cancelled", "void"),
    status_timestamps={
        "paid": "paidAt",
        "overdue": "overdueAt",
        "cancelled": "cancelledAt",
        "void": "voidedAt",
    },
    status_extras=("notes", "paymentMethod", "paymentReference"),
    reference=("invoiceNumber", "INV"),
    filters=FilterSpec(
        exact=("status", "paymentTerms"),
        ids={"userId": "ownerId", "customerId": "customerId"},
        search=("invoiceNumber", "notes"),
        ranges={"Amount": "totalAmount"},
    ),
    stats=StatsSpec(
        total="totalInvoices",
        counts={"overdueInvoices": overdue_clauses},
        group_counts={"invoicesByStatus": "status"},
        sums={
            "totalAmount": SumSpec("totalAmount"),
            "paidAmount": SumSpec("totalAmount", where=(Eq("status", "paid"),)),
            "overdueAmount": SumSpec("totalAmount", where=overdue_clauses),
        },
        group_sums={"totalAmountByStatus": ("status", "totalAmount")},
    ),
    delete_mode="soft",
    soft_delete={"status": "void"},
)


async def list_overdue(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    """Overdue invoices, longest overdue first."""
    return await engine.list(params, caller, extra=overdue_clauses(), sort=(SortKey("dueDate"),))


async def send_reminder(
    engine: CrudEngine,
    invoice_id: str,
    reminder_type: Optional[str],
    message: Optional[str],
    caller: Caller,
) -> Dict[str, Any]:
    """Appends a payment reminder to the invoice's reminder log."""
    invoice = await engine.load(invoice_id)
    ensure_can_modify(invoice, caller, "invoices", action="remind on")
    if invoice.get("status") == "paid":
        raise ValidationError("Invoice has already been paid", code="INVOICE_ALREADY_PAID")

    reminder = {
        "id": str(uuid.uuid4()),
        "type": reminder_type or "payment_reminder",
        "message": message or "Payment reminder",
        "sentAt": utcnow(),
        "sentBy": caller.id,
    }
    updated = await engine.write(
        invoice,
        {"reminders": list(invoice.get("reminders") or []) + [reminder]},
        operation="SEND_REMINDER",
    )
    logger.info("Reminder sent for invoice %s", invoice["id"])
    return updated
