"""
Money-related routes beyond the generic CRUD set: discounts, payouts, invoices.

Discounts:
    GET  /api/discounts/validate?code=&amount=   price an amount (no use consumed)
    POST /api/discounts/validate {code, amount}  same, from a JSON body
    POST /api/discounts/apply {code, amount}     price and record one use
    GET  /api/discounts/active/list              active, unexpired codes
Payouts:
    POST /api/payouts/{id}/process               pending → processing
    POST /api/payouts/{id}/cancel                pending → cancelled
    GET  /api/payouts/pending/list
    GET  /api/payouts/recipient/{recipientId}
    GET  /api/payouts/summary/{recipientId}
Invoices:
    GET  /api/invoices/overdue/list
    POST /api/invoices/{id}/reminder
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from clutch.auth import Caller, get_caller
from clutch.routes.resources import ENVELOPE, engine_for
from clutch.schemas.envelope import ok, paged
from clutch.schemas.requests import (
    CancelRequest,
    DiscountCheck,
    ProcessPayoutRequest,
    ReminderRequest,
)
from clutch.services.crud import CrudEngine
from clutch.services.resources import discounts, invoices, payouts
from clutch.services.resources.discounts import DISCOUNTS
from clutch.services.resources.invoices import INVOICES
from clutch.services.resources.payouts import PAYOUTS

discount_router = APIRouter()
payout_router = APIRouter()
invoice_router = APIRouter()

discount_engine = engine_for(DISCOUNTS)
payout_engine = engine_for(PAYOUTS)
invoice_engine = engine_for(INVOICES)


# ── Discounts ─────────────────────────────────────────────────────────────
@discount_router.get("/validate", summary="Validate a discount code", **ENVELOPE)
async def validate_discount_query(
    code: Optional[str] = None,
    amount: Optional[str] = None,
    engine: CrudEngine = Depends(discount_engine),
    caller: Caller = Depends(get_caller),
):
    return ok(await discounts.validate_discount(engine, code, amount), message="Discount is valid")


@discount_router.post("/validate", summary="Validate a discount code", **ENVELOPE)
async def validate_discount_body(
    body: DiscountCheck,
    engine: CrudEngine = Depends(discount_engine),
    caller: Caller = Depends(get_caller),
):
    return ok(await discounts.validate_discount(engine, body.code, body.amount), message="Discount is valid")


@discount_router.post("/apply", summary="Apply a discount code", **ENVELOPE)
async def apply_discount(
    body: DiscountCheck,
    engine: CrudEngine = Depends(discount_engine),
    caller: Caller = Depends(get_caller),
):
    result = await discounts.apply_discount(engine, body.code, body.amount, caller)
    return ok(result, message="Discount applied successfully")


@discount_router.get("/active/list", summary="Active discounts", **ENVELOPE)
async def active_discounts(
    request: Request,
    engine: CrudEngine = Depends(discount_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await engine.list(request.query_params, caller, extra=discounts.active_clauses()))


# ── Payouts ───────────────────────────────────────────────────────────────
@payout_router.post("/{payout_id}/process", summary="Start processing a payout", **ENVELOPE)
async def process_payout(
    payout_id: str,
    body: ProcessPayoutRequest = ProcessPayoutRequest(),
    engine: CrudEngine = Depends(payout_engine),
    caller: Caller = Depends(get_caller),
):
    payout = await payouts.process_payout(engine, payout_id, body.transactionId, caller)
    return ok(payout, message="Payout processing started")


@payout_router.post("/{payout_id}/cancel", summary="Cancel a pending payout", **ENVELOPE)
async def cancel_payout(
    payout_id: str,
    body: CancelRequest = CancelRequest(),
    engine: CrudEngine = Depends(payout_engine),
    caller: Caller = Depends(get_caller),
):
    payout = await payouts.cancel_payout(engine, payout_id, body.reason, caller)
    return ok(payout, message="Payout cancelled successfully")


@payout_router.get("/pending/list", summary="Pending payouts", **ENVELOPE)
async def pending_payouts(
    request: Request,
    engine: CrudEngine = Depends(payout_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await payouts.list_pending(engine, request.query_params, caller))


@payout_router.get("/recipient/{recipient_id}", summary="A recipient's payouts", **ENVELOPE)
async def recipient_payouts(
    recipient_id: str,
    request: Request,
    engine: CrudEngine = Depends(payout_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await payouts.list_for_recipient(engine, recipient_id, request.query_params, caller))


@payout_router.get("/summary/{recipient_id}", summary="A recipient's payout totals", **ENVELOPE)
async def payout_summary(
    recipient_id: str,
    request: Request,
    engine: CrudEngine = Depends(payout_engine),
    caller: Caller = Depends(get_caller),
):
    return ok(await payouts.recipient_summary(engine, recipient_id, request.query_params))


# ── Invoices ──────────────────────────────────────────────────────────────
@invoice_router.get("/overdue/list", summary="Overdue invoices", **ENVELOPE)
async def overdue_invoices(
    request: Request,
    engine: CrudEngine = Depends(invoice_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await invoices.list_overdue(engine, request.query_params, caller))


@invoice_router.post("/{invoice_id}/reminder", summary="Send a payment reminder", **ENVELOPE)
async def invoice_reminder(
    invoice_id: str,
    body: ReminderRequest = ReminderRequest(),
    engine: CrudEngine = Depends(invoice_engine),
    caller: Caller = Depends(get_caller),
):
    invoice = await invoices.send_reminder(engine, invoice_id, body.type, body.message, caller)
    return ok(invoice, message="Reminder sent successfully")
