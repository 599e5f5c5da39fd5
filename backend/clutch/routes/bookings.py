"""
Booking routes beyond the generic CRUD set.

    POST /api/bookings/{id}/cancel           cancel a pending or confirmed booking
    GET  /api/bookings/pending/list          pending bookings, earliest first
    GET  /api/bookings/mechanic/{mechanicId} one mechanic's bookings
"""

from fastapi import APIRouter, Depends, Request

from clutch.auth import Caller, get_caller
from clutch.routes.resources import ENVELOPE, engine_for
from clutch.schemas.envelope import ok, paged
from clutch.schemas.requests import CancelRequest
from clutch.services.crud import CrudEngine
from clutch.services.resources import bookings
from clutch.services.resources.bookings import BOOKINGS

router = APIRouter()
get_engine = engine_for(BOOKINGS)


@router.post("/{booking_id}/cancel", summary="Cancel a booking", **ENVELOPE)
async def cancel_booking(
    booking_id: str,
    body: CancelRequest = CancelRequest(),
    engine: CrudEngine = Depends(get_engine),
    caller: Caller = Depends(get_caller),
):
    booking = await bookings.cancel_booking(engine, booking_id, body.reason, caller)
    return ok(booking, message="Booking cancelled successfully")


@router.get("/pending/list", summary="Pending bookings, first come first served", **ENVELOPE)
async def pending_bookings(
    request: Request,
    engine: CrudEngine = Depends(get_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await bookings.list_pending(engine, request.query_params, caller))


@router.get("/mechanic/{mechanic_id}", summary="A mechanic's bookings", **ENVELOPE)
async def mechanic_bookings(
    mechanic_id: str,
    request: Request,
    engine: CrudEngine = Depends(get_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await bookings.list_for_mechanic(engine, mechanic_id, request.query_params, caller))
