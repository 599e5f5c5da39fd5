"""
Vehicle and review routes beyond the generic CRUD set.

    GET /api/vehicles/search/query?q=        make / model / VIN / plate search
    GET /api/vehicles/makes/list             distinct makes
    GET /api/vehicles/models/list?make=      distinct models, optionally per make
    GET /api/reviews/mechanic/{mechanicId}   a mechanic's active reviews
    GET /api/reviews/booking/{bookingId}     reviews left for one booking
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from clutch.auth import Caller, get_caller
from clutch.routes.resources import ENVELOPE, engine_for
from clutch.schemas.envelope import ok, paged
from clutch.services.crud import CrudEngine
from clutch.services.resources import reviews, vehicles
from clutch.services.resources.reviews import REVIEWS
from clutch.services.resources.vehicles import VEHICLES

vehicle_router = APIRouter()
review_router = APIRouter()

vehicle_engine = engine_for(VEHICLES)
review_engine = engine_for(REVIEWS)


@vehicle_router.get("/search/query", summary="Search vehicles", **ENVELOPE)
async def search_vehicles(
    request: Request,
    engine: CrudEngine = Depends(vehicle_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await vehicles.search_vehicles(engine, request.query_params, caller))


@vehicle_router.get("/makes/list", summary="Distinct vehicle makes", **ENVELOPE)
async def vehicle_makes(
    engine: CrudEngine = Depends(vehicle_engine),
    caller: Caller = Depends(get_caller),
):
    return ok(await vehicles.list_makes(engine))


@vehicle_router.get("/models/list", summary="Distinct vehicle models", **ENVELOPE)
async def vehicle_models(
    make: Optional[str] = None,
    engine: CrudEngine = Depends(vehicle_engine),
    caller: Caller = Depends(get_caller),
):
    return ok(await vehicles.list_models(engine, make))


@review_router.get("/mechanic/{mechanic_id}", summary="A mechanic's reviews", **ENVELOPE)
async def mechanic_reviews(
    mechanic_id: str,
    request: Request,
    engine: CrudEngine = Depends(review_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await reviews.list_for_mechanic(engine, mechanic_id, request.query_params, caller))


@review_router.get("/booking/{booking_id}", summary="Reviews for a booking", **ENVELOPE)
async def booking_reviews(
    booking_id: str,
    request: Request,
    engine: CrudEngine = Depends(review_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await reviews.list_for_booking(engine, booking_id, request.query_params, caller))
