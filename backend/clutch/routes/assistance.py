"""Roadside assistance routes beyond the generic CRUD set."""

from fastapi import APIRouter, Depends, Request

from clutch.auth import Caller, get_caller
from clutch.routes.resources import ENVELOPE, engine_for
from clutch.schemas.envelope import paged
from clutch.services.crud import CrudEngine
from clutch.services.resources.assistance import ROADSIDE, list_active_roadside

roadside_router = APIRouter()
roadside_engine = engine_for(ROADSIDE)


@roadside_router.get("/active/list", summary="Roadside requests still being handled", **ENVELOPE)
async def active_requests(
    request: Request,
    engine: CrudEngine = Depends(roadside_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await list_active_roadside(engine, request.query_params, caller))
