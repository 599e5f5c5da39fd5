"""
Dispute and feedback routes beyond the generic CRUD set.

    POST /api/disputes/{id}/responses   append a message (open → under_review)
    GET  /api/disputes/open/list        open and under-review disputes
    POST /api/feedback/{id}/response    append a reply
    GET  /api/feedback/open/list        open and in-progress feedback
    GET  /api/feedback/search/query?q=  text search over subject and message
"""

from fastapi import APIRouter, Depends, Request

from clutch.auth import Caller, get_caller
from clutch.routes.resources import ENVELOPE, engine_for
from clutch.schemas.envelope import ok, paged
from clutch.schemas.requests import DisputeResponseRequest, FeedbackResponseRequest
from clutch.services.crud import CrudEngine
from clutch.services.resources import support
from clutch.services.resources.support import DISPUTES, FEEDBACK

dispute_router = APIRouter()
feedback_router = APIRouter()

dispute_engine = engine_for(DISPUTES)
feedback_engine = engine_for(FEEDBACK)


@dispute_router.post("/{dispute_id}/responses", summary="Respond to a dispute", **ENVELOPE)
async def respond_to_dispute(
    dispute_id: str,
    body: DisputeResponseRequest,
    engine: CrudEngine = Depends(dispute_engine),
    caller: Caller = Depends(get_caller),
):
    dispute = await support.add_dispute_response(engine, dispute_id, body.message, body.attachments, caller)
    return ok(dispute, message="Response added successfully")


@dispute_router.get("/open/list", summary="Open disputes", **ENVELOPE)
async def open_disputes(
    request: Request,
    engine: CrudEngine = Depends(dispute_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await support.list_open_disputes(engine, request.query_params, caller))


@feedback_router.post("/{feedback_id}/response", summary="Respond to feedback", **ENVELOPE)
async def respond_to_feedback(
    feedback_id: str,
    body: FeedbackResponseRequest,
    engine: CrudEngine = Depends(feedback_engine),
    caller: Caller = Depends(get_caller),
):
    feedback = await support.add_feedback_response(engine, feedback_id, body.response, caller)
    return ok(feedback, message="Response added successfully")


@feedback_router.get("/open/list", summary="Open feedback", **ENVELOPE)
async def open_feedback(
    request: Request,
    engine: CrudEngine = Depends(feedback_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await support.list_open_feedback(engine, request.query_params, caller))


@feedback_router.get("/search/query", summary="Search feedback", **ENVELOPE)
async def search_feedback(
    request: Request,
    engine: CrudEngine = Depends(feedback_engine),
    caller: Caller = Depends(get_caller),
):
    return paged(await support.search_feedback(engine, request.query_params, caller))
