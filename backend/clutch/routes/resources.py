"""
Clutch Backend — Generic Resource Routes
==========================================

What:  Builds the standard CRUD router for one ResourceSchema.
Why:   Every resource exposes the same nine endpoints; only the schema
       differs, so the routes are generated rather than written per resource.
How:   build_resource_router(schema, extra) mounts, under /api/<name>:

         GET    ""                  paged, filtered list
         GET    /stats/overview     aggregate stats over the filtered set
         GET    /user/{userId}      records owned by one user
         GET    /status/{status}    records in one status
         GET    /{id}               one record
         POST   ""                  create (201)
         PUT    /{id}               merge update (owner or admin)
         PATCH  /{id}/status        status transition (owner or admin)
         DELETE /{id}               hard or soft delete (owner or admin)

       Resource-specific routes in `extra` are included first, so a literal
       path such as /validate wins over the /{id} pattern.
Who:   Used by clutch.routes.api_routers().
"""

from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request, status

from clutch.auth import Caller, get_caller
from clutch.dependencies import get_store
from clutch.schemas.envelope import SuccessEnvelope, ok, paged
from clutch.schemas.requests import StatusChange
from clutch.services.crud import CrudEngine, ResourceSchema
from clutch.services.filters import Eq, parse_id
from clutch.services.store_base import DocumentStore

ENVELOPE = {"response_model": SuccessEnvelope, "response_model_exclude_none": True}


def engine_for(schema: ResourceSchema) -> Callable[..., CrudEngine]:
    """Dependency that builds a CrudEngine for `schema` over the request's store."""

    def dependency(store: DocumentStore = Depends(get_store)) -> CrudEngine:
        return CrudEngine(schema, store)

    dependency.__name__ = f"{schema.collection}_engine"
    return dependency


def build_resource_router(schema: ResourceSchema, extra: Optional[APIRouter] = None) -> APIRouter:
    router = APIRouter(prefix=f"/api/{schema.name}", tags=[schema.plural.title()])
    get_engine = engine_for(schema)
    title = schema.title

    if extra is not None:
        router.include_router(extra)

    @router.get("", summary=f"List {schema.plural}", **ENVELOPE)
    async def list_records(
        request: Request,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return paged(await engine.list(request.query_params, caller))

    @router.get("/stats/overview", summary=f"{title} statistics", **ENVELOPE)
    async def stats_overview(
        request: Request,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return ok(await engine.stats_overview(request.query_params, caller))

    @router.get("/user/{userId}", summary=f"List a user's {schema.plural}", **ENVELOPE)
    async def list_for_user(
        userId: str,
        request: Request,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        owner = Eq("ownerId", parse_id(userId, "userId"))
        return paged(await engine.list(request.query_params, caller, extra=(owner,)))

    @router.get("/status/{record_status}", summary=f"List {schema.plural} by status", **ENVELOPE)
    async def list_by_status(
        record_status: str,
        request: Request,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return paged(await engine.list(request.query_params, caller, extra=(Eq("status", record_status),)))

    @router.get("/{record_id}", summary=f"Get one {schema.noun}", **ENVELOPE)
    async def get_record(
        record_id: str,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return ok(await engine.get_by_id(record_id, caller))

    @router.post("", status_code=status.HTTP_201_CREATED, summary=f"Create a {schema.noun}", **ENVELOPE)
    async def create_record(
        payload: Dict[str, Any] = Body(...),
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        record = await engine.create(payload, caller)
        return ok(record, message=f"{title} created successfully")

    @router.put("/{record_id}", summary=f"Update a {schema.noun}", **ENVELOPE)
    async def update_record(
        record_id: str,
        payload: Dict[str, Any] = Body(...),
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        record = await engine.update(record_id, payload, caller)
        return ok(record, message=f"{title} updated successfully")

    @router.patch("/{record_id}/status", summary=f"Change a {schema.noun}'s status", **ENVELOPE)
    async def patch_status(
        record_id: str,
        body: StatusChange,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        record = await engine.patch_status(record_id, body.status, body.extras(), caller)
        return ok(record, message=f"{title} status updated to {record['status']}")

    @router.delete("/{record_id}", summary=f"Delete a {schema.noun}", **ENVELOPE)
    async def delete_record(
        record_id: str,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        record = await engine.delete(record_id, caller)
        return ok(record, message=f"{title} deleted successfully")

    return router
