"""
Catalogue routes shared by products and parts.

    PATCH /api/<items>/{id}/stock        {quantity, operation: add|subtract}
    GET   /api/<items>/low-stock/list    active items at or below ?threshold=
    GET   /api/<items>/categories/list   distinct categories
    GET   /api/<items>/brands/list       distinct brands
    GET   /api/<items>/category/{name}   active items in one category
    GET   /api/<items>/search/query?q=   text search over active items
"""

from fastapi import APIRouter, Depends, Request

from clutch.auth import Caller, get_caller
from clutch.routes.resources import ENVELOPE, engine_for
from clutch.schemas.envelope import ok, paged
from clutch.schemas.requests import StockAdjustment
from clutch.services.crud import CrudEngine, ResourceSchema
from clutch.services.resources import inventory


def build_inventory_router(schema: ResourceSchema) -> APIRouter:
    router = APIRouter()
    get_engine = engine_for(schema)

    @router.patch("/{item_id}/stock", summary=f"Adjust a {schema.noun}'s stock", **ENVELOPE)
    async def adjust_stock(
        item_id: str,
        body: StockAdjustment,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        result = await inventory.adjust_stock(engine, item_id, body.quantity, body.operation, caller)
        verb = "added" if body.operation == "add" else "subtracted"
        return ok(result, message=f"Stock {verb} successfully")

    @router.get("/low-stock/list", summary=f"Low-stock {schema.plural}", **ENVELOPE)
    async def low_stock(
        request: Request,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return paged(await inventory.list_low_stock(engine, request.query_params, caller))

    @router.get("/categories/list", summary=f"{schema.title} categories", **ENVELOPE)
    async def categories(
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return ok(await inventory.list_categories(engine))

    @router.get("/brands/list", summary=f"{schema.title} brands", **ENVELOPE)
    async def brands(
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return ok(await inventory.list_brands(engine))

    @router.get("/category/{category}", summary=f"{schema.title}s in a category", **ENVELOPE)
    async def by_category(
        category: str,
        request: Request,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return paged(await inventory.list_by_category(engine, category, request.query_params, caller))

    @router.get("/search/query", summary=f"Search {schema.plural}", **ENVELOPE)
    async def search(
        request: Request,
        engine: CrudEngine = Depends(get_engine),
        caller: Caller = Depends(get_caller),
    ):
        return paged(await inventory.search_items(engine, request.query_params, caller))

    return router
