"""
Clutch Backend — API Routes Package
=====================================

What:  HTTP route handlers; thin wrappers that parse the request, call a
       service and wrap the result in the response envelope.
How:   Every resource in REGISTRY gets the generic CRUD router from
       resources.py. Resources with extra endpoints contribute an extras
       router that is mounted ahead of the generic /{id} routes.

Route Inventory:
    - health.py:         GET /health
    - resources.py:      /api/<resource> generic CRUD, stats, by-user, by-status
    - bookings.py:       cancel, pending, by mechanic
    - catalog.py:        vehicle search/makes/models, reviews by mechanic/booking
    - billing.py:        discount validate/apply/active, payout and invoice actions
    - support.py:        dispute and feedback responses, open lists, search
    - assistance.py:     active roadside requests
    - inventory.py:      product and part stock, categories, brands, search
    - feature_flags.py:  /api/feature-flags
    - emails.py:         /api/emails
"""

from typing import Dict, List

from fastapi import APIRouter

from clutch.routes import assistance, billing, bookings, catalog, emails, feature_flags, health, inventory, support
from clutch.routes.resources import build_resource_router
from clutch.services.resources import REGISTRY
from clutch.services.resources.inventory import PARTS, PRODUCTS

EXTRAS: Dict[str, APIRouter] = {
    "bookings": bookings.router,
    "vehicles": catalog.vehicle_router,
    "reviews": catalog.review_router,
    "discounts": billing.discount_router,
    "payouts": billing.payout_router,
    "invoices": billing.invoice_router,
    "disputes": support.dispute_router,
    "feedback": support.feedback_router,
    "roadside-assistance": assistance.roadside_router,
    PRODUCTS.name: inventory.build_inventory_router(PRODUCTS),
    PARTS.name: inventory.build_inventory_router(PARTS),
}


def api_routers() -> List[APIRouter]:
    """Every router the application mounts, in mounting order."""
    routers = [health.router, feature_flags.router, emails.router]
    routers.extend(build_resource_router(schema, EXTRAS.get(name)) for name, schema in REGISTRY.items())
    return routers
