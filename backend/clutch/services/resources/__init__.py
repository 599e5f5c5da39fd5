"""
Resource catalogue: one ResourceSchema per `/api/<name>` resource.

REGISTRY maps the URL segment to its schema; the route layer mounts the
generic CRUD routes for every entry.
"""

from typing import Dict

from clutch.services.crud import ResourceSchema
from clutch.services.resources.assistance import ROADSIDE, TRADE_INS
from clutch.services.resources.bookings import BOOKINGS
from clutch.services.resources.discounts import DISCOUNTS
from clutch.services.resources.inventory import PARTS, PRODUCTS
from clutch.services.resources.invoices import INVOICES
from clutch.services.resources.payouts import PAYOUTS
from clutch.services.resources.reviews import REVIEWS
from clutch.services.resources.support import DISPUTES, FEEDBACK
from clutch.services.resources.vehicles import FLEET, MECHANICS, VEHICLES

REGISTRY: Dict[str, ResourceSchema] = {
    schema.name: schema
    for schema in (
        BOOKINGS,
        VEHICLES,
        MECHANICS,
        PAYOUTS,
        INVOICES,
        DISPUTES,
        FEEDBACK,
        TRADE_INS,
        ROADSIDE,
        PRODUCTS,
        PARTS,
        REVIEWS,
        DISCOUNTS,
        FLEET,
    )
}

__all__ = ["REGISTRY"]
