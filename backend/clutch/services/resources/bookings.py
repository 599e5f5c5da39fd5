"""
Bookings: a customer's appointment with a mechanic for one of their vehicles.

Lifecycle:
    pending → confirmed → in_progress → completed
    pending | confirmed → cancelled   (POST /bookings/{id}/cancel)
Each transition stamps its own timestamp; completion also records the
actual cost (default 0) so revenue stats can sum it.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from clutch.auth import Caller
from clutch.exceptions import ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, utcnow
from clutch.services.filters import Eq, FilterSpec, SortKey, parse_id
from clutch.services.ownership import ensure_can_modify
from clutch.services.pagination import PagedResult
from clutch.services.resources.vehicles import MECHANICS, VEHICLES
from clutch.services.stats import StatsSpec, SumSpec

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("pending", "confirmed")


async def check_booking_references(engine: CrudEngine, data: Dict[str, Any], caller: Caller) -> None:
    """The mechanic must be active and the vehicle must belong to the caller."""
    mechanic = await engine.store.get(MECHANICS.collection, data["mechanicId"])
    if mechanic is None or mechanic.get("status") != "active":
        raise ValidationError("Selected mechanic is not available", code="MECHANIC_NOT_AVAILABLE")

    vehicle = await engine.store.get(VEHICLES.collection, data["vehicleId"])
    if vehicle is None or vehicle.get("ownerId") != caller.id:
        raise ValidationError(
            "Vehicle not found or does not belong to you",
            code="VEHICLE_NOT_FOUND",
        )


BOOKINGS = ResourceSchema(
    name="bookings",
    collection="bookings",
    noun="booking",
    plural="bookings",
    required=("mechanicId", "vehicleId", "serviceType", "bookingDate"),
    defaults={
        "preferredTime": "anytime",
        "description": "",
        "location": {},
        "estimatedCost": 0,
        "priority": "normal",
    },
    numbers=("estimatedCost", "actualCost"),
    dates=("bookingDate", "completionTime"),
    ids=("mechanicId", "vehicleId"),
    statuses=("pending", "confirmed", "in_progress", "completed", "cancelled"),
    status_timestamps={
        "confirmed": "confirmedAt",
        "in_progress": "startedAt",
        "completed": "completedAt",
        "cancelled": "cancelledAt",
    },
    status_defaults={"completed": {"actualCost": 0}},
    status_extras=("notes", "actualCost", "completionTime"),
    reference=("bookingReference", "BK"),
    filters=FilterSpec(
        exact=("status", "serviceType", "priority"),
        ids={"userId": "ownerId", "mechanicId": "mechanicId", "vehicleId": "vehicleId"},
        search=("bookingReference", "serviceType", "description"),
        ranges={"Cost": "estimatedCost"},
        date_field="bookingDate",
    ),
    stats=StatsSpec(
        total="totalBookings",
        counts={"completedBookings": (Eq("status", "completed"),)},
        group_counts={
            "bookingsByStatus": "status",
            "bookingsByServiceType": "serviceType",
        },
        sums={"totalRevenue": SumSpec("actualCost", where=(Eq("status", "completed"),))},
    ),
    delete_mode="soft",
    soft_delete={"status": "cancelled", "cancellationReason": "Deleted by user"},
    create_hook=check_booking_references,
)


async def cancel_booking(
    engine: CrudEngine,
    booking_id: str,
    reason: Optional[str],
    caller: Caller,
) -> Dict[str, Any]:
    """Cancels a pending or confirmed booking."""
    booking = await engine.load(booking_id)
    ensure_can_modify(booking, caller, "bookings", action="cancel")

    if booking.get("status") not in CANCELLABLE_STATUSES:
        raise ValidationError(
            f"Booking cannot be cancelled in its current status ({booking.get('status')})",
            code="INVALID_BOOKING_STATUS",
        )

    updated = await engine.write(
        booking,
        {
            "status": "cancelled",
            "cancellationReason": reason or "Cancelled by user",
            "cancelledAt": utcnow(),
            "cancelledBy": caller.id,
        },
        operation="CANCEL",
    )
    logger.info("Booking %s cancelled by %s", booking["id"], caller.id)
    return updated


async def list_pending(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    """Pending bookings, earliest appointment first (first come, first served)."""
    return await engine.list(
        params,
        caller,
        extra=(Eq("status", "pending"),),
        sort=(SortKey("bookingDate"), SortKey("createdAt")),
    )


async def list_for_mechanic(
    engine: CrudEngine, mechanic_id: str, params: Mapping[str, Any], caller: Caller
) -> PagedResult:
    return await engine.list(
        params,
        caller,
        extra=(Eq("mechanicId", parse_id(mechanic_id, "mechanicId")),),
        sort=(SortKey("bookingDate"),),
    )
