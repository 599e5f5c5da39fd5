"""
Reviews of completed bookings, and the mechanic rating aggregate they feed.

Every create, update or delete of a review recomputes the reviewed
mechanic's `averageRating` (one decimal) and `totalReviews` over that
mechanic's active reviews.
"""

import logging
from typing import Any, Dict, Mapping

from clutch.auth import Caller
from clutch.exceptions import ConflictError, ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, store_errors
from clutch.services.filters import Eq, Filter, FilterSpec, parse_id
from clutch.services.pagination import PagedResult
from clutch.services.resources.vehicles import MECHANICS
from clutch.services.stats import StatsSpec
from clutch.services.store_base import Record

logger = logging.getLogger(__name__)

# Set once at creation; a review cannot be moved to another booking or mechanic
FIXED_FIELDS = ("bookingId", "mechanicId")


def _check_rating(value: Any) -> None:
    if not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError("Rating must be between 1 and 5", code="INVALID_RATING", field="rating")


async def check_new_review(engine: CrudEngine, data: Dict[str, Any], caller: Caller) -> None:
    """Valid rating, and at most one review per booking per user."""
    _check_rating(data.get("rating"))
    existing = await engine.store.find_one(
        engine.schema.collection,
        Filter((Eq("bookingId", data["bookingId"]), Eq("ownerId", caller.id))),
    )
    if existing is not None:
        raise ConflictError("Review already exists for this booking", code="REVIEW_ALREADY_EXISTS")


async def check_review_changes(
    engine: CrudEngine, record: Record, changes: Dict[str, Any], caller: Caller
) -> None:
    for name in FIXED_FIELDS:
        changes.pop(name, None)
    if "rating" in changes:
        _check_rating(changes["rating"])


async def refresh_mechanic_rating(engine: CrudEngine, review: Record, action: str) -> None:
    """Recomputes the reviewed mechanic's rating aggregates."""
    mechanic_id = review.get("mechanicId")
    if not mechanic_id:
        return
    scope = Filter((Eq("mechanicId", mechanic_id), Eq("status", "active")))

    with store_errors("UPDATE_MECHANIC_RATING_FAILED", "Failed to update mechanic rating"):
        mechanic = await engine.store.get(MECHANICS.collection, mechanic_id)
        if mechanic is None:
            logger.warning("Review %s references unknown mechanic %s", review.get("id"), mechanic_id)
            return
        average = await engine.store.average(engine.schema.collection, scope, "rating")
        total = await engine.store.count(engine.schema.collection, scope)

    await CrudEngine(MECHANICS, engine.store).write(
        mechanic,
        {"averageRating": round(average, 1) if average is not None else 0, "totalReviews": total},
        operation="UPDATE_RATING",
    )
    logger.debug("Mechanic %s rating refreshed after review %s", mechanic_id, action)


REVIEWS = ResourceSchema(
    name="reviews",
    collection="reviews",
    noun="review",
    plural="reviews",
    required=("bookingId", "mechanicId", "rating"),
    defaults={"serviceType": "general", "comment": "", "aspects": {}},
    integers=("rating",),
    ids=("bookingId", "mechanicId"),
    initial_status="active",
    statuses=("active", "hidden", "flagged"),
    status_timestamps={"hidden": "hiddenAt", "flagged": "flaggedAt"},
    filters=FilterSpec(
        exact=("status", "serviceType"),
        numbers=("rating",),
        ids={"userId": "ownerId", "mechanicId": "mechanicId", "bookingId": "bookingId"},
        search=("comment",),
        ranges={"Rating": "rating"},
    ),
    stats=StatsSpec(
        total="totalReviews",
        group_counts={"reviewsByRating": "rating", "reviewsByServiceType": "serviceType"},
        averages={"averageRating": "rating"},
    ),
    create_hook=check_new_review,
    update_hook=check_review_changes,
    after_write=refresh_mechanic_rating,
)


async def list_for_mechanic(
    engine: CrudEngine, mechanic_id: str, params: Mapping[str, Any], caller: Caller
) -> PagedResult:
    """A mechanic's visible reviews, newest first."""
    return await engine.list(
        params,
        caller,
        extra=(Eq("mechanicId", parse_id(mechanic_id, "mechanicId")), Eq("status", "active")),
    )


async def list_for_booking(
    engine: CrudEngine, booking_id: str, params: Mapping[str, Any], caller: Caller
) -> PagedResult:
    return await engine.list(
        params,
        caller,
        extra=(Eq("bookingId", parse_id(booking_id, "bookingId")),),
    )
