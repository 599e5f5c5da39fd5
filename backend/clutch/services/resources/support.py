"""
Customer support: disputes and feedback.

Both are conversation-like records: participants append responses to a
list on the record instead of creating separate resources. Both are
private to their creator (and admins).
"""

import logging
import uuid
from typing import Any, Dict, Mapping, Optional, Sequence

from clutch.auth import Caller
from clutch.exceptions import ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, utcnow
from clutch.services.filters import Eq, FilterSpec, In, SortKey
from clutch.services.ownership import ensure_can_modify
from clutch.services.pagination import PagedResult
from clutch.services.stats import StatsSpec, SumSpec

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("open", "under_review")


DISPUTES = ResourceSchema(
    name="disputes",
    collection="disputes",
    noun="dispute",
    plural="disputes",
    required=("type", "title", "description"),
    defaults={
        "bookingId": None,
        "amount": 0,
        "evidence": "",
        "attachments": [],
        "responses": [],
    },
    numbers=("amount",),
    ids=("bookingId",),
    initial_status="open",
    statuses=("open", "under_review", "resolved", "closed", "escalated"),
    status_timestamps={
        "under_review": "reviewStartedAt",
        "resolved": "resolvedAt",
        "closed": "closedAt",
        "escalated": "escalatedAt",
    },
    status_extras=("notes", "resolution"),
    filters=FilterSpec(
        exact=("status", "type"),
        ids={"userId": "ownerId", "bookingId": "bookingId"},
        search=("title", "description"),
        ranges={"Amount": "amount"},
    ),
    stats=StatsSpec(
        total="totalDisputes",
        counts={"resolvedDisputes": (Eq("status", "resolved"),)},
        group_counts={"disputesByStatus": "status", "disputesByType": "type"},
        sums={"totalAmount": SumSpec("amount")},
    ),
    read_policy="owner",
)


FEEDBACK = ResourceSchema(
    name="feedback",
    collection="feedback",
    noun="feedback",
    plural="feedback",
    required=("type", "subject", "message"),
    defaults={
        "category": "general",
        "priority": "medium",
        "rating": None,
        "attachments": [],
        "responses": [],
    },
    integers=("rating",),
    initial_status="open",
    statuses=("open", "in_progress", "resolved", "closed"),
    status_timestamps={
        "in_progress": "inProgressAt",
        "resolved": "resolvedAt",
        "closed": "closedAt",
    },
    reference=("feedbackReference", "FB"),
    filters=FilterSpec(
        exact=("status", "type", "category", "priority"),
        ids={"userId": "ownerId"},
        search=("subject", "message", "feedbackReference"),
    ),
    stats=StatsSpec(
        total="totalFeedback",
        counts={"resolvedFeedback": (Eq("status", "resolved"),)},
        group_counts={
            "feedbackByStatus": "status",
            "feedbackByType": "type",
            "feedbackByPriority": "priority",
        },
        averages={"averageRating": "rating"},
    ),
    read_policy="owner",
)


async def add_dispute_response(
    engine: CrudEngine,
    dispute_id: str,
    message: Optional[str],
    attachments: Optional[Sequence[Any]],
    caller: Caller,
) -> Dict[str, Any]:
    """Appends a message to the dispute; the first one moves it under review."""
    if not str(message or "").strip():
        raise ValidationError("Response message is required", code="MISSING_MESSAGE", field="message")

    dispute = await engine.load(dispute_id)
    ensure_can_modify(dispute, caller, "disputes", action="respond to")

    response = {
        "id": str(uuid.uuid4()),
        "userId": caller.id,
        "message": str(message).strip(),
        "attachments": list(attachments or []),
        "createdAt": utcnow(),
    }
    changes: Dict[str, Any] = {"responses": list(dispute.get("responses") or []) + [response]}
    if dispute.get("status") == "open":
        changes["status"] = "under_review"
        changes["reviewStartedAt"] = utcnow()

    updated = await engine.write(dispute, changes, operation="ADD_RESPONSE")
    logger.info("Response added to dispute %s by %s", dispute["id"], caller.id)
    return updated


async def list_open_disputes(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    """Disputes still awaiting a resolution, oldest first."""
    return await engine.list(
        params,
        caller,
        extra=(In("status", OPEN_STATUSES),),
        sort=(SortKey("createdAt"),),
    )


async def add_feedback_response(
    engine: CrudEngine,
    feedback_id: str,
    text: Optional[str],
    caller: Caller,
) -> Dict[str, Any]:
    if not str(text or "").strip():
        raise ValidationError("Response is required", code="MISSING_RESPONSE", field="response")

    feedback = await engine.load(feedback_id)
    ensure_can_modify(feedback, caller, "feedback", action="respond to")

    response = {
        "id": str(uuid.uuid4()),
        "userId": caller.id,
        "response": str(text).strip(),
        "isAdminResponse": caller.is_admin,
        "createdAt": utcnow(),
    }
    return await engine.write(
        feedback,
        {"responses": list(feedback.get("responses") or []) + [response]},
        operation="ADD_RESPONSE",
    )


async def list_open_feedback(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    return await engine.list(
        params,
        caller,
        extra=(In("status", ("open", "in_progress")),),
        sort=(SortKey("createdAt"),),
    )


async def search_feedback(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    if not str(params.get("q") or "").strip():
        raise ValidationError("Search query is required", code="MISSING_QUERY", field="q")
    return await engine.list(params, caller)
