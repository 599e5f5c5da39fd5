"""
Vehicle-centred service requests: trade-ins and roadside assistance.

Trade-in requests must reference an existing vehicle. Roadside requests
may reference one; when they do, it has to exist too.
"""

import logging
from typing import Any, Dict, Mapping

from clutch.auth import Caller
from clutch.services.crud import CrudEngine, ResourceSchema
from clutch.services.filters import Eq, FilterSpec, In
from clutch.services.pagination import PagedResult
from clutch.services.resources.vehicles import require_vehicle
from clutch.services.stats import StatsSpec, SumSpec

logger = logging.getLogger(__name__)

ACTIVE_ROADSIDE_STATUSES = ("pending", "assigned", "in_progress")


async def check_trade_in_vehicle(engine: CrudEngine, data: Dict[str, Any], caller: Caller) -> None:
    await require_vehicle(engine, data["vehicleId"])


async def check_roadside_vehicle(engine: CrudEngine, data: Dict[str, Any], caller: Caller) -> None:
    if data.get("vehicleId"):
        await require_vehicle(engine, data["vehicleId"])


TRADE_INS = ResourceSchema(
    name="trade-ins",
    collection="trade_ins",
    noun="trade-in",
    plural="trade-ins",
    required=("vehicleId", "currentVehicleInfo", "desiredVehicleInfo"),
    defaults={
        "estimatedValue": 0,
        "additionalServices": [],
        "notes": "",
    },
    numbers=("estimatedValue", "finalValue"),
    ids=("vehicleId",),
    statuses=("pending", "evaluating", "approved", "rejected", "completed", "cancelled"),
    status_timestamps={
        "evaluating": "evaluatedAt",
        "approved": "approvedAt",
        "rejected": "rejectedAt",
        "completed": "completedAt",
        "cancelled": "cancelledAt",
    },
    status_extras=("notes", "finalValue", "estimatedValue"),
    filters=FilterSpec(
        exact=("status",),
        ids={"userId": "ownerId", "vehicleId": "vehicleId"},
        search=("notes",),
        ranges={"Value": "estimatedValue"},
    ),
    stats=StatsSpec(
        total="totalRequests",
        counts={"completedRequests": (Eq("status", "completed"),)},
        group_counts={"requestsByStatus": "status"},
        sums={
            "totalEstimatedValue": SumSpec("estimatedValue"),
            "totalFinalValue": SumSpec("finalValue", where=(Eq("status", "completed"),)),
        },
    ),
    read_policy="owner",
    create_hook=check_trade_in_vehicle,
)


ROADSIDE = ResourceSchema(
    name="roadside-assistance",
    collection="roadside_requests",
    noun="roadside request",
    plural="roadside requests",
    required=("type", "location"),
    defaults={
        "vehicleId": None,
        "description": "",
        "emergencyContact": {},
        "notes": "",
    },
    dates=("estimatedArrival", "actualArrival"),
    ids=("vehicleId", "assignedMechanicId"),
    statuses=("pending", "assigned", "in_progress", "completed", "cancelled"),
    status_timestamps={
        "assigned": "assignedAt",
        "in_progress": "startedAt",
        "completed": "completedAt",
        "cancelled": "cancelledAt",
    },
    status_extras=("notes", "assignedMechanicId", "estimatedArrival", "actualArrival", "completionNotes"),
    filters=FilterSpec(
        exact=("status", "type"),
        ids={"userId": "ownerId", "vehicleId": "vehicleId", "mechanicId": "assignedMechanicId"},
        search=("description", "notes"),
    ),
    stats=StatsSpec(
        total="totalRequests",
        counts={"completedRequests": (Eq("status", "completed"),)},
        group_counts={"requestsByStatus": "status", "requestsByType": "type"},
    ),
    read_policy="owner",
    create_hook=check_roadside_vehicle,
)


async def list_active_roadside(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    """Requests that still need a mechanic on the road, newest first."""
    return await engine.list(params, caller, extra=(In("status", ACTIVE_ROADSIDE_STATUSES),))
