"""
Vehicles, fleet vehicles and mechanics.

Mechanics carry the rating aggregates maintained by the reviews module and
must be `active` to accept bookings.
"""

from typing import Any, Dict, List, Mapping, Optional

from clutch.auth import Caller
from clutch.exceptions import NotFoundError, ValidationError
from clutch.services.crud import CrudEngine, ResourceSchema, store_errors
from clutch.services.filters import Contains, Eq, Filter, FilterSpec, SortKey, parse_id
from clutch.services.pagination import PagedResult
from clutch.services.stats import StatsSpec, SumSpec

VEHICLE_STATUSES = ("active", "inactive", "sold")

VEHICLES = ResourceSchema(
    name="vehicles",
    collection="vehicles",
    noun="vehicle",
    plural="vehicles",
    required=("make", "model", "year"),
    defaults={
        "vin": "",
        "licensePlate": "",
        "color": "",
        "mileage": 0,
        "fuelType": "gasoline",
        "transmission": "automatic",
        "engineSize": "",
        "description": "",
        "images": [],
        "documents": [],
    },
    integers=("year", "mileage"),
    uppercase=("vin",),
    initial_status="active",
    statuses=VEHICLE_STATUSES,
    unique={"vin": "VIN_ALREADY_EXISTS"},
    filters=FilterSpec(
        exact=("status", "fuelType", "transmission"),
        numbers=("year",),
        ids={"userId": "ownerId"},
        like=("make", "model"),
        search=("make", "model", "vin", "licensePlate"),
        ranges={"Year": "year", "Mileage": "mileage"},
    ),
    stats=StatsSpec(
        total="totalVehicles",
        group_counts={
            "vehiclesByMake": "make",
            "vehiclesByFuelType": "fuelType",
            "vehiclesByTransmission": "transmission",
        },
        averages={"averageMileage": "mileage"},
        group_limit=10,
    ),
    delete_mode="hard",
)

FLEET = ResourceSchema(
    name="fleet",
    collection="fleet_vehicles",
    noun="fleet vehicle",
    plural="fleet vehicles",
    required=("make", "model", "year", "licensePlate"),
    defaults={"mileage": 0, "fuelType": "gasoline", "assignedDriverId": None, "maintenance": []},
    integers=("year", "mileage"),
    ids=("assignedDriverId",),
    uppercase=("licensePlate",),
    initial_status="active",
    statuses=("active", "maintenance", "out_of_service", "retired"),
    status_timestamps={"maintenance": "maintenanceStartedAt", "retired": "retiredAt"},
    status_extras=("notes", "mileage"),
    unique={"licensePlate": "LICENSE_PLATE_ALREADY_EXISTS"},
    filters=FilterSpec(
        exact=("status", "fuelType"),
        ids={"userId": "ownerId", "driverId": "assignedDriverId"},
        search=("make", "model", "licensePlate"),
    ),
    stats=StatsSpec(
        total="totalFleetVehicles",
        group_counts={"fleetByStatus": "status", "fleetByMake": "make"},
        sums={"totalMileage": SumSpec("mileage")},
    ),
)

MECHANICS = ResourceSchema(
    name="mechanics",
    collection="mechanics",
    noun="mechanic",
    plural="mechanics",
    required=("name", "specialization"),
    defaults={
        "phone": "",
        "email": "",
        "skills": [],
        "hourlyRate": 0,
        "averageRating": 0,
        "totalReviews": 0,
    },
    numbers=("hourlyRate",),
    initial_status="active",
    statuses=("active", "inactive", "suspended"),
    filters=FilterSpec(
        exact=("status", "specialization"),
        ids={"userId": "ownerId"},
        search=("name", "specialization"),
        ranges={"Rating": "averageRating"},
    ),
    stats=StatsSpec(
        total="totalMechanics",
        counts={"activeMechanics": (Eq("status", "active"),)},
        group_counts={"mechanicsBySpecialization": "specialization", "mechanicsByStatus": "status"},
        averages={"averageRating": "averageRating"},
    ),
)


async def search_vehicles(engine: CrudEngine, params: Mapping[str, Any], caller: Caller) -> PagedResult:
    """Case-insensitive search over make, model, VIN and plate; newest models first."""
    if not str(params.get("q") or "").strip():
        raise ValidationError("Search query is required", code="MISSING_QUERY", field="q")
    return await engine.list(
        params,
        caller,
        sort=(SortKey("year", descending=True, numeric=True), SortKey("make"), SortKey("model")),
    )


async def list_makes(engine: CrudEngine) -> List[Any]:
    with store_errors("GET_VEHICLE_MAKES_FAILED", "Failed to retrieve vehicle makes"):
        return await engine.store.distinct(engine.schema.collection, Filter(), "make")


async def list_models(engine: CrudEngine, make: Optional[str] = None) -> List[Any]:
    filter = Filter()
    if make:
        filter = filter.and_(Contains("make", make))
    with store_errors("GET_VEHICLE_MODELS_FAILED", "Failed to retrieve vehicle models"):
        return await engine.store.distinct(engine.schema.collection, filter, "model")


async def require_vehicle(engine: CrudEngine, vehicle_id: Any, owner: Optional[Caller] = None) -> Dict[str, Any]:
    """
    Loads a referenced vehicle for another resource's create hook.

    With `owner`, the vehicle must also belong to that caller.
    """
    vehicle = await engine.store.get(VEHICLES.collection, parse_id(vehicle_id, "vehicleId"))
    if vehicle is None or (owner is not None and vehicle.get("ownerId") != owner.id):
        raise NotFoundError("vehicle", str(vehicle_id), code="VEHICLE_NOT_FOUND", message="Vehicle not found")
    return vehicle
