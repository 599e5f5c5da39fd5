"""
Clutch Backend — Feature Flag Routes
======================================

What:  HTTP surface of the FeatureFlagService.
Who:   Mutations, the full listing, analytics and groups need role admin or
       cto. Any authenticated caller may ask which flags apply to them.

    GET    /api/feature-flags                       all flags            (cto)
    POST   /api/feature-flags                       create / replace     (cto)
    GET    /api/feature-flags/enabled               flags on for caller
    GET    /api/feature-flags/check/{name}          one flag for caller
    GET    /api/feature-flags/status                counts for caller
    GET    /api/feature-flags/groups                group memberships    (cto)
    POST   /api/feature-flags/groups/add            {userId, group}      (cto)
    POST   /api/feature-flags/groups/remove         {userId, group}      (cto)
    POST   /api/feature-flags/bulk-update           {updates: {...}}     (cto)
    GET    /api/feature-flags/export/configuration                       (cto)
    POST   /api/feature-flags/import/configuration                       (cto)
    GET    /api/feature-flags/{name}                                     (cto)
    PUT    /api/feature-flags/{name}                partial update       (cto)
    POST   /api/feature-flags/{name}/enable|disable|rollout|rollback     (cto)
    GET    /api/feature-flags/{name}/analytics                           (cto)

The caller's region comes from the X-User-Region header.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, status

from clutch.auth import Caller, get_caller, require_roles
from clutch.dependencies import get_feature_flags
from clutch.exceptions import ValidationError
from clutch.routes.resources import ENVELOPE
from clutch.schemas.envelope import ok
from clutch.schemas.requests import (
    BulkFlagUpdate,
    FlagDefinition,
    FlagImport,
    FlagUpdate,
    GroupMembership,
    RollbackRequest,
    RolloutRequest,
)
from clutch.services.feature_flags import FeatureFlagService

router = APIRouter(prefix="/api/feature-flags", tags=["Feature Flags"])

flag_admin = require_roles("cto")


def _changes(body: FlagUpdate) -> dict:
    return body.model_dump(exclude_none=True, exclude={"name"})


def _membership(body: GroupMembership) -> GroupMembership:
    if not body.userId or not body.group:
        raise ValidationError("User ID and group are required", code="MISSING_REQUIRED_FIELDS")
    return body


# ── Caller-facing ─────────────────────────────────────────────────────────
@router.get("/enabled", summary="Flags enabled for the caller", **ENVELOPE)
async def enabled_flags(
    x_user_region: Optional[str] = Header(None),
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(get_caller),
):
    return ok(flags.enabled_for(caller.id, x_user_region))


@router.get("/check/{name}", summary="Is one flag enabled for the caller", **ENVELOPE)
async def check_flag(
    name: str,
    x_user_region: Optional[str] = Header(None),
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(get_caller),
):
    return ok({"name": name, "enabled": flags.is_enabled(name, caller.id, x_user_region)})


@router.get("/status", summary="Flag counts for the caller", **ENVELOPE)
async def flag_status(
    x_user_region: Optional[str] = Header(None),
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(get_caller),
):
    return ok(flags.status(caller.id, x_user_region))


# ── Administration ────────────────────────────────────────────────────────
@router.get("", summary="List all flags", **ENVELOPE)
async def list_flags(
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.list_all())


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create or replace a flag", **ENVELOPE)
async def create_flag(
    body: FlagDefinition,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    flag = flags.set(body.name, _changes(body), updated_by=caller.id)
    return ok(flag, message=f"Feature '{flag['name']}' saved successfully")


@router.get("/groups", summary="User groups", **ENVELOPE)
async def list_groups(
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.groups())


@router.post("/groups/add", summary="Add a user to a group", **ENVELOPE)
async def add_to_group(
    body: GroupMembership,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    body = _membership(body)
    flags.add_user_to_group(body.userId, body.group)
    return ok({"userId": body.userId, "group": body.group}, message=f"User added to group '{body.group}'")


@router.post("/groups/remove", summary="Remove a user from a group", **ENVELOPE)
async def remove_from_group(
    body: GroupMembership,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    body = _membership(body)
    flags.remove_user_from_group(body.userId, body.group)
    return ok({"userId": body.userId, "group": body.group}, message=f"User removed from group '{body.group}'")


@router.post("/bulk-update", summary="Update several flags", **ENVELOPE)
async def bulk_update(
    body: BulkFlagUpdate,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    if not body.updates:
        raise ValidationError("Updates object is required", code="MISSING_REQUIRED_FIELDS", field="updates")
    results = flags.bulk_update({name: _changes(u) for name, u in body.updates.items()}, updated_by=caller.id)
    return ok(results, message="Bulk update completed")


@router.get("/export/configuration", summary="Export flags and groups", **ENVELOPE)
async def export_configuration(
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.export_config())


@router.post("/import/configuration", summary="Import flags and groups", **ENVELOPE)
async def import_configuration(
    body: FlagImport,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    config = {
        "flags": {name: _changes(f) for name, f in body.flags.items()},
        "userGroups": body.userGroups,
    }
    count = flags.import_config(config, updated_by=caller.id)
    return ok({"imported": count}, message="Configuration imported successfully")


@router.get("/{name}", summary="Get one flag", **ENVELOPE)
async def get_flag(
    name: str,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.get(name))


@router.put("/{name}", summary="Update a flag", **ENVELOPE)
async def update_flag(
    name: str,
    body: FlagUpdate,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.update(name, _changes(body), updated_by=caller.id), message=f"Feature '{name}' updated")


@router.post("/{name}/enable", summary="Enable a flag", **ENVELOPE)
async def enable_flag(
    name: str,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.enable(name, updated_by=caller.id), message=f"Feature '{name}' enabled")


@router.post("/{name}/disable", summary="Disable a flag", **ENVELOPE)
async def disable_flag(
    name: str,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.disable(name, updated_by=caller.id), message=f"Feature '{name}' disabled")


@router.post("/{name}/rollout", summary="Set a flag's rollout percentage", **ENVELOPE)
async def set_rollout(
    name: str,
    body: RolloutRequest,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    flag = flags.set_rollout(name, body.percentage, updated_by=caller.id)
    return ok(flag, message=f"Feature '{name}' rolled out to {flag['rolloutPercentage']}%")


@router.post("/{name}/rollback", summary="Emergency rollback", **ENVELOPE)
async def rollback_flag(
    name: str,
    body: RollbackRequest = RollbackRequest(),
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.emergency_rollback(name, body.reason, updated_by=caller.id), message=f"Feature '{name}' rolled back")


@router.get("/{name}/analytics", summary="Evaluation counts for a flag", **ENVELOPE)
async def flag_analytics(
    name: str,
    flags: FeatureFlagService = Depends(get_feature_flags),
    caller: Caller = Depends(flag_admin),
):
    return ok(flags.analytics(name))
