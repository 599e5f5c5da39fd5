"""
Clutch Backend — Feature Flag Tests
=====================================

What:  InMemoryFeatureFlagService evaluation and the /api/feature-flags routes.

What we test:
    ✅ Evaluation order: disabled, region, group, rollout bucket
    ✅ Bucketing is deterministic and monotonic in the percentage
    ✅ enable raises a 0% rollout to 100%; rollback zeroes and annotates
    ✅ Bulk update reports per-flag success; export → import round trip
    ✅ API: caller endpoints for anyone, management for cto / admin only
"""

import uuid

import pytest

from clutch.auth import Caller
from clutch.exceptions import NotFoundError, ValidationError
from clutch.services.feature_flags import InMemoryFeatureFlagService, bucket

USERS = [str(uuid.UUID(int=n)) for n in range(1, 201)]


class TestEvaluation:
    def test_unknown_and_disabled_flags_are_off(self, flags):
        flags.set("new_checkout", {"enabled": False, "rolloutPercentage": 100})
        assert flags.is_enabled("missing", USERS[0]) is False
        assert flags.is_enabled("new_checkout", USERS[0]) is False

    def test_full_rollout_applies_to_anonymous_callers(self, flags):
        flags.set("banner", {"enabled": True, "rolloutPercentage": 100})
        assert flags.is_enabled("banner") is True

    def test_partial_rollout_needs_a_user(self, flags):
        flags.set("beta", {"enabled": True, "rolloutPercentage": 99})
        assert flags.is_enabled("beta") is False

    def test_region_targeting(self, flags):
        flags.set("eu_only", {"enabled": True, "rolloutPercentage": 100, "regions": ["eu"]})
        assert flags.is_enabled("eu_only", USERS[0], "eu") is True
        assert flags.is_enabled("eu_only", USERS[0], "us") is False
        assert flags.is_enabled("eu_only", USERS[0]) is False

    def test_group_targeting(self, flags):
        flags.set("staff_tools", {"enabled": True, "rolloutPercentage": 100, "userGroups": ["staff"]})
        flags.add_user_to_group(USERS[0], "staff")
        assert flags.is_enabled("staff_tools", USERS[0]) is True
        assert flags.is_enabled("staff_tools", USERS[1]) is False

        flags.remove_user_from_group(USERS[0], "staff")
        assert flags.is_enabled("staff_tools", USERS[0]) is False
        assert flags.groups() == []

    def test_rollout_follows_bucket(self, flags):
        flags.set("half", {"enabled": True, "rolloutPercentage": 50})
        for user_id in USERS:
            assert flags.is_enabled("half", user_id) is (bucket("half", user_id) < 50)

    def test_raising_percentage_only_adds_users(self, flags):
        flags.set("grow", {"enabled": True, "rolloutPercentage": 20})
        before = {u for u in USERS if flags.is_enabled("grow", u)}
        flags.set_rollout("grow", 60)
        after = {u for u in USERS if flags.is_enabled("grow", u)}
        assert before <= after
        assert len(after) > len(before)

    def test_bucket_is_stable(self):
        assert bucket("grow", USERS[7]) == bucket("grow", USERS[7])
        assert 0 <= bucket("grow", USERS[7]) < 100


class TestManagement:
    def test_defaults_and_replace_keeps_created_at(self, flags):
        first = flags.set("dark_mode", {})
        assert first["enabled"] is False
        assert first["rolloutPercentage"] == 0
        assert first["userGroups"] == ["all"]
        assert first["regions"] == ["all"]

        second = flags.set("dark_mode", {"enabled": True}, updated_by="ops")
        assert second["createdAt"] == first["createdAt"]
        assert second["updatedBy"] == "ops"

    def test_enable_raises_zero_rollout(self, flags):
        flags.set("dark_mode", {})
        assert flags.enable("dark_mode")["rolloutPercentage"] == 100

        flags.set_rollout("dark_mode", 25)
        flags.disable("dark_mode")
        assert flags.enable("dark_mode")["rolloutPercentage"] == 25

    @pytest.mark.parametrize("value", [-1, 100.5, "50", None, True])
    def test_invalid_rollout(self, flags, value):
        flags.set("dark_mode", {})
        with pytest.raises(ValidationError) as exc_info:
            flags.set_rollout("dark_mode", value)
        assert exc_info.value.code == "INVALID_ROLLOUT_PERCENTAGE"

    def test_emergency_rollback(self, flags):
        flags.set("risky", {"enabled": True, "rolloutPercentage": 80})
        flag = flags.emergency_rollback("risky", "Error spike", updated_by="oncall")
        assert flag["enabled"] is False
        assert flag["rolloutPercentage"] == 0
        assert flag["rollbackReason"] == "Error spike"
        assert flag["rolledBackAt"]

    def test_unknown_flag(self, flags):
        with pytest.raises(NotFoundError) as exc_info:
            flags.update("ghost", {"enabled": True})
        assert exc_info.value.code == "FEATURE_NOT_FOUND"

    def test_bulk_update_reports_each_flag(self, flags):
        flags.set("a", {})
        flags.set("b", {})
        results = flags.bulk_update(
            {"a": {"enabled": True}, "b": {"rolloutPercentage": 500}, "ghost": {"enabled": True}}
        )
        assert [(r["name"], r["success"]) for r in results] == [("a", True), ("b", False), ("ghost", False)]
        assert results[1]["error"] == "INVALID_ROLLOUT_PERCENTAGE"
        assert results[2]["error"] == "FEATURE_NOT_FOUND"
        assert flags.get("a")["enabled"] is True

    def test_export_import_round_trip(self, flags):
        flags.set("a", {"enabled": True, "rolloutPercentage": 40, "regions": ["eu"]})
        flags.add_user_to_group(USERS[0], "beta")
        exported = flags.export_config()

        copy = InMemoryFeatureFlagService()
        assert copy.import_config(exported) == 1
        assert copy.get("a")["regions"] == ["eu"]
        assert copy.get("a")["rolloutPercentage"] == 40
        assert copy.groups() == [{"name": "beta", "userCount": 1, "users": [USERS[0]]}]

    def test_analytics_counts_evaluations(self, flags):
        flags.set("banner", {"enabled": True, "rolloutPercentage": 100, "regions": ["eu"]})
        flags.is_enabled("banner", USERS[0], "eu")
        flags.is_enabled("banner", USERS[0], "us")

        analytics = flags.analytics("banner")
        assert analytics["evaluations"] == 2
        assert analytics["hits"] == 1
        assert analytics["hitRate"] == 50.0


class TestFeatureFlagApi:
    @pytest.mark.asyncio
    async def test_management_requires_role(self, client, token, user):
        response = await client.get("/api/feature-flags", headers=token(user))
        assert response.status_code == 403
        assert response.json()["error"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["cto", "admin"])
    async def test_create_and_list(self, client, token, role):
        manager = Caller(id=str(uuid.uuid4()), role=role)
        created = await client.post(
            "/api/feature-flags",
            json={"name": "new_checkout", "enabled": True, "rolloutPercentage": 100},
            headers=token(manager),
        )
        assert created.status_code == 201
        assert created.json()["message"] == "Feature 'new_checkout' saved successfully"

        listed = (await client.get("/api/feature-flags", headers=token(manager))).json()["data"]
        assert [f["name"] for f in listed] == ["new_checkout"]

    @pytest.mark.asyncio
    async def test_create_requires_name(self, client, token, admin):
        response = await client.post("/api/feature-flags", json={"enabled": True}, headers=token(admin))
        assert response.status_code == 400
        assert response.json()["error"] == "MISSING_REQUIRED_FIELDS"

    @pytest.mark.asyncio
    async def test_caller_view_uses_region_header(self, client, token, user, flags):
        flags.set("eu_banner", {"enabled": True, "rolloutPercentage": 100, "regions": ["eu"]})
        flags.set("everywhere", {"enabled": True, "rolloutPercentage": 100})

        eu = await client.get("/api/feature-flags/check/eu_banner", headers={**token(user), "X-User-Region": "eu"})
        assert eu.json()["data"] == {"name": "eu_banner", "enabled": True}

        us = (await client.get("/api/feature-flags/status", headers={**token(user), "X-User-Region": "us"})).json()
        assert us["data"] == {"enabledFeatures": 1, "totalFeatures": 2, "enabledFeaturesList": ["everywhere"]}

        enabled = (await client.get("/api/feature-flags/enabled", headers=token(user))).json()["data"]
        assert [f["name"] for f in enabled] == ["everywhere"]

    @pytest.mark.asyncio
    async def test_rollout_and_rollback(self, client, token, admin, flags):
        flags.set("beta", {"enabled": True})

        bad = await client.post("/api/feature-flags/beta/rollout", json={"percentage": 150}, headers=token(admin))
        assert bad.status_code == 400
        assert bad.json()["error"] == "INVALID_ROLLOUT_PERCENTAGE"

        applied = await client.post("/api/feature-flags/beta/rollout", json={"percentage": 30}, headers=token(admin))
        assert applied.json()["message"] == "Feature 'beta' rolled out to 30.0%"

        rolled = await client.post("/api/feature-flags/beta/rollback", json={"reason": "5xx"}, headers=token(admin))
        assert rolled.json()["data"]["enabled"] is False
        assert rolled.json()["data"]["rollbackReason"] == "5xx"

    @pytest.mark.asyncio
    async def test_unknown_flag_is_404(self, client, token, admin):
        response = await client.post("/api/feature-flags/ghost/enable", headers=token(admin))
        assert response.status_code == 404
        assert response.json()["error"] == "FEATURE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_groups(self, client, token, admin, user):
        added = await client.post(
            "/api/feature-flags/groups/add", json={"userId": user.id, "group": "beta"}, headers=token(admin)
        )
        assert added.status_code == 200
        groups = (await client.get("/api/feature-flags/groups", headers=token(admin))).json()["data"]
        assert groups == [{"name": "beta", "userCount": 1, "users": [user.id]}]

        incomplete = await client.post("/api/feature-flags/groups/add", json={"group": "beta"}, headers=token(admin))
        assert incomplete.json()["error"] == "MISSING_REQUIRED_FIELDS"

    @pytest.mark.asyncio
    async def test_bulk_update_and_import(self, client, token, admin, flags):
        empty = await client.post("/api/feature-flags/bulk-update", json={"updates": {}}, headers=token(admin))
        assert empty.json()["error"] == "MISSING_REQUIRED_FIELDS"

        imported = await client.post(
            "/api/feature-flags/import/configuration",
            json={"flags": {"a": {"enabled": True}, "b": {}}, "userGroups": {"qa": ["u-1"]}},
            headers=token(admin),
        )
        assert imported.json()["data"] == {"imported": 2}

        bulk = await client.post(
            "/api/feature-flags/bulk-update",
            json={"updates": {"a": {"enabled": False}, "zzz": {"enabled": True}}},
            headers=token(admin),
        )
        assert [r["success"] for r in bulk.json()["data"]] == [True, False]

        exported = (await client.get("/api/feature-flags/export/configuration", headers=token(admin))).json()["data"]
        assert sorted(exported["flags"]) == ["a", "b"]
        assert exported["userGroups"] == {"qa": ["u-1"]}
