"""
Clutch Backend — Feature Flag Service
=======================================

What:  Named on/off switches with percentage rollout, user-group and region
       targeting, used by clients to gate unfinished features.
Why:   Behind an abstract interface so the in-process implementation can be
       swapped for a shared one (Redis, a flag vendor) without touching routes.
How:   InMemoryFeatureFlagService keeps flags and groups in dicts owned by
       the instance. The app holds one instance on app.state; tests build
       their own.
Who:   Used by the /api/feature-flags routes.

Evaluation order for is_enabled(name, user_id, region):
    1. unknown or disabled flag            → False
    2. region not targeted (unless "all")  → False
    3. user in none of the flag's groups
       (unless userGroups contains "all")  → False
    4. bucket(name, user) < rolloutPercentage
       where bucket = sha256("<name>:<user>") mod 100

Bucketing is deterministic: a user stays in or out of a rollout across
requests and processes, and raising the percentage only ever adds users.
"""

import copy
import hashlib
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Set

from clutch.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALL = "all"
FLAG_FIELDS = ("enabled", "rolloutPercentage", "userGroups", "regions", "description")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def bucket(name: str, user_id: str) -> int:
    """Stable 0..99 bucket for a (flag, user) pair."""
    digest = hashlib.sha256(f"{name}:{user_id}".encode("utf-8")).hexdigest()
    return int(digest, 16) % 100


def _check_percentage(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
        raise ValidationError(
            "Rollout percentage must be between 0 and 100",
            code="INVALID_ROLLOUT_PERCENTAGE",
            field="rolloutPercentage",
        )
    return value


class FeatureFlagService(ABC):
    """Abstract flag store and evaluator."""

    @abstractmethod
    def get(self, name: str) -> Dict[str, Any]:
        """Returns the flag or raises 404 FEATURE_NOT_FOUND."""
        ...

    @abstractmethod
    def set(self, name: str, definition: Mapping[str, Any], updated_by: Optional[str] = None) -> Dict[str, Any]:
        """Creates or replaces a flag; missing members take their defaults."""
        ...

    @abstractmethod
    def update(self, name: str, changes: Mapping[str, Any], updated_by: Optional[str] = None) -> Dict[str, Any]:
        ...

    @abstractmethod
    def list_all(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def is_enabled(self, name: str, user_id: Optional[str] = None, region: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    def add_user_to_group(self, user_id: str, group: str) -> None:
        ...

    @abstractmethod
    def remove_user_from_group(self, user_id: str, group: str) -> None:
        ...

    @abstractmethod
    def groups(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def analytics(self, name: str) -> Dict[str, Any]:
        ...

    # ── Operations expressed through the primitives above ─────────────────
    def enable(self, name: str, updated_by: Optional[str] = None) -> Dict[str, Any]:
        """Turns the flag on; a 0% rollout is raised to 100% so it takes effect."""
        flag = self.get(name)
        changes: Dict[str, Any] = {"enabled": True}
        if not flag.get("rolloutPercentage"):
            changes["rolloutPercentage"] = 100
        return self.update(name, changes, updated_by)

    def disable(self, name: str, updated_by: Optional[str] = None) -> Dict[str, Any]:
        return self.update(name, {"enabled": False}, updated_by)

    def set_rollout(self, name: str, percentage: Any, updated_by: Optional[str] = None) -> Dict[str, Any]:
        return self.update(name, {"rolloutPercentage": _check_percentage(percentage)}, updated_by)

    def emergency_rollback(
        self, name: str, reason: Optional[str] = None, updated_by: Optional[str] = None
    ) -> Dict[str, Any]:
        self.update(name, {"enabled": False, "rolloutPercentage": 0}, updated_by)
        flag = self._annotate(name, rolledBackAt=_now(), rollbackReason=reason or "Emergency rollback")
        logger.warning("Feature %s rolled back by %s: %s", name, updated_by, flag["rollbackReason"])
        return flag

    def enabled_for(self, user_id: Optional[str] = None, region: Optional[str] = None) -> List[Dict[str, Any]]:
        return [flag for flag in self.list_all() if self.is_enabled(flag["name"], user_id, region)]

    def bulk_update(
        self, updates: Mapping[str, Mapping[str, Any]], updated_by: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Applies several partial updates; each flag succeeds or fails on its own.

        Returns one {name, success, data | error} entry per flag.
        """
        results = []
        for name, changes in updates.items():
            try:
                results.append({"name": name, "success": True, "data": self.update(name, changes, updated_by)})
            except (NotFoundError, ValidationError) as e:
                results.append({"name": name, "success": False, "error": e.code, "message": e.message})
        return results

    def export_config(self) -> Dict[str, Any]:
        return {
            "flags": {flag["name"]: {k: flag[k] for k in FLAG_FIELDS} for flag in self.list_all()},
            "userGroups": {group["name"]: group["users"] for group in self.groups()},
            "exportedAt": _now(),
        }

    def import_config(self, config: Mapping[str, Any], updated_by: Optional[str] = None) -> int:
        """Replaces the named flags and merges group memberships. Returns the flag count."""
        flags = config.get("flags") or {}
        for name, definition in flags.items():
            self.set(name, definition, updated_by)
        for group, users in (config.get("userGroups") or {}).items():
            for user_id in users:
                self.add_user_to_group(user_id, group)
        logger.info("Imported %d feature flags", len(flags))
        return len(flags)

    def status(self, user_id: Optional[str] = None, region: Optional[str] = None) -> Dict[str, Any]:
        enabled = self.enabled_for(user_id, region)
        return {
            "enabledFeatures": len(enabled),
            "totalFeatures": len(self.list_all()),
            "enabledFeaturesList": [flag["name"] for flag in enabled],
        }

    @abstractmethod
    def _annotate(self, name: str, **fields: Any) -> Dict[str, Any]:
        """Stores bookkeeping fields on a flag without validation."""
        ...


class InMemoryFeatureFlagService(FeatureFlagService):
    """
    Process-local flags.

    State is lost on restart and not shared between workers; export_config /
    import_config move it between instances.
    """

    def __init__(self, initial: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._flags: Dict[str, Dict[str, Any]] = {}
        self._groups: Dict[str, Set[str]] = {}
        self._evaluations: Dict[str, Dict[str, Any]] = {}
        for name, definition in (initial or {}).items():
            self.set(name, definition)

    def _flag(self, name: str) -> Dict[str, Any]:
        flag = self._flags.get(name)
        if flag is None:
            raise NotFoundError("feature", name, code="FEATURE_NOT_FOUND", message=f"Feature '{name}' not found")
        return flag

    def _validated(self, changes: Mapping[str, Any]) -> Dict[str, Any]:
        clean = {k: v for k, v in changes.items() if k in FLAG_FIELDS and v is not None}
        if "rolloutPercentage" in clean:
            _check_percentage(clean["rolloutPercentage"])
        if "enabled" in clean:
            clean["enabled"] = bool(clean["enabled"])
        for key in ("userGroups", "regions"):
            if key in clean:
                clean[key] = list(clean[key]) or [ALL]
        return clean

    def get(self, name: str) -> Dict[str, Any]:
        return copy.deepcopy(self._flag(name))

    def set(self, name: str, definition: Mapping[str, Any], updated_by: Optional[str] = None) -> Dict[str, Any]:
        if not name or not str(name).strip():
            raise ValidationError("Feature name is required", code="MISSING_REQUIRED_FIELDS", field="name")
        now = _now()
        previous = self._flags.get(name)
        flag = {
            "name": name,
            "enabled": False,
            "rolloutPercentage": 0,
            "userGroups": [ALL],
            "regions": [ALL],
            "description": "",
        }
        flag.update(self._validated(definition))
        flag.update(
            createdAt=previous["createdAt"] if previous else now,
            updatedAt=now,
            updatedBy=updated_by,
        )
        self._flags[name] = flag
        logger.info("Feature flag %s %s by %s", name, "replaced" if previous else "created", updated_by)
        return copy.deepcopy(flag)

    def update(self, name: str, changes: Mapping[str, Any], updated_by: Optional[str] = None) -> Dict[str, Any]:
        flag = self._flag(name)
        flag.update(self._validated(changes))
        flag.update(updatedAt=_now(), updatedBy=updated_by)
        logger.info("Feature flag %s updated by %s", name, updated_by)
        return copy.deepcopy(flag)

    def _annotate(self, name: str, **fields: Any) -> Dict[str, Any]:
        flag = self._flag(name)
        flag.update(fields)
        return copy.deepcopy(flag)

    def list_all(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(self._flags[name]) for name in sorted(self._flags)]

    def _evaluate(self, flag: Mapping[str, Any], user_id: Optional[str], region: Optional[str]) -> bool:
        if not flag["enabled"]:
            return False
        regions = flag["regions"]
        if ALL not in regions and region not in regions:
            return False
        groups = flag["userGroups"]
        if ALL not in groups:
            if user_id is None or not any(user_id in self._groups.get(g, ()) for g in groups):
                return False
        percentage = flag["rolloutPercentage"]
        if percentage >= 100:
            return True
        if user_id is None:
            return False
        return bucket(flag["name"], user_id) < percentage

    def is_enabled(self, name: str, user_id: Optional[str] = None, region: Optional[str] = None) -> bool:
        flag = self._flags.get(name)
        if flag is None:
            return False
        result = self._evaluate(flag, user_id, region)

        counters = self._evaluations.setdefault(name, {"evaluations": 0, "hits": 0, "lastEvaluatedAt": None})
        counters["evaluations"] += 1
        counters["hits"] += int(result)
        counters["lastEvaluatedAt"] = _now()
        return result

    def add_user_to_group(self, user_id: str, group: str) -> None:
        if not user_id:
            raise ValidationError("User ID is required", code="MISSING_REQUIRED_FIELDS", field="userId")
        self._groups.setdefault(group, set()).add(user_id)
        logger.info("User %s added to group %s", user_id, group)

    def remove_user_from_group(self, user_id: str, group: str) -> None:
        members = self._groups.get(group)
        if members is not None:
            members.discard(user_id)
            if not members:
                del self._groups[group]

    def groups(self) -> List[Dict[str, Any]]:
        return [
            {"name": name, "userCount": len(users), "users": sorted(users)}
            for name, users in sorted(self._groups.items())
        ]

    def analytics(self, name: str) -> Dict[str, Any]:
        flag = self._flag(name)
        counters = self._evaluations.get(name, {"evaluations": 0, "hits": 0, "lastEvaluatedAt": None})
        evaluations = counters["evaluations"]
        return {
            "name": name,
            "enabled": flag["enabled"],
            "rolloutPercentage": flag["rolloutPercentage"],
            "evaluations": evaluations,
            "hits": counters["hits"],
            "hitRate": round(counters["hits"] / evaluations * 100, 2) if evaluations else 0,
            "lastEvaluatedAt": counters["lastEvaluatedAt"],
        }
