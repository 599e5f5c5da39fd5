"""
Clutch Backend — Ownership Guard
==================================

Rule: a caller may mutate a record when they own it (record.ownerId) or are
an admin. Violations raise ForbiddenError (403 UNAUTHORIZED) before anything
is written, so the record stays unchanged.
"""

import logging
from typing import Optional

from clutch.auth import Caller
from clutch.exceptions import ForbiddenError
from clutch.services.filters import Eq
from clutch.services.store_base import Record

logger = logging.getLogger(__name__)


def is_allowed(record: Record, caller: Caller) -> bool:
    return caller.is_admin or (
        record.get("ownerId") is not None and record.get("ownerId") == caller.id
    )


def ensure_can_modify(record: Record, caller: Caller, noun: str, action: str = "modify") -> None:
    if not is_allowed(record, caller):
        logger.warning(
            "Ownership check failed: caller %s tried to %s %s %s",
            caller.id, action, noun, record.get("id"),
        )
        raise ForbiddenError(
            message=f"You can only {action} your own {noun}",
            code="UNAUTHORIZED",
        )


def owner_clause(caller: Caller) -> Optional[Eq]:
    """Restricts reads to the caller's own records; None for admins."""
    return None if caller.is_admin else Eq("ownerId", caller.id)
