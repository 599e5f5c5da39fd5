"""
Request bodies for the non-generic endpoints.

Generic create/update bodies are free-form JSON objects validated by the
resource's schema in the CRUD engine, so they have no model here. These
models only describe shape; business rules (required values, allowed
operations, ranges) are enforced by the services so that every failure
carries its specific error code.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StatusChange(BaseModel):
    """PATCH /{id}/status. Extra keys (notes, actualCost, ...) pass through."""

    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None

    def extras(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class DiscountCheck(BaseModel):
    code: Optional[str] = None
    amount: Any = None


class ProcessPayoutRequest(BaseModel):
    transactionId: Optional[str] = None


class ReminderRequest(BaseModel):
    type: Optional[str] = None
    message: Optional[str] = None


class DisputeResponseRequest(BaseModel):
    message: Optional[str] = None
    attachments: List[Any] = Field(default_factory=list)


class FeedbackResponseRequest(BaseModel):
    response: Optional[str] = None


class StockAdjustment(BaseModel):
    quantity: Any = None
    operation: Optional[str] = None


# ── Feature flags ─────────────────────────────────────────────────────────
class FlagUpdate(BaseModel):
    """Partial flag definition; unset members keep their current value."""

    enabled: Optional[bool] = None
    rolloutPercentage: Optional[float] = None
    userGroups: Optional[List[str]] = None
    regions: Optional[List[str]] = None
    description: Optional[str] = None


class FlagDefinition(FlagUpdate):
    name: Optional[str] = None


class RolloutRequest(BaseModel):
    percentage: Optional[float] = None


class RollbackRequest(BaseModel):
    reason: Optional[str] = None


class GroupMembership(BaseModel):
    userId: Optional[str] = None
    group: Optional[str] = None


class BulkFlagUpdate(BaseModel):
    updates: Dict[str, FlagUpdate] = Field(default_factory=dict)


class FlagImport(BaseModel):
    flags: Dict[str, FlagUpdate] = Field(default_factory=dict)
    userGroups: Dict[str, List[str]] = Field(default_factory=dict)


# ── Email ─────────────────────────────────────────────────────────────────
class EmailRequest(BaseModel):
    to: Optional[str] = None
    templateType: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    subject: Optional[str] = None


class BulkEmailRequest(BaseModel):
    emails: List[EmailRequest] = Field(default_factory=list)


class PreviewRequest(BaseModel):
    templateType: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
