"""
Clutch Backend — Response Envelope Schemas
============================================

What:  The uniform JSON wrapper every endpoint returns.
Why:   Clients branch on `success` and on the SCREAMING_SNAKE `error` code,
       never on the HTTP body shape of a particular resource.

Success: {success: true, data, pagination?, message?, timestamp}
Failure: {success: false, error, message, details?, requestId?, timestamp}

Routes declare `response_model=SuccessEnvelope` with
`response_model_exclude_none=True`, so absent optional members are omitted
rather than sent as null.

Datetimes anywhere in a body, promoted record timestamps included, are
written the same way stored payload dates are: ISO-8601 with "+00:00".
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_serializer

from clutch.services.pagination import PagedResult
from clutch.services.store_base import encode_value, utc_isoformat


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaginationInfo(BaseModel):
    page: int = Field(description="Current page (1-based)")
    limit: int = Field(description="Page size after clamping")
    total: int = Field(description="Number of records matching the filter")
    pages: int = Field(description="ceil(total / limit); 0 when nothing matches")


class SuccessEnvelope(BaseModel):
    success: bool = True
    data: Any = None
    pagination: Optional[PaginationInfo] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)

    @field_serializer("data")
    def _encode_data(self, data: Any) -> Any:
        return encode_value(data)

    @field_serializer("timestamp")
    def _encode_timestamp(self, value: datetime) -> str:
        return utc_isoformat(value)


class ErrorEnvelope(BaseModel):
    """
    Failure body produced by the global exception handlers.

    `details` is only populated when DEBUG is on.
    """

    success: bool = False
    error: str = Field(description="Machine-readable error code, e.g. BOOKING_NOT_FOUND")
    message: str = Field(description="Human-readable explanation")
    details: Optional[Dict[str, Any]] = None
    requestId: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)

    @field_serializer("timestamp")
    def _encode_timestamp(self, value: datetime) -> str:
        return utc_isoformat(value)


def ok(data: Any = None, message: Optional[str] = None) -> SuccessEnvelope:
    return SuccessEnvelope(data=data, message=message)


def paged(result: PagedResult, message: Optional[str] = None) -> SuccessEnvelope:
    """Wraps one page of records with its pagination block."""
    return SuccessEnvelope(
        data=result.items,
        pagination=PaginationInfo(**result.pagination()),
        message=message,
    )


class HealthResponse(BaseModel):
    status: str = Field(description="healthy | unhealthy")
    version: str
    store: str = Field(description="Document store backend (sql | memory)")
    database: str = Field(description="connected | disconnected")
    uptime_seconds: float
