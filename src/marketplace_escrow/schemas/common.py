"""Schemas shared by every resource: actors, deliverables, resolutions, audit."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic resolves annotations at runtime
from decimal import Decimal  # noqa: TC003
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from marketplace_escrow.domain.enums import EventType, ResolutionDecision, SubjectKind  # noqa: TC001

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class ActorRequest(BaseModel):
    """Body of every command that only needs to know who is acting."""

    actor_id: str = Field(..., min_length=1, max_length=128, examples=["seller-42"])


class ReasonRequest(ActorRequest):
    """Command that requires a written justification."""

    reason: str = Field(
        ...,
        max_length=5000,
        description="Justification; must meet the configured minimum length",
    )


class AdminRequest(BaseModel):
    admin_id: str = Field(..., min_length=1, max_length=128, examples=["admin"])


class ResolveDisputeRequest(AdminRequest):
    """Admin decision on a disputed order or job."""

    decision: str = Field(
        ...,
        description="One of refund_buyer, pay_seller, partial_refund",
        examples=["partial_refund"],
    )
    notes: str = Field(..., max_length=5000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class DeliverablesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message: str
    files: list[str] = []
    links: list[str] = []
    submitted_at: datetime | None = None


class PaymentBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    buyer_refund: Decimal
    seller_payment: Decimal
    platform_fee: Decimal


class ResolutionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    decision: ResolutionDecision
    payment: PaymentBreakdownResponse
    resolved_by: str
    notes: str
    resolved_at: datetime


class AuditEntryResponse(BaseModel):
    """One immutable audit record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    subject_kind: SubjectKind
    subject_id: str
    event_type: EventType
    actor: str
    old_status: str | None = None
    new_status: str | None = None
    metadata: dict[str, Any] = {}
    created_at: datetime


class AlreadyProcessedResponse(BaseModel):
    """Returned with 200 when an idempotency guard or deadline already acted."""

    result: str = "already_processed"
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    message: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    storage: str = "unknown"
    database: str = "unknown"
    redis: str = "unknown"
    sweeper: str = "unknown"
