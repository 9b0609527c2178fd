"""Pydantic schemas for the Orders API.

Response models read straight from the domain dataclasses
(``from_attributes``); they are never persisted.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic resolves annotations at runtime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from marketplace_escrow.domain.enums import ActorRole, OrderStatus  # noqa: TC001
from marketplace_escrow.schemas.common import (
    ActorRequest,
    DeliverablesResponse,
    ResolutionResponse,
)

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class PlaceOrderRequest(BaseModel):
    """Request body for buying a service."""

    buyer_id: str = Field(..., min_length=1, max_length=128)
    seller_id: str = Field(..., min_length=1, max_length=128)
    price: Decimal = Field(..., gt=0, decimal_places=2, examples=[Decimal("100.00")])
    delivery_days: int = Field(..., ge=1, le=365, description="Delivery time once work starts")
    service_id: str = ""
    service_name: str = Field(default="", max_length=200)
    tier: str = Field(default="basic", max_length=32)
    requirements: str = Field(default="", max_length=10_000)
    order_id: str | None = Field(
        default=None,
        description="Optional caller-chosen id; generated when omitted",
    )


class ExtensionRequest(ActorRequest):
    days: int = Field(..., description="Extra delivery days requested")
    reason: str = Field(..., max_length=2000)


class DeliveryRequest(ActorRequest):
    message: str = Field(..., max_length=10_000)
    files: list[str] = Field(default_factory=list, description="Opaque file-store references")
    links: list[str] = Field(default_factory=list)


class MessageRequest(ActorRequest):
    message: str = Field(..., max_length=5000)
    files: list[str] = Field(default_factory=list)


class RequirementsRequest(ActorRequest):
    requirements: str = Field(..., max_length=10_000)


class OpenOrderDisputeRequest(ActorRequest):
    reason: str = Field(..., max_length=2000)
    details: str = Field(default="", max_length=10_000)
    evidence: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class OrderMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    sender_role: ActorRole
    message: str
    files: list[str] = []
    sent_at: datetime | None = None


class OrderResponse(BaseModel):
    """Full view of one order."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    buyer_id: str
    seller_id: str
    price: Decimal
    delivery_days: int
    status: OrderStatus
    service_id: str
    service_name: str
    tier: str
    requirements: str
    created_at: datetime
    acceptance_deadline: datetime
    accepted_at: datetime | None
    started_at: datetime | None
    delivered_at: datetime | None
    disputed_at: datetime | None
    completed_at: datetime | None
    expires_at: datetime | None
    review_deadline: datetime | None
    extension_requested: bool
    extension_days: int | None
    extension_reason: str | None
    extension_granted_days: int
    deliverables: DeliverablesResponse | None
    messages: list[OrderMessageResponse]
    resolution: ResolutionResponse | None
    cancellation_reason: str | None
    cancelled_by: str | None
    version: int


class TimeRemainingResponse(BaseModel):
    """Countdown to whichever deadline currently governs the order."""

    order_id: str
    kind: str | None = None
    deadline: datetime | None = None
    remaining: dict[str, int] | None = Field(
        default=None,
        description="Whole days, hours and minutes left",
    )
    pending_automatic_action: bool = False
