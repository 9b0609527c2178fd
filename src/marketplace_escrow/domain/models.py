"""Domain records for orders, submissions, disputes and escrow.

Plain dataclasses with no persistence concerns. Repositories hand out
copies; services mutate a copy and write it back with compare_and_swap,
bumping ``version``.

All monetary values are Decimal quantized to cents. No floats in finance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from marketplace_escrow.domain.enums import (
    ActorRole,
    DisputeStatus,
    EventType,
    LedgerEntryKind,
    OrderStatus,
    ResolutionDecision,
    SubjectKind,
    SubmissionStatus,
)

CENT = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize an amount to cents (half-up)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Deliverables:
    """Work handed over by the delivering party.

    Files and links are opaque references into the external file store.
    """

    message: str
    files: tuple[str, ...] = ()
    links: tuple[str, ...] = ()
    submitted_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "files": list(self.files),
            "links": list(self.links),
            "submitted_at": _iso(self.submitted_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Deliverables:
        return cls(
            message=data.get("message", ""),
            files=tuple(data.get("files") or ()),
            links=tuple(data.get("links") or ()),
            submitted_at=_parse(data.get("submitted_at")),
        )


@dataclass(frozen=True)
class OrderMessage:
    """One entry of an order's append-only message log."""

    id: str
    sender_id: str
    sender_role: ActorRole
    message: str
    files: tuple[str, ...] = ()
    sent_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "sender_role": self.sender_role.value,
            "message": self.message,
            "files": list(self.files),
            "sent_at": _iso(self.sent_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> OrderMessage:
        return cls(
            id=data["id"],
            sender_id=data["sender_id"],
            sender_role=ActorRole(data["sender_role"]),
            message=data["message"],
            files=tuple(data.get("files") or ()),
            sent_at=_parse(data.get("sent_at")),
        )


@dataclass(frozen=True)
class PaymentBreakdown:
    """How a disputed amount was split.

    Invariant: buyer_refund + seller_payment + platform_fee == total
    """

    buyer_refund: Decimal
    seller_payment: Decimal
    platform_fee: Decimal

    @property
    def total(self) -> Decimal:
        return self.buyer_refund + self.seller_payment + self.platform_fee

    def to_dict(self) -> dict:
        return {
            "buyer_refund": str(self.buyer_refund),
            "seller_payment": str(self.seller_payment),
            "platform_fee": str(self.platform_fee),
        }

    @classmethod
    def from_dict(cls, data: dict) -> PaymentBreakdown:
        return cls(
            buyer_refund=Decimal(data["buyer_refund"]),
            seller_payment=Decimal(data["seller_payment"]),
            platform_fee=Decimal(data["platform_fee"]),
        )


@dataclass(frozen=True)
class Resolution:
    """The final, immutable admin decision on a disputed subject."""

    decision: ResolutionDecision
    payment: PaymentBreakdown
    resolved_by: str
    notes: str
    resolved_at: datetime

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.value,
            "payment": self.payment.to_dict(),
            "resolved_by": self.resolved_by,
            "notes": self.notes,
            "resolved_at": _iso(self.resolved_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Resolution:
        return cls(
            decision=ResolutionDecision(data["decision"]),
            payment=PaymentBreakdown.from_dict(data["payment"]),
            resolved_by=data["resolved_by"],
            notes=data["notes"],
            resolved_at=datetime.fromisoformat(data["resolved_at"]),
        )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass
class Order:
    """A marketplace purchase of a service from a seller."""

    id: str
    buyer_id: str
    seller_id: str
    price: Decimal
    delivery_days: int
    status: OrderStatus
    created_at: datetime
    acceptance_deadline: datetime
    service_id: str = ""
    service_name: str = ""
    tier: str = "basic"
    requirements: str = ""

    accepted_at: datetime | None = None
    started_at: datetime | None = None
    delivered_at: datetime | None = None
    disputed_at: datetime | None = None
    completed_at: datetime | None = None
    expires_at: datetime | None = None
    review_deadline: datetime | None = None

    extension_requested: bool = False
    extension_days: int | None = None
    extension_reason: str | None = None
    extension_granted_days: int = 0

    deliverables: Deliverables | None = None
    messages: list[OrderMessage] = field(default_factory=list)
    resolution: Resolution | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    reminders_sent: list[str] = field(default_factory=list)
    version: int = 0

    def role_of(self, actor_id: str) -> ActorRole | None:
        """Return the party role ``actor_id`` plays on this order."""
        if actor_id == self.buyer_id:
            return ActorRole.BUYER
        if actor_id == self.seller_id:
            return ActorRole.SELLER
        return None


@dataclass
class Submission:
    """A worker's proof of work against a job, with its review workflow."""

    id: str
    job_id: str
    worker_id: str
    employer_id: str
    payment_amount: Decimal
    status: SubmissionStatus
    submitted_at: datetime
    payload: Deliverables | None = None
    revision_count: int = 0
    reviewed_at: datetime | None = None
    review_deadline: datetime | None = None
    rejection_deadline: datetime | None = None
    revision_deadline: datetime | None = None
    rejection_reason: str | None = None
    revision_notes: str | None = None
    resolution: Resolution | None = None
    version: int = 0

    def role_of(self, actor_id: str) -> ActorRole | None:
        """Employer pays (buyer side), worker delivers (seller side)."""
        if actor_id == self.employer_id:
            return ActorRole.BUYER
        if actor_id == self.worker_id:
            return ActorRole.SELLER
        return None


@dataclass
class Dispute:
    """A formal escalation against an order or a job submission.

    One aggregate per underlying transaction, tagged with the subject kind.
    """

    id: str
    subject_kind: SubjectKind
    subject_id: str
    opened_by: str
    opened_by_role: ActorRole
    buyer_id: str
    seller_id: str
    amount: Decimal
    reason: str
    details: str
    opened_at: datetime
    status: DisputeStatus = DisputeStatus.PENDING
    evidence: list[str] = field(default_factory=list)
    job_id: str | None = None
    reviewed_by: str | None = None
    resolution: Resolution | None = None
    version: int = 0


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerPart:
    """One destination of a settlement."""

    recipient_id: str
    amount: Decimal
    kind: LedgerEntryKind

    def to_dict(self) -> dict:
        return {
            "recipient_id": self.recipient_id,
            "amount": str(self.amount),
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> LedgerPart:
        return cls(
            recipient_id=data["recipient_id"],
            amount=Decimal(data["amount"]),
            kind=LedgerEntryKind(data["kind"]),
        )


@dataclass(frozen=True)
class Reservation:
    """Funds held in escrow for one subject until a single settlement."""

    subject_id: str
    subject_kind: SubjectKind
    payer_id: str
    amount: Decimal
    reserved_at: datetime
    settled_at: datetime | None = None
    parts: tuple[LedgerPart, ...] = ()

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None

    @property
    def settled_total(self) -> Decimal:
        return sum((p.amount for p in self.parts), Decimal("0"))

    def snapshot(self) -> dict:
        """Serializable view used in audit entries."""
        return {
            "reserved": str(self.amount),
            "settled": self.is_settled,
            "parts": [p.to_dict() for p in self.parts],
        }


# ---------------------------------------------------------------------------
# Events & audit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainEvent:
    """Something collaborators may react to (notifications, projections)."""

    event_type: EventType
    subject_kind: SubjectKind
    subject_id: str
    actor: str
    occurred_at: datetime
    old_status: str | None = None
    new_status: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit record. The audit log is append-only."""

    id: str
    subject_kind: SubjectKind
    subject_id: str
    event_type: EventType
    actor: str
    created_at: datetime
    old_status: str | None = None
    new_status: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
