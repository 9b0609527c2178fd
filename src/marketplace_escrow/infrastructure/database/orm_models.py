"""SQLAlchemy 2.0 ORM models for the marketplace escrow engine.

Five tables:
    1. orders               : Marketplace orders between a buyer and a seller.
    2. work_submissions     : Worker submissions against a job, with review state.
    3. disputes             : One dispute registry for orders and submissions.
    4. escrow_reservations  : Funds held per subject, settled exactly once.
    5. audit_events         : Append-only audit log of every state transition.

Design decisions:
    - String primary keys: ids come from the caller (order numbers, job ids).
    - Numeric(12, 2) for money (no floating point rounding errors).
    - JSON columns (JSONB on PostgreSQL) for deliverables, messages and
      resolutions, which are always read and written whole.
    - ``version`` column on every mutable row for compare-and-swap writes.
    - CHECK constraints on status to prevent invalid enum values at DB level.
    - audit_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from marketplace_escrow.domain.enums import DisputeStatus, OrderStatus, SubmissionStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that comes back as UTC on every backend.

    SQLite drops tzinfo on the way out; re-attach it so domain code can
    compare against aware deadlines.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def _status_check(name: str, values) -> CheckConstraint:  # noqa: ANN001
    allowed = ", ".join(f"'{v.value}'" for v in values)
    return CheckConstraint(f"status IN ({allowed})", name=name)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. orders
# ---------------------------------------------------------------------------
class OrderRow(Base):
    """A marketplace order between a buyer and a seller."""

    __tablename__ = "orders"

    # --- Primary Key ---
    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # --- Participants ---
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # --- Service ---
    service_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    service_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    tier: Mapped[str] = mapped_column(String(20), nullable=False, default="basic")
    requirements: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    delivery_days: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- Status (guarded by OrderStateMachine) ---
    status: Mapped[str] = mapped_column(String(24), nullable=False)

    # --- Lifecycle timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    acceptance_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    disputed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    review_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # --- Extension ---
    extension_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    extension_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    extension_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    extension_granted_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Documents ---
    deliverables: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    messages: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    resolution: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    reminders_sent: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # --- Concurrency ---
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        _status_check("ck_order_valid_status", OrderStatus),
        CheckConstraint("price > 0", name="ck_order_positive_price"),
        CheckConstraint("delivery_days > 0", name="ck_order_positive_delivery_days"),
        Index("idx_order_status", "status"),
        Index("idx_order_buyer", "buyer_id"),
        Index("idx_order_seller", "seller_id"),
        Index("idx_order_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OrderRow id={self.id} status={self.status} price={self.price}>"


# ---------------------------------------------------------------------------
# 2. work_submissions
# ---------------------------------------------------------------------------
class SubmissionRow(Base):
    """A worker's submission against a job."""

    __tablename__ = "work_submissions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False)
    worker_id: Mapped[str] = mapped_column(String(64), nullable=False)
    employer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(24), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    revision_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    review_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    rejection_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    revision_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    revision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        _status_check("ck_submission_valid_status", SubmissionStatus),
        CheckConstraint("revision_count >= 0", name="ck_submission_revision_count"),
        Index("idx_submission_job", "job_id"),
        Index("idx_submission_status", "status"),
        Index("idx_submission_worker", "worker_id"),
    )

    def __repr__(self) -> str:
        return f"<SubmissionRow id={self.id} job={self.job_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 3. disputes
# ---------------------------------------------------------------------------
class DisputeRow(Base):
    """A dispute against an order or a job submission."""

    __tablename__ = "disputes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    opened_by: Mapped[str] = mapped_column(String(64), nullable=False)
    opened_by_role: Mapped[str] = mapped_column(String(10), nullable=False)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evidence: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    status: Mapped[str] = mapped_column(String(24), nullable=False)
    opened_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolution: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        _status_check("ck_dispute_valid_status", DisputeStatus),
        Index("idx_dispute_subject", "subject_id"),
        Index("idx_dispute_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<DisputeRow id={self.id} subject={self.subject_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 4. escrow_reservations
# ---------------------------------------------------------------------------
class ReservationRow(Base):
    """Funds held in escrow for one order or submission.

    ``settled_at`` flips from NULL exactly once; the conditional UPDATE on
    it is the single-settlement guard.
    """

    __tablename__ = "escrow_reservations"

    subject_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    payer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reserved_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    parts: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    __table_args__ = (CheckConstraint("amount >= 0", name="ck_reservation_amount"),)

    def __repr__(self) -> str:
        return f"<ReservationRow subject={self.subject_id} settled={self.settled_at is not None}>"


# ---------------------------------------------------------------------------
# 5. audit_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class AuditEventRow(Base):
    """Immutable audit record of every state transition and admin action.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "audit_events"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    subject_kind: Mapped[str] = mapped_column(String(10), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    actor: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    old_status: Mapped[str | None] = mapped_column(String(24), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(24), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata",
        JSONType,
        nullable=True,
        default=None,
        comment="Context such as reasons, breakdowns, before/after ledger snapshots",
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_audit_subject", "subject_id"),
        Index("idx_audit_event_type", "event_type"),
        Index("idx_audit_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEventRow id={self.id} type={self.event_type} "
            f"{self.old_status}->{self.new_status}>"
        )
