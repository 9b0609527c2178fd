"""SQLAlchemy implementations of the store ports.

Repositories accept an AsyncSession and never manage their own
transactions (that's the SqlAlchemyStoreFactory's responsibility). They
translate between ORM rows and domain dataclasses so nothing above this
module ever sees a row object.

Writes to mutable records go through ``compare_and_swap``:

    UPDATE orders SET ..., version = :expected + 1
    WHERE id = :id AND version = :expected

Zero affected rows means somebody else got there first.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update

from marketplace_escrow.domain.clock import utc_now
from marketplace_escrow.domain.enums import (
    ActorRole,
    DisputeStatus,
    EventType,
    OrderStatus,
    SubjectKind,
    SubmissionStatus,
)
from marketplace_escrow.domain.exceptions import (
    AlreadySettledError,
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
)
from marketplace_escrow.domain.models import (
    AuditEntry,
    Deliverables,
    Dispute,
    LedgerPart,
    Order,
    OrderMessage,
    Reservation,
    Resolution,
    Submission,
    to_money,
)
from marketplace_escrow.domain.ports import Stores
from marketplace_escrow.infrastructure.database.orm_models import (
    AuditEventRow,
    DisputeRow,
    OrderRow,
    ReservationRow,
    SubmissionRow,
)
from marketplace_escrow.infrastructure.ledger import LedgerShortcuts, check_settlement
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from marketplace_escrow.domain.clock import Clock

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Row <-> domain mapping
# ---------------------------------------------------------------------------


def _order_values(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "buyer_id": order.buyer_id,
        "seller_id": order.seller_id,
        "service_id": order.service_id,
        "service_name": order.service_name,
        "tier": order.tier,
        "requirements": order.requirements,
        "price": order.price,
        "delivery_days": order.delivery_days,
        "status": order.status.value,
        "created_at": order.created_at,
        "acceptance_deadline": order.acceptance_deadline,
        "accepted_at": order.accepted_at,
        "started_at": order.started_at,
        "delivered_at": order.delivered_at,
        "disputed_at": order.disputed_at,
        "completed_at": order.completed_at,
        "expires_at": order.expires_at,
        "review_deadline": order.review_deadline,
        "extension_requested": order.extension_requested,
        "extension_days": order.extension_days,
        "extension_reason": order.extension_reason,
        "extension_granted_days": order.extension_granted_days,
        "deliverables": order.deliverables.to_dict() if order.deliverables else None,
        "messages": [m.to_dict() for m in order.messages],
        "resolution": order.resolution.to_dict() if order.resolution else None,
        "reminders_sent": list(order.reminders_sent),
        "cancellation_reason": order.cancellation_reason,
        "cancelled_by": order.cancelled_by,
    }


def _order_from_row(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        service_id=row.service_id,
        service_name=row.service_name,
        tier=row.tier,
        requirements=row.requirements,
        price=to_money(row.price),
        delivery_days=row.delivery_days,
        status=OrderStatus(row.status),
        created_at=row.created_at,
        acceptance_deadline=row.acceptance_deadline,
        accepted_at=row.accepted_at,
        started_at=row.started_at,
        delivered_at=row.delivered_at,
        disputed_at=row.disputed_at,
        completed_at=row.completed_at,
        expires_at=row.expires_at,
        review_deadline=row.review_deadline,
        extension_requested=row.extension_requested,
        extension_days=row.extension_days,
        extension_reason=row.extension_reason,
        extension_granted_days=row.extension_granted_days,
        deliverables=Deliverables.from_dict(row.deliverables) if row.deliverables else None,
        messages=[OrderMessage.from_dict(m) for m in row.messages or []],
        resolution=Resolution.from_dict(row.resolution) if row.resolution else None,
        reminders_sent=list(row.reminders_sent or []),
        cancellation_reason=row.cancellation_reason,
        cancelled_by=row.cancelled_by,
        version=row.version,
    )


def _submission_values(sub: Submission) -> dict[str, Any]:
    return {
        "id": sub.id,
        "job_id": sub.job_id,
        "worker_id": sub.worker_id,
        "employer_id": sub.employer_id,
        "payment_amount": sub.payment_amount,
        "status": sub.status.value,
        "payload": sub.payload.to_dict() if sub.payload else None,
        "revision_count": sub.revision_count,
        "submitted_at": sub.submitted_at,
        "reviewed_at": sub.reviewed_at,
        "review_deadline": sub.review_deadline,
        "rejection_deadline": sub.rejection_deadline,
        "revision_deadline": sub.revision_deadline,
        "rejection_reason": sub.rejection_reason,
        "revision_notes": sub.revision_notes,
        "resolution": sub.resolution.to_dict() if sub.resolution else None,
    }


def _submission_from_row(row: SubmissionRow) -> Submission:
    return Submission(
        id=row.id,
        job_id=row.job_id,
        worker_id=row.worker_id,
        employer_id=row.employer_id,
        payment_amount=to_money(row.payment_amount),
        status=SubmissionStatus(row.status),
        payload=Deliverables.from_dict(row.payload) if row.payload else None,
        revision_count=row.revision_count,
        submitted_at=row.submitted_at,
        reviewed_at=row.reviewed_at,
        review_deadline=row.review_deadline,
        rejection_deadline=row.rejection_deadline,
        revision_deadline=row.revision_deadline,
        rejection_reason=row.rejection_reason,
        revision_notes=row.revision_notes,
        resolution=Resolution.from_dict(row.resolution) if row.resolution else None,
        version=row.version,
    )


def _dispute_values(dispute: Dispute) -> dict[str, Any]:
    return {
        "id": dispute.id,
        "subject_kind": dispute.subject_kind.value,
        "subject_id": dispute.subject_id,
        "job_id": dispute.job_id,
        "opened_by": dispute.opened_by,
        "opened_by_role": dispute.opened_by_role.value,
        "buyer_id": dispute.buyer_id,
        "seller_id": dispute.seller_id,
        "amount": dispute.amount,
        "reason": dispute.reason,
        "details": dispute.details,
        "evidence": list(dispute.evidence),
        "status": dispute.status.value,
        "opened_at": dispute.opened_at,
        "reviewed_by": dispute.reviewed_by,
        "resolution": dispute.resolution.to_dict() if dispute.resolution else None,
    }


def _dispute_from_row(row: DisputeRow) -> Dispute:
    return Dispute(
        id=row.id,
        subject_kind=SubjectKind(row.subject_kind),
        subject_id=row.subject_id,
        job_id=row.job_id,
        opened_by=row.opened_by,
        opened_by_role=ActorRole(row.opened_by_role),
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        amount=to_money(row.amount),
        reason=row.reason,
        details=row.details,
        evidence=list(row.evidence or []),
        status=DisputeStatus(row.status),
        opened_at=row.opened_at,
        reviewed_by=row.reviewed_by,
        resolution=Resolution.from_dict(row.resolution) if row.resolution else None,
        version=row.version,
    )


def _reservation_from_row(row: ReservationRow) -> Reservation:
    return Reservation(
        subject_id=row.subject_id,
        subject_kind=SubjectKind(row.subject_kind),
        payer_id=row.payer_id,
        amount=to_money(row.amount),
        reserved_at=row.reserved_at,
        settled_at=row.settled_at,
        parts=tuple(LedgerPart.from_dict(p) for p in row.parts or []),
    )


# ---------------------------------------------------------------------------
# Versioned repositories
# ---------------------------------------------------------------------------


class _VersionedRepository:
    """add / get / compare_and_swap over one versioned table."""

    kind = "Record"
    row_cls: Any
    to_values: Any
    from_row: Any

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _fetch(self, record_id: str) -> Any:
        result = await self._session.execute(
            select(self.row_cls)
            .where(self.row_cls.id == record_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _fetch_many(self, stmt) -> list[Any]:  # noqa: ANN001
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        return [type(self).from_row(row) for row in result.scalars().all()]

    async def add(self, record: Any) -> Any:
        if await self._fetch(record.id) is not None:
            raise ConflictError(f"{self.kind} already exists: {record.id}")
        row = self.row_cls(**type(self).to_values(record), version=record.version)
        self._session.add(row)
        await self._session.flush()
        return type(self).from_row(row)

    async def get(self, record_id: str) -> Any:
        row = await self._fetch(record_id)
        return type(self).from_row(row) if row is not None else None

    async def compare_and_swap(self, record: Any, expected_version: int) -> Any:
        values = type(self).to_values(record)
        values.pop("id")
        result = await self._session.execute(
            update(self.row_cls)
            .where(self.row_cls.id == record.id, self.row_cls.version == expected_version)
            .values(**values, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if await self._fetch(record.id) is None:
                raise NotFoundError(self.kind, record.id)
            logger.warning(
                "repository.stale_version",
                kind=self.kind,
                subject_id=record.id,
                expected_version=expected_version,
            )
            raise ConcurrentModificationError(record.id, expected_version)
        return await self.get(record.id)


class SqlOrderRepository(_VersionedRepository):
    """Data access for marketplace orders."""

    kind = "Order"
    row_cls = OrderRow
    to_values = staticmethod(_order_values)
    from_row = staticmethod(_order_from_row)

    async def list(
        self,
        *,
        buyer_id: str | None = None,
        seller_id: str | None = None,
        statuses: Iterable[OrderStatus] | None = None,
    ) -> list[Order]:
        stmt = select(OrderRow).order_by(OrderRow.created_at.desc())
        if buyer_id is not None:
            stmt = stmt.where(OrderRow.buyer_id == buyer_id)
        if seller_id is not None:
            stmt = stmt.where(OrderRow.seller_id == seller_id)
        if statuses is not None:
            stmt = stmt.where(OrderRow.status.in_([s.value for s in statuses]))
        return await self._fetch_many(stmt)


class SqlSubmissionRepository(_VersionedRepository):
    """Data access for work submissions."""

    kind = "Submission"
    row_cls = SubmissionRow
    to_values = staticmethod(_submission_values)
    from_row = staticmethod(_submission_from_row)

    async def list(
        self,
        *,
        job_id: str | None = None,
        worker_id: str | None = None,
        employer_id: str | None = None,
        statuses: Iterable[SubmissionStatus] | None = None,
    ) -> list[Submission]:
        stmt = select(SubmissionRow).order_by(SubmissionRow.submitted_at.desc())
        if job_id is not None:
            stmt = stmt.where(SubmissionRow.job_id == job_id)
        if worker_id is not None:
            stmt = stmt.where(SubmissionRow.worker_id == worker_id)
        if employer_id is not None:
            stmt = stmt.where(SubmissionRow.employer_id == employer_id)
        if statuses is not None:
            stmt = stmt.where(SubmissionRow.status.in_([s.value for s in statuses]))
        return await self._fetch_many(stmt)


class SqlDisputeRepository(_VersionedRepository):
    """Data access for the dispute registry."""

    kind = "Dispute"
    row_cls = DisputeRow
    to_values = staticmethod(_dispute_values)
    from_row = staticmethod(_dispute_from_row)

    async def get_open_for_subject(self, subject_id: str) -> Dispute | None:
        open_values = [s.value for s in DisputeStatus if s.is_open]
        found = await self._fetch_many(
            select(DisputeRow)
            .where(DisputeRow.subject_id == subject_id, DisputeRow.status.in_(open_values))
            .limit(1)
        )
        return found[0] if found else None

    async def list(
        self,
        *,
        statuses: Iterable[DisputeStatus] | None = None,
        subject_kind: SubjectKind | None = None,
        subject_id: str | None = None,
        party_id: str | None = None,
    ) -> list[Dispute]:
        stmt = select(DisputeRow).order_by(DisputeRow.opened_at.desc())
        if statuses is not None:
            stmt = stmt.where(DisputeRow.status.in_([s.value for s in statuses]))
        if subject_kind is not None:
            stmt = stmt.where(DisputeRow.subject_kind == subject_kind.value)
        if subject_id is not None:
            stmt = stmt.where(DisputeRow.subject_id == subject_id)
        if party_id is not None:
            stmt = stmt.where((DisputeRow.buyer_id == party_id) | (DisputeRow.seller_id == party_id))
        return await self._fetch_many(stmt)


# ---------------------------------------------------------------------------
# Ledger and audit
# ---------------------------------------------------------------------------


class SqlEscrowLedger(LedgerShortcuts):
    """Escrow ledger over the escrow_reservations table."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        self._session = session
        self._clock = clock

    async def get(self, subject_id: str) -> Reservation | None:
        result = await self._session.execute(
            select(ReservationRow)
            .where(ReservationRow.subject_id == subject_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _reservation_from_row(row) if row is not None else None

    async def reserve(
        self,
        subject_id: str,
        subject_kind: SubjectKind,
        payer_id: str,
        amount: Decimal,
    ) -> Reservation:
        if await self.get(subject_id) is not None:
            raise ConflictError(f"Escrow already reserved for {subject_id}")
        row = ReservationRow(
            subject_id=subject_id,
            subject_kind=subject_kind.value,
            payer_id=payer_id,
            amount=to_money(amount),
            reserved_at=self._clock(),
            parts=[],
        )
        self._session.add(row)
        await self._session.flush()
        return _reservation_from_row(row)

    async def settle(self, subject_id: str, parts: Sequence[LedgerPart]) -> Reservation:
        check_settlement(subject_id, await self.get(subject_id), parts)
        result = await self._session.execute(
            update(ReservationRow)
            .where(ReservationRow.subject_id == subject_id, ReservationRow.settled_at.is_(None))
            .values(settled_at=self._clock(), parts=[p.to_dict() for p in parts])
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadySettledError(subject_id)
        return await self.get(subject_id)  # type: ignore[return-value]


class SqlAuditLog:
    """Data access for the append-only audit log."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_now) -> None:
        self._session = session
        self._clock = clock

    async def record(
        self,
        subject_kind: SubjectKind,
        subject_id: str,
        event_type: EventType,
        actor: str,
        old_status: str | None = None,
        new_status: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Append a new audit event. This is the ONLY write operation allowed."""
        row = AuditEventRow(
            id=uuid.uuid4().hex,
            subject_kind=subject_kind.value,
            subject_id=subject_id,
            event_type=event_type.value,
            actor=actor,
            old_status=old_status,
            new_status=new_status,
            metadata_json=metadata or {},
            created_at=self._clock(),
        )
        self._session.add(row)
        await self._session.flush()
        return self._to_entry(row)

    async def list_for_subject(self, subject_id: str) -> list[AuditEntry]:
        """Fetch all events for a subject in chronological order."""
        result = await self._session.execute(
            select(AuditEventRow)
            .where(AuditEventRow.subject_id == subject_id)
            .order_by(AuditEventRow.created_at.asc())
        )
        return [self._to_entry(row) for row in result.scalars().all()]

    @staticmethod
    def _to_entry(row: AuditEventRow) -> AuditEntry:
        return AuditEntry(
            id=row.id,
            subject_kind=SubjectKind(row.subject_kind),
            subject_id=row.subject_id,
            event_type=EventType(row.event_type),
            actor=row.actor,
            created_at=row.created_at,
            old_status=row.old_status,
            new_status=row.new_status,
            metadata=dict(row.metadata_json or {}),
        )


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class SqlAlchemyStoreFactory:
    """Opens one session (one transaction) per subject operation.

    The session is committed on success or rolled back on error.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utc_now) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[Stores]:
        async with self._session_factory() as session:
            try:
                yield Stores(
                    orders=SqlOrderRepository(session),
                    submissions=SqlSubmissionRepository(session),
                    disputes=SqlDisputeRepository(session),
                    ledger=SqlEscrowLedger(session, self._clock),
                    audit=SqlAuditLog(session, self._clock),
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise
