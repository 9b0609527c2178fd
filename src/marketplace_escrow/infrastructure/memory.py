"""In-memory stores.

The default backend for tests, the simulation and single-process
deployments. A ``MemoryStoreFactory`` opens a unit of work that buffers
every write; the buffer is applied to the shared ``MemoryDatabase`` only
when the ``async with`` block exits cleanly, so a failing operation leaves
no partial mutation behind.

Records are deep-copied on the way in and out. Callers can never mutate
stored state except through compare_and_swap.

Usage:
    db = MemoryDatabase()
    factory = MemoryStoreFactory(db)
    async with factory() as stores:
        order = await stores.orders.get(order_id)
"""

from __future__ import annotations

import copy
import dataclasses
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from marketplace_escrow.domain.clock import utc_now
from marketplace_escrow.domain.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
)
from marketplace_escrow.domain.models import AuditEntry, Reservation, to_money
from marketplace_escrow.domain.ports import Stores
from marketplace_escrow.infrastructure.ledger import LedgerShortcuts, check_settlement
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable, Sequence
    from decimal import Decimal

    from marketplace_escrow.domain.clock import Clock
    from marketplace_escrow.domain.enums import (
        DisputeStatus,
        EventType,
        OrderStatus,
        SubjectKind,
        SubmissionStatus,
    )
    from marketplace_escrow.domain.models import Dispute, LedgerPart, Order, Submission

logger = get_logger(__name__)

R = TypeVar("R")


@dataclass
class MemoryDatabase:
    """Committed state shared by every unit of work."""

    orders: dict[str, Order] = field(default_factory=dict)
    submissions: dict[str, Submission] = field(default_factory=dict)
    disputes: dict[str, Dispute] = field(default_factory=dict)
    reservations: dict[str, Reservation] = field(default_factory=dict)
    audit: list[AuditEntry] = field(default_factory=list)


@dataclass
class _Pending:
    """Writes buffered by one unit of work."""

    orders: dict[str, Order] = field(default_factory=dict)
    submissions: dict[str, Submission] = field(default_factory=dict)
    disputes: dict[str, Dispute] = field(default_factory=dict)
    reservations: dict[str, Reservation] = field(default_factory=dict)
    audit: list[AuditEntry] = field(default_factory=list)

    def apply(self, db: MemoryDatabase) -> None:
        db.orders.update(self.orders)
        db.submissions.update(self.submissions)
        db.disputes.update(self.disputes)
        db.reservations.update(self.reservations)
        db.audit.extend(self.audit)


# ---------------------------------------------------------------------------
# Versioned record stores
# ---------------------------------------------------------------------------


class _VersionedStore(Generic[R]):
    """Copy-on-read / copy-on-write store with optimistic versioning."""

    kind = "Record"

    def __init__(self, committed: dict[str, R], pending: dict[str, R]) -> None:
        self._committed = committed
        self._pending = pending

    def _current(self, record_id: str) -> R | None:
        if record_id in self._pending:
            return self._pending[record_id]
        return self._committed.get(record_id)

    def _all(self) -> list[R]:
        merged = dict(self._committed)
        merged.update(self._pending)
        return list(merged.values())

    async def add(self, record: R) -> R:
        record_id = record.id  # type: ignore[attr-defined]
        if self._current(record_id) is not None:
            raise ConflictError(f"{self.kind} already exists: {record_id}")
        self._pending[record_id] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def get(self, record_id: str) -> R | None:
        return copy.deepcopy(self._current(record_id))

    async def compare_and_swap(self, record: R, expected_version: int) -> R:
        record_id = record.id  # type: ignore[attr-defined]
        current = self._current(record_id)
        if current is None:
            raise NotFoundError(self.kind, record_id)
        if current.version != expected_version:  # type: ignore[attr-defined]
            raise ConcurrentModificationError(record_id, expected_version)
        stored = dataclasses.replace(copy.deepcopy(record), version=expected_version + 1)
        self._pending[record_id] = stored
        return copy.deepcopy(stored)

    def _select(self, predicate: Callable[[R], bool], sort_key: Callable[[R], Any]) -> list[R]:
        rows = [r for r in self._all() if predicate(r)]
        rows.sort(key=sort_key, reverse=True)
        return [copy.deepcopy(r) for r in rows]


class MemoryOrderRepository(_VersionedStore["Order"]):
    kind = "Order"

    async def list(
        self,
        *,
        buyer_id: str | None = None,
        seller_id: str | None = None,
        statuses: Iterable[OrderStatus] | None = None,
    ) -> list[Order]:
        wanted = set(statuses) if statuses is not None else None
        return self._select(
            lambda o: (buyer_id is None or o.buyer_id == buyer_id)
            and (seller_id is None or o.seller_id == seller_id)
            and (wanted is None or o.status in wanted),
            lambda o: o.created_at,
        )


class MemorySubmissionRepository(_VersionedStore["Submission"]):
    kind = "Submission"

    async def list(
        self,
        *,
        job_id: str | None = None,
        worker_id: str | None = None,
        employer_id: str | None = None,
        statuses: Iterable[SubmissionStatus] | None = None,
    ) -> list[Submission]:
        wanted = set(statuses) if statuses is not None else None
        return self._select(
            lambda s: (job_id is None or s.job_id == job_id)
            and (worker_id is None or s.worker_id == worker_id)
            and (employer_id is None or s.employer_id == employer_id)
            and (wanted is None or s.status in wanted),
            lambda s: s.submitted_at,
        )


class MemoryDisputeRepository(_VersionedStore["Dispute"]):
    kind = "Dispute"

    async def get_open_for_subject(self, subject_id: str) -> Dispute | None:
        for dispute in self._all():
            if dispute.subject_id == subject_id and dispute.status.is_open:
                return copy.deepcopy(dispute)
        return None

    async def list(
        self,
        *,
        statuses: Iterable[DisputeStatus] | None = None,
        subject_kind: SubjectKind | None = None,
        subject_id: str | None = None,
        party_id: str | None = None,
    ) -> list[Dispute]:
        wanted = set(statuses) if statuses is not None else None
        return self._select(
            lambda d: (wanted is None or d.status in wanted)
            and (subject_kind is None or d.subject_kind == subject_kind)
            and (subject_id is None or d.subject_id == subject_id)
            and (party_id is None or party_id in (d.buyer_id, d.seller_id)),
            lambda d: d.opened_at,
        )


# ---------------------------------------------------------------------------
# Ledger and audit
# ---------------------------------------------------------------------------


class MemoryLedger(LedgerShortcuts):
    """Escrow ledger over the shared reservation map."""

    def __init__(
        self,
        committed: dict[str, Reservation],
        pending: dict[str, Reservation],
        clock: Clock,
    ) -> None:
        self._committed = committed
        self._pending = pending
        self._clock = clock

    async def get(self, subject_id: str) -> Reservation | None:
        if subject_id in self._pending:
            return self._pending[subject_id]
        return self._committed.get(subject_id)

    async def reserve(
        self,
        subject_id: str,
        subject_kind: SubjectKind,
        payer_id: str,
        amount: Decimal,
    ) -> Reservation:
        if await self.get(subject_id) is not None:
            raise ConflictError(f"Escrow already reserved for {subject_id}")
        reservation = Reservation(
            subject_id=subject_id,
            subject_kind=subject_kind,
            payer_id=payer_id,
            amount=to_money(amount),
            reserved_at=self._clock(),
        )
        self._pending[subject_id] = reservation
        return reservation

    async def settle(self, subject_id: str, parts: Sequence[LedgerPart]) -> Reservation:
        reservation = await self.get(subject_id)
        check_settlement(subject_id, reservation, parts)
        settled = dataclasses.replace(
            reservation,  # type: ignore[arg-type]
            settled_at=self._clock(),
            parts=tuple(parts),
        )
        self._pending[subject_id] = settled
        return settled


class MemoryAuditLog:
    """Append-only audit trail."""

    def __init__(self, committed: list[AuditEntry], pending: list[AuditEntry], clock: Clock) -> None:
        self._committed = committed
        self._pending = pending
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
        entry = AuditEntry(
            id=uuid.uuid4().hex,
            subject_kind=subject_kind,
            subject_id=subject_id,
            event_type=event_type,
            actor=actor,
            created_at=self._clock(),
            old_status=old_status,
            new_status=new_status,
            metadata=copy.deepcopy(metadata or {}),
        )
        self._pending.append(entry)
        return entry

    async def list_for_subject(self, subject_id: str) -> list[AuditEntry]:
        return [e for e in (*self._committed, *self._pending) if e.subject_id == subject_id]


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class MemoryStoreFactory:
    """Opens buffered units of work over a MemoryDatabase."""

    def __init__(self, db: MemoryDatabase | None = None, clock: Clock = utc_now) -> None:
        self.db = db or MemoryDatabase()
        self._clock = clock

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[Stores]:
        pending = _Pending()
        stores = Stores(
            orders=MemoryOrderRepository(self.db.orders, pending.orders),
            submissions=MemorySubmissionRepository(self.db.submissions, pending.submissions),
            disputes=MemoryDisputeRepository(self.db.disputes, pending.disputes),
            ledger=MemoryLedger(self.db.reservations, pending.reservations, self._clock),
            audit=MemoryAuditLog(self.db.audit, pending.audit, self._clock),
        )
        try:
            yield stores
        except BaseException:
            logger.debug("memory_store.rolled_back")
            raise
        pending.apply(self.db)
