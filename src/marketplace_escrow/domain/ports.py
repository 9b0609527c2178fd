"""Ports the order engine depends on.

These are Protocols (structural subtyping): the in-memory stores, the
SQLAlchemy stores and the default collaborators only need to match the
shape. The domain layer has ZERO imports from SQLAlchemy, Redis or FastAPI.

Repositories never manage their own transactions. A StoreFactory opens one
unit of work per subject operation and commits or rolls it back as a whole.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from decimal import Decimal

    from marketplace_escrow.domain.enums import (
        DisputeStatus,
        EventType,
        OrderStatus,
        SubjectKind,
        SubmissionStatus,
    )
    from marketplace_escrow.domain.models import (
        AuditEntry,
        Dispute,
        LedgerPart,
        Order,
        Reservation,
        Submission,
    )


class OrderRepository(Protocol):
    async def add(self, order: Order) -> Order: ...

    async def get(self, order_id: str) -> Order | None: ...

    async def compare_and_swap(self, order: Order, expected_version: int) -> Order:
        """Persist ``order`` if the stored version still equals ``expected_version``.

        Returns the stored copy with the bumped version.
        Raises ConcurrentModificationError otherwise.
        """
        ...

    async def list(
        self,
        *,
        buyer_id: str | None = None,
        seller_id: str | None = None,
        statuses: Iterable[OrderStatus] | None = None,
    ) -> list[Order]: ...


class SubmissionRepository(Protocol):
    async def add(self, submission: Submission) -> Submission: ...

    async def get(self, submission_id: str) -> Submission | None: ...

    async def compare_and_swap(self, submission: Submission, expected_version: int) -> Submission: ...

    async def list(
        self,
        *,
        job_id: str | None = None,
        worker_id: str | None = None,
        employer_id: str | None = None,
        statuses: Iterable[SubmissionStatus] | None = None,
    ) -> list[Submission]: ...


class DisputeRepository(Protocol):
    async def add(self, dispute: Dispute) -> Dispute: ...

    async def get(self, dispute_id: str) -> Dispute | None: ...

    async def get_open_for_subject(self, subject_id: str) -> Dispute | None: ...

    async def compare_and_swap(self, dispute: Dispute, expected_version: int) -> Dispute: ...

    async def list(
        self,
        *,
        statuses: Iterable[DisputeStatus] | None = None,
        subject_kind: SubjectKind | None = None,
        subject_id: str | None = None,
        party_id: str | None = None,
    ) -> list[Dispute]: ...


class EscrowLedger(Protocol):
    """Holds reserved funds and settles each reservation exactly once."""

    async def reserve(
        self,
        subject_id: str,
        subject_kind: SubjectKind,
        payer_id: str,
        amount: Decimal,
    ) -> Reservation: ...

    async def settle(self, subject_id: str, parts: Sequence[LedgerPart]) -> Reservation:
        """Consume the reservation.

        Raises AlreadySettledError on a second call, OverSettlementError when
        the parts add up to more than was reserved.
        """
        ...

    async def release(self, subject_id: str, to: str, amount: Decimal) -> Reservation: ...

    async def split(self, subject_id: str, parts: Sequence[LedgerPart]) -> Reservation: ...

    async def refund(self, subject_id: str) -> Reservation: ...

    async def get(self, subject_id: str) -> Reservation | None: ...


class AuditLog(Protocol):
    """Append-only audit trail. ``record`` is the only write."""

    async def record(
        self,
        subject_kind: SubjectKind,
        subject_id: str,
        event_type: EventType,
        actor: str,
        old_status: str | None = None,
        new_status: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry: ...

    async def list_for_subject(self, subject_id: str) -> list[AuditEntry]: ...


@dataclass
class Stores:
    """Every store of one unit of work."""

    orders: OrderRepository
    submissions: SubmissionRepository
    disputes: DisputeRepository
    ledger: EscrowLedger
    audit: AuditLog


class StoreFactory(Protocol):
    """Open a unit of work. Commit on clean exit, roll back on exception."""

    def __call__(self) -> AbstractAsyncContextManager[Stores]: ...


@runtime_checkable
class NotificationSink(Protocol):
    """Fire-and-forget user notifications (email, push, in-app)."""

    async def send(
        self,
        user_id: str,
        kind: str,
        title: str,
        description: str,
        action_url: str | None = None,
    ) -> None: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Answers whether an actor holds platform admin rights.

    Party roles come from the subject itself (``Order.role_of``).
    """

    async def is_admin(self, actor_id: str) -> bool: ...

