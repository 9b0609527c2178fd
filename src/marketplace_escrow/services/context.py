"""Shared plumbing for the application services.

Every mutating operation follows one shape:

    async with ctx.transaction(subject_id) as tx:
        subject = load(...)              # under the subject lock
        validate + mutate a copy
        settle the ledger
        compare_and_swap + audit
        tx.emit(event)
    # lock released, transaction committed -> events published

Events are only published after a clean commit, so collaborators never
hear about a transition that was rolled back, and no network call to a
collaborator happens while the subject lock is held.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from marketplace_escrow.domain.clock import utc_now
from marketplace_escrow.domain.exceptions import ForbiddenError, ValidationFailedError
from marketplace_escrow.domain.models import DomainEvent
from marketplace_escrow.domain.settlement import MarketplacePolicy
from marketplace_escrow.infrastructure.locks import SubjectLocks

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable
    from datetime import datetime

    from marketplace_escrow.domain.clock import Clock
    from marketplace_escrow.domain.enums import EventType, SubjectKind
    from marketplace_escrow.domain.ports import IdentityProvider, StoreFactory, Stores
    from marketplace_escrow.services.events import EventBus

SYSTEM_ACTOR = "system"


class StaticIdentityProvider:
    """Identity provider backed by a fixed set of admin ids.

    Party roles come straight from the subject (buyer / seller ids); only
    admin membership needs an external answer.
    """

    def __init__(self, admin_ids: Iterable[str] = ()) -> None:
        self._admins = frozenset(admin_ids)

    async def is_admin(self, actor_id: str) -> bool:
        return actor_id in self._admins


@dataclass
class Transaction:
    """One unit of work under one subject lock."""

    stores: Stores
    events: list[DomainEvent] = field(default_factory=list)

    def emit(
        self,
        event_type: EventType,
        subject_kind: SubjectKind,
        subject_id: str,
        actor: str,
        occurred_at: datetime,
        old_status: str | None = None,
        new_status: str | None = None,
        **payload: Any,
    ) -> None:
        self.events.append(
            DomainEvent(
                event_type=event_type,
                subject_kind=subject_kind,
                subject_id=subject_id,
                actor=actor,
                occurred_at=occurred_at,
                old_status=old_status,
                new_status=new_status,
                payload=payload,
            )
        )


class ServiceContext:
    """Collaborators every service shares: stores, locks, bus, policy, clock."""

    def __init__(
        self,
        store_factory: StoreFactory,
        bus: EventBus,
        policy: MarketplacePolicy | None = None,
        identity: IdentityProvider | None = None,
        clock: Clock = utc_now,
        locks: SubjectLocks | None = None,
    ) -> None:
        self.store_factory = store_factory
        self.bus = bus
        self.policy = policy or MarketplacePolicy()
        self.identity = identity or StaticIdentityProvider()
        self.clock = clock
        self.locks = locks if locks is not None else SubjectLocks()

    def now(self) -> datetime:
        return self.clock()

    @asynccontextmanager
    async def transaction(self, subject_id: str) -> AsyncIterator[Transaction]:
        async with self.locks.hold(subject_id):
            async with self.store_factory() as stores:
                tx = Transaction(stores)
                yield tx
        await self.bus.publish(tx.events)

    @asynccontextmanager
    async def read(self) -> AsyncIterator[Stores]:
        """Lock-free unit of work for queries."""
        async with self.store_factory() as stores:
            yield stores

    # --- Guards ---

    async def require_admin(self, actor_id: str, action: str) -> None:
        if not await self.identity.is_admin(actor_id):
            raise ForbiddenError(actor_id, action)

    def require_text(self, value: str | None, field_name: str, min_length: int | None = None) -> str:
        """Strip ``value`` and enforce a minimum length (default: non-empty)."""
        text = (value or "").strip()
        required = 1 if min_length is None else min_length
        if len(text) < required:
            if required <= 1:
                raise ValidationFailedError(f"{field_name} is required", field=field_name)
            raise ValidationFailedError(
                f"{field_name} must be at least {required} characters",
                field=field_name,
            )
        return text

    def require_justification(self, value: str | None, field_name: str) -> str:
        return self.require_text(value, field_name, self.policy.min_justification_length)
