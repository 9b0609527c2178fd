"""Tests for the in-memory stores, the escrow ledger rules and the subject locks."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from marketplace_escrow.domain.enums import LedgerEntryKind, OrderStatus, SubjectKind
from marketplace_escrow.domain.exceptions import (
    AlreadySettledError,
    ConcurrentModificationError,
    ConflictError,
    OverSettlementError,
    ReservationMissingError,
)
from marketplace_escrow.domain.models import LedgerPart, Order
from marketplace_escrow.infrastructure.locks import SubjectLocks
from marketplace_escrow.infrastructure.memory import MemoryStoreFactory

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)


def _order(order_id: str = "ORD-1") -> Order:
    return Order(
        id=order_id,
        buyer_id="buyer",
        seller_id="seller",
        price=Decimal("100.00"),
        delivery_days=3,
        status=OrderStatus.AWAITING_ACCEPTANCE,
        created_at=NOW,
        acceptance_deadline=NOW,
    )


@pytest.fixture
def factory() -> MemoryStoreFactory:
    return MemoryStoreFactory(clock=lambda: NOW)


class TestVersionedStore:
    async def test_compare_and_swap_bumps_version(self, factory) -> None:
        async with factory() as stores:
            order = await stores.orders.add(_order())
            order.status = OrderStatus.PENDING
            saved = await stores.orders.compare_and_swap(order, order.version)
        assert saved.version == order.version + 1

    async def test_stale_version_rejected(self, factory) -> None:
        async with factory() as stores:
            await stores.orders.add(_order())
        async with factory() as stores:
            order = await stores.orders.get("ORD-1")
            await stores.orders.compare_and_swap(order, order.version)
            with pytest.raises(ConcurrentModificationError):
                await stores.orders.compare_and_swap(order, order.version)

    async def test_duplicate_add_conflicts(self, factory) -> None:
        async with factory() as stores:
            await stores.orders.add(_order())
            with pytest.raises(ConflictError):
                await stores.orders.add(_order())

    async def test_reads_are_copies(self, factory) -> None:
        async with factory() as stores:
            await stores.orders.add(_order())
        async with factory() as stores:
            order = await stores.orders.get("ORD-1")
            order.status = OrderStatus.CANCELLED
            again = await stores.orders.get("ORD-1")
        assert again.status is OrderStatus.AWAITING_ACCEPTANCE


class TestUnitOfWork:
    async def test_failure_rolls_back_everything(self, factory) -> None:
        with pytest.raises(RuntimeError):
            async with factory() as stores:
                await stores.orders.add(_order())
                await stores.ledger.reserve("ORD-1", SubjectKind.ORDER, "buyer", Decimal("100"))
                raise RuntimeError("ledger unreachable")

        async with factory() as stores:
            assert await stores.orders.get("ORD-1") is None
            assert await stores.ledger.get("ORD-1") is None


class TestLedger:
    async def test_single_settlement(self, factory) -> None:
        async with factory() as stores:
            await stores.ledger.reserve("ORD-1", SubjectKind.ORDER, "buyer", Decimal("100"))
            settled = await stores.ledger.release("ORD-1", "seller", Decimal("100"))
            assert settled.is_settled
            with pytest.raises(AlreadySettledError):
                await stores.ledger.refund("ORD-1")

    async def test_refund_returns_to_payer(self, factory) -> None:
        async with factory() as stores:
            await stores.ledger.reserve("ORD-1", SubjectKind.ORDER, "buyer", Decimal("100"))
            settled = await stores.ledger.refund("ORD-1")
        assert settled.parts == (LedgerPart("buyer", Decimal("100.00"), LedgerEntryKind.REFUND),)

    async def test_over_settlement_rejected(self, factory) -> None:
        async with factory() as stores:
            await stores.ledger.reserve("ORD-1", SubjectKind.ORDER, "buyer", Decimal("100"))
            with pytest.raises(OverSettlementError):
                await stores.ledger.split(
                    "ORD-1",
                    [
                        LedgerPart("buyer", Decimal("60"), LedgerEntryKind.REFUND),
                        LedgerPart("seller", Decimal("60"), LedgerEntryKind.PAYOUT),
                    ],
                )

    async def test_missing_reservation(self, factory) -> None:
        async with factory() as stores:
            with pytest.raises(ReservationMissingError):
                await stores.ledger.refund("ORD-404")

    async def test_double_reserve_conflicts(self, factory) -> None:
        async with factory() as stores:
            await stores.ledger.reserve("ORD-1", SubjectKind.ORDER, "buyer", Decimal("100"))
            with pytest.raises(ConflictError):
                await stores.ledger.reserve("ORD-1", SubjectKind.ORDER, "buyer", Decimal("100"))


class TestSubjectLocks:
    async def test_same_subject_is_serialized(self) -> None:
        locks = SubjectLocks()
        trace: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("ORD-1"):
                trace.append(f"{name}-in")
                await asyncio.sleep(0.01)
                trace.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert trace in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
        assert len(locks) == 0

    async def test_different_subjects_do_not_wait(self) -> None:
        locks = SubjectLocks()
        async with locks.hold("ORD-1"):
            await asyncio.wait_for(self._enter(locks, "ORD-2"), timeout=0.5)

    @staticmethod
    async def _enter(locks: SubjectLocks, subject_id: str) -> None:
        async with locks.hold(subject_id):
            pass
