"""Tests for the SQLAlchemy stores over an in-memory SQLite database.

The same services run on top of SqlAlchemyStoreFactory, so these tests
cover the row mapping, optimistic versioning and the ledger guard.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import ADMIN, BUYER, PRICE, SELLER, RecordingSink, ledger_of, paid

from marketplace_escrow.domain.enums import (
    DisputeStatus,
    OrderStatus,
    SubjectKind,
    SubmissionStatus,
)
from marketplace_escrow.domain.exceptions import AlreadySettledError, ConcurrentModificationError
from marketplace_escrow.domain.settlement import PLATFORM_ACCOUNT
from marketplace_escrow.infrastructure.database import (
    SqlAlchemyStoreFactory,
    build_engine,
    create_tables,
    make_session_factory,
)
from marketplace_escrow.services.container import build_services


@pytest.fixture
async def sql_factory(clock):
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield SqlAlchemyStoreFactory(make_session_factory(engine), clock=clock)
    await engine.dispose()


@pytest.fixture
def sql_services(sql_factory, clock):
    return build_services(sql_factory, admin_ids=[ADMIN], sink=RecordingSink(), clock=clock)


async def _delivered(services) -> str:
    order = (
        await services.orders.place_order(
            BUYER, SELLER, PRICE, delivery_days=5, service_name="Logo", requirements="Blue"
        )
    ).unwrap()
    (await services.orders.accept(order.id, SELLER)).unwrap()
    (await services.orders.start(order.id, SELLER)).unwrap()
    (await services.orders.add_message(order.id, BUYER, "Looking forward to it")).unwrap()
    (await services.orders.submit_delivery(order.id, SELLER, "Done", ["logo.svg"], ["https://x.test"])).unwrap()
    return order.id


class TestOrderRoundTrip:
    async def test_order_fields_survive_storage(self, sql_services, clock) -> None:
        order_id = await _delivered(sql_services)
        order = (await sql_services.orders.get_order(order_id)).unwrap()
        assert order.status is OrderStatus.DELIVERED
        assert order.price == PRICE
        assert order.requirements == "Blue"
        assert order.deliverables.files == ("logo.svg",)
        assert order.messages[0].message == "Looking forward to it"
        assert order.review_deadline == order.delivered_at + sql_services.ctx.policy.review_period
        assert order.review_deadline.tzinfo is not None

    async def test_list_by_status(self, sql_services) -> None:
        order_id = await _delivered(sql_services)
        delivered = await sql_services.orders.list_orders_by_status(OrderStatus.DELIVERED)
        assert [o.id for o in delivered] == [order_id]


class TestSqlLedger:
    async def test_release_settles_once(self, sql_services) -> None:
        order_id = await _delivered(sql_services)
        (await sql_services.orders.release_payment(order_id, BUYER)).unwrap()
        again = await sql_services.orders.release_payment(order_id, BUYER)
        assert again.already_processed

        reservation = await ledger_of(sql_services, order_id)
        assert paid(reservation, SELLER) == PRICE
        assert len(reservation.parts) == 1

    async def test_settled_reservation_rejects_second_settlement(self, sql_factory) -> None:
        async with sql_factory() as stores:
            await stores.ledger.reserve("ORD-1", SubjectKind.ORDER, BUYER, Decimal("10"))
        async with sql_factory() as stores:
            await stores.ledger.refund("ORD-1")
        with pytest.raises(AlreadySettledError):
            async with sql_factory() as stores:
                await stores.ledger.release("ORD-1", SELLER, Decimal("10"))

    async def test_failed_unit_of_work_rolls_back(self, sql_factory) -> None:
        with pytest.raises(RuntimeError):
            async with sql_factory() as stores:
                await stores.ledger.reserve("ORD-2", SubjectKind.ORDER, BUYER, Decimal("10"))
                raise RuntimeError("boom")
        async with sql_factory() as stores:
            assert await stores.ledger.get("ORD-2") is None


class TestSqlVersioning:
    async def test_stale_write_rejected(self, sql_services, sql_factory) -> None:
        order_id = await _delivered(sql_services)
        async with sql_factory() as stores:
            stale = await stores.orders.get(order_id)
        (await sql_services.orders.release_payment(order_id, BUYER)).unwrap()

        with pytest.raises(ConcurrentModificationError):
            async with sql_factory() as stores:
                await stores.orders.compare_and_swap(stale, stale.version)


class TestSqlDisputes:
    async def test_partial_refund(self, sql_services) -> None:
        order_id = await _delivered(sql_services)
        dispute = (await sql_services.orders.open_dispute(order_id, BUYER, "Wrong colours")).unwrap()
        resolved = (
            await sql_services.disputes.resolve(dispute.id, ADMIN, "partial_refund", "Split after review")
        ).unwrap()
        assert resolved.status is DisputeStatus.RESOLVED_PARTIAL

        stored = (await sql_services.disputes.get_dispute(dispute.id)).unwrap()
        assert stored.resolution.payment.seller_payment == Decimal("45.00")

        reservation = await ledger_of(sql_services, order_id)
        assert paid(reservation, PLATFORM_ACCOUNT) == Decimal("5.00")

        order = (await sql_services.orders.get_order(order_id)).unwrap()
        assert order.status is OrderStatus.DISPUTE_RESOLVED
        assert order.resolution.notes == "Split after review"

    async def test_job_dispute_conflict(self, sql_services) -> None:
        subs = []
        for _ in range(2):
            sub = (await sql_services.submissions.submit_work("JOB-1", SELLER, BUYER, PRICE, "Work")).unwrap()
            (await sql_services.submissions.reject(sub.id, BUYER, "Half the rows are duplicated")).unwrap()
            subs.append(sub.id)
        (await sql_services.submissions.create_dispute(subs[0], SELLER, "Rows are unique")).unwrap()
        result = await sql_services.submissions.create_dispute(subs[1], SELLER, "Also unique")
        assert result.error.code == "CONFLICT"


class TestSqlSweeper:
    async def test_rejection_timeout(self, sql_services, clock) -> None:
        sub = (await sql_services.submissions.submit_work("JOB-1", SELLER, BUYER, PRICE, "Work")).unwrap()
        (await sql_services.submissions.reject(sub.id, BUYER, "Half the rows are duplicated")).unwrap()
        clock.advance(hours=48, minutes=1)

        first = await sql_services.sweeper.run_once()
        second = await sql_services.sweeper.run_once()
        assert first.applied == 1
        assert second.actions == []

        stored = (await sql_services.submissions.get_submission(sub.id)).unwrap()
        assert stored.status is SubmissionStatus.REJECTED_ACCEPTED
