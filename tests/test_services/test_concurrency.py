"""Races between manual actions and the sweeper on the same subject.

Whatever interleaving asyncio picks, each reservation is settled once and
the loser of a race gets an already-processed result, never a second payout.
"""

from __future__ import annotations

import asyncio

from conftest import ADMIN, BUYER, PRICE, SELLER, ledger_of

from marketplace_escrow.domain.enums import OrderStatus


class TestSingleSettlement:
    async def test_release_races_auto_release(self, services, delivered_order, clock) -> None:
        order_id = await delivered_order()
        clock.advance(days=3, minutes=1)

        manual, automatic = await asyncio.gather(
            services.orders.release_payment(order_id, BUYER),
            services.orders.auto_release(order_id),
        )
        outcomes = sorted([manual.ok, automatic.ok])
        assert outcomes == [False, True]
        loser = automatic if manual.ok else manual
        assert loser.already_processed

        reservation = await ledger_of(services, order_id)
        assert reservation.settled_total == PRICE
        assert len(reservation.parts) == 1

    async def test_release_races_sweeper_pass(self, services, delivered_order, clock) -> None:
        order_id = await delivered_order()
        clock.advance(days=3, minutes=1)

        manual, report = await asyncio.gather(
            services.orders.release_payment(order_id, BUYER),
            services.sweeper.run_once(),
        )
        applied = report.applied + (1 if manual.ok else 0)
        assert applied == 1
        order = (await services.orders.get_order(order_id)).unwrap()
        assert order.status is OrderStatus.COMPLETED
        assert (await ledger_of(services, order_id)).settled_total == PRICE

    async def test_cancel_races_decline(self, services, place_order) -> None:
        order_id = await place_order()
        (await services.orders.accept(order_id, SELLER)).unwrap()

        results = await asyncio.gather(
            services.orders.cancel(order_id, BUYER, "Found another designer"),
            services.orders.cancel(order_id, SELLER, "Cannot do it after all"),
        )
        assert sum(r.ok for r in results) == 1
        assert (await ledger_of(services, order_id)).settled_total == PRICE

    async def test_concurrent_resolutions(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()

        results = await asyncio.gather(
            services.disputes.resolve(dispute.id, ADMIN, "refund_buyer", "Refund after review"),
            services.disputes.resolve(dispute.id, ADMIN, "pay_seller", "Payout after review"),
        )
        assert sum(r.ok for r in results) == 1
        assert [r.error.code for r in results if not r.ok] == ["ALREADY_SETTLED"]
        assert (await ledger_of(services, order_id)).settled_total == PRICE

    async def test_many_subjects_in_parallel(self, services, place_order) -> None:
        order_ids = [await place_order() for _ in range(10)]
        results = await asyncio.gather(*(services.orders.accept(o, SELLER) for o in order_ids))
        assert all(r.ok for r in results)
        assert len(services.ctx.locks) == 0
