"""Tests for the event bus and the notifications rendered from domain events."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from conftest import BUYER, SELLER

from marketplace_escrow.domain.enums import EventType, SubjectKind
from marketplace_escrow.domain.models import DomainEvent
from marketplace_escrow.services.events import EventBus
from marketplace_escrow.services.notifications import render


def _event(event_type: EventType, **payload) -> DomainEvent:
    return DomainEvent(
        event_type=event_type,
        subject_kind=SubjectKind.ORDER,
        subject_id="ORD-1",
        actor=BUYER,
        occurred_at=datetime(2025, 1, 6, tzinfo=UTC),
        payload={"buyer_id": BUYER, "seller_id": SELLER, "service_name": "Logo", **payload},
    )


class TestRender:
    def test_order_placed_notifies_seller(self) -> None:
        notes = render(_event(EventType.ORDER_PLACED, price="100.00"))
        assert [n.user_id for n in notes] == [SELLER]
        assert "$100.00" in notes[0].description

    def test_dispute_opened_notifies_both(self) -> None:
        notes = render(_event(EventType.DISPUTE_OPENED, dispute_id="DSP-1"))
        assert {n.user_id for n in notes} == {BUYER, SELLER}
        assert all(n.action_url == "/disputes/DSP-1" for n in notes)

    def test_message_goes_to_recipients(self) -> None:
        notes = render(_event(EventType.MESSAGE_ADDED, recipients=[SELLER], preview="Hi"))
        assert [(n.user_id, n.description) for n in notes] == [(SELLER, "Hi")]

    def test_unmapped_event_renders_nothing(self) -> None:
        assert render(_event(EventType.REQUIREMENTS_UPDATED)) == []


class TestEventBus:
    async def test_failing_handler_does_not_block_others(self) -> None:
        bus = EventBus(handler_timeout=1.0)
        seen: list[str] = []

        async def broken(event: DomainEvent) -> None:
            raise RuntimeError("smtp down")

        async def recorder(event: DomainEvent) -> None:
            seen.append(event.subject_id)

        bus.subscribe(broken)
        bus.subscribe(recorder)
        await bus.publish([_event(EventType.ORDER_PLACED, price="1.00")])
        await bus.drain()
        assert seen == ["ORD-1"]
        assert bus.pending == 0

    async def test_slow_handler_times_out(self) -> None:
        bus = EventBus(handler_timeout=0.01)

        async def slow(event: DomainEvent) -> None:
            await asyncio.sleep(1)

        bus.subscribe(slow)
        await bus.publish([_event(EventType.ORDER_PLACED, price="1.00")])
        await bus.drain()
        assert bus.pending == 0


class TestDeliveredThroughServices:
    async def test_lifecycle_notifications(self, services, sink, delivered_order) -> None:
        order_id = await delivered_order()
        (await services.orders.release_payment(order_id, BUYER)).unwrap()
        await services.bus.drain()

        assert "New Order Received" in sink.titles_for(SELLER)
        assert "Work Delivered" in sink.titles_for(BUYER)
        assert "Payment Released" in sink.titles_for(SELLER)
        assert "Order Completed" in sink.titles_for(BUYER)

    async def test_failed_command_publishes_nothing(self, services, sink, place_order) -> None:
        order_id = await place_order()
        await services.bus.drain()
        before = len(sink.sent)
        result = await services.orders.release_payment(order_id, BUYER)
        await services.bus.drain()
        assert not result.ok
        assert len(sink.sent) == before


class TestEventTransitions:
    @staticmethod
    def _record(services) -> list[DomainEvent]:
        seen: list[DomainEvent] = []

        async def recorder(event: DomainEvent) -> None:
            seen.append(event)

        services.bus.subscribe(recorder)
        return seen

    @staticmethod
    def _only(seen: list[DomainEvent], event_type: EventType) -> DomainEvent:
        matches = [e for e in seen if e.event_type is event_type]
        assert len(matches) == 1
        return matches[0]

    async def test_release_carries_order_transition(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        seen = self._record(services)
        (await services.orders.release_payment(order_id, BUYER)).unwrap()
        await services.bus.drain()

        event = self._only(seen, EventType.PAYMENT_RELEASED)
        assert (event.old_status, event.new_status) == ("delivered", "completed")
        assert event.actor == BUYER
        assert event.subject_id == order_id

    async def test_dispute_opened_carries_subject_transition(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        seen = self._record(services)
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Wrong colours")).unwrap()
        await services.bus.drain()

        event = self._only(seen, EventType.DISPUTE_OPENED)
        assert (event.old_status, event.new_status) == ("delivered", "disputed")
        assert event.payload["dispute_id"] == dispute.id
        assert event.payload["dispute_status"] == "pending"

    async def test_job_approval_carries_submission_transition(self, services, submit_work) -> None:
        sub_id = await submit_work()
        seen = self._record(services)
        (await services.submissions.approve(sub_id, BUYER)).unwrap()
        await services.bus.drain()

        event = self._only(seen, EventType.PAYMENT_RELEASED)
        assert (event.old_status, event.new_status) == ("submitted", "approved")
        assert event.subject_kind is SubjectKind.JOB
