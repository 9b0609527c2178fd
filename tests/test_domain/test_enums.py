"""Tests for domain enumerations."""

from __future__ import annotations

from marketplace_escrow.domain.enums import (
    DisputeStatus,
    EventType,
    OrderStatus,
    ResolutionDecision,
    SubmissionStatus,
)


class TestOrderStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "awaiting_acceptance", "pending", "in_progress", "delivered",
            "completed", "cancelled", "disputed", "dispute_resolved",
        }
        actual = {s.value for s in OrderStatus}
        assert actual == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(OrderStatus.PENDING, str)
        assert OrderStatus.PENDING == "pending"

    def test_terminal_statuses(self) -> None:
        terminal = {s for s in OrderStatus if s.is_terminal}
        assert terminal == {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.DISPUTE_RESOLVED}


class TestSubmissionStatus:
    def test_disputed_is_not_terminal(self) -> None:
        assert not SubmissionStatus.DISPUTED.is_terminal
        assert SubmissionStatus.DISPUTE_RESOLVED.is_terminal

    def test_worker_outcomes_are_terminal(self) -> None:
        assert SubmissionStatus.REJECTED_ACCEPTED.is_terminal
        assert SubmissionStatus.CANCELLED_BY_WORKER.is_terminal
        assert not SubmissionStatus.REVISION_REQUESTED.is_terminal


class TestDisputeStatus:
    def test_open_statuses(self) -> None:
        assert DisputeStatus.PENDING.is_open
        assert DisputeStatus.UNDER_REVIEW.is_open
        assert not DisputeStatus.RESOLVED_PARTIAL.is_open

    def test_decision_maps_to_status(self) -> None:
        assert ResolutionDecision.REFUND_BUYER.dispute_status is DisputeStatus.RESOLVED_FAVOR_BUYER
        assert ResolutionDecision.PAY_SELLER.dispute_status is DisputeStatus.RESOLVED_FAVOR_SELLER
        assert ResolutionDecision.PARTIAL_REFUND.dispute_status is DisputeStatus.RESOLVED_PARTIAL


class TestEventType:
    def test_all_event_types_exist(self) -> None:
        # 4 lifecycle + 5 order side-channel + 2 settlement + 4 dispute
        assert len(EventType) == 15

    def test_event_type_is_str_enum(self) -> None:
        assert isinstance(EventType.ORDER_PLACED, str)
