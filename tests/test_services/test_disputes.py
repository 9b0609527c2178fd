"""Tests for the DisputeService.

These tests verify that:
    1. Opening a dispute moves the subject to disputed, once.
    2. Each decision settles the escrow with the documented split.
    3. A dispute is resolved exactly once.
    4. Only parties open disputes and only admins resolve them.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import ADMIN, BUYER, PRICE, SELLER, STRANGER, ledger_of, paid

from marketplace_escrow.domain.enums import (
    ActorRole,
    DisputeStatus,
    OrderStatus,
    SubjectKind,
    SubmissionStatus,
)
from marketplace_escrow.domain.settlement import PLATFORM_ACCOUNT

NOTES = "Reviewed both sides of the thread"


class TestOpenOrderDispute:
    async def test_open_moves_order_to_disputed(self, services, delivered_order, clock) -> None:
        order_id = await delivered_order()
        dispute = (
            await services.orders.open_dispute(order_id, BUYER, "Colours are wrong", evidence=["brief.pdf"])
        ).unwrap()
        assert dispute.status is DisputeStatus.PENDING
        assert dispute.opened_by_role is ActorRole.BUYER
        assert dispute.amount == PRICE
        assert dispute.evidence == ["brief.pdf"]

        order = (await services.orders.get_order(order_id)).unwrap()
        assert order.status is OrderStatus.DISPUTED
        assert order.disputed_at == clock()

    async def test_seller_may_open(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, SELLER, "Buyer is unresponsive")).unwrap()
        assert dispute.opened_by_role is ActorRole.SELLER

    async def test_duplicate_dispute_conflicts(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        first = (await services.orders.open_dispute(order_id, BUYER, "Missing files")).unwrap()
        second = await services.disputes.open(SubjectKind.ORDER, order_id, SELLER, "Buyer is unresponsive")
        assert second.error.code == "CONFLICT"

        unchanged = (await services.disputes.get_dispute(first.id)).unwrap()
        assert unchanged.version == first.version
        assert len(await services.disputes.list_disputes()) == 1

    async def test_stranger_cannot_open(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        result = await services.orders.open_dispute(order_id, STRANGER, "I object")
        assert result.error.code == "FORBIDDEN"

    async def test_not_before_delivery(self, services, in_progress_order) -> None:
        order_id = await in_progress_order()
        result = await services.orders.open_dispute(order_id, BUYER, "Too slow")
        assert result.error.code == "INVALID_STATE"

    async def test_not_after_review_deadline(self, services, delivered_order, clock) -> None:
        order_id = await delivered_order()
        clock.advance(days=3, minutes=1)
        result = await services.orders.open_dispute(order_id, BUYER, "Too late now")
        assert result.error.code == "EXPIRED"


class TestResolveOrderDispute:
    @pytest.mark.parametrize(
        ("decision", "buyer", "seller", "fee", "status"),
        [
            ("refund_buyer", "100.00", "0", "0", DisputeStatus.RESOLVED_FAVOR_BUYER),
            ("pay_seller", "0", "95.00", "5.00", DisputeStatus.RESOLVED_FAVOR_SELLER),
            ("partial_refund", "50.00", "45.00", "5.00", DisputeStatus.RESOLVED_PARTIAL),
        ],
    )
    async def test_split(self, services, delivered_order, decision, buyer, seller, fee, status) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()

        resolved = (await services.disputes.resolve(dispute.id, ADMIN, decision, NOTES)).unwrap()
        assert resolved.status is status
        assert resolved.resolution.payment.total == PRICE

        reservation = await ledger_of(services, order_id)
        assert paid(reservation, BUYER) == Decimal(buyer)
        assert paid(reservation, SELLER) == Decimal(seller)
        assert paid(reservation, PLATFORM_ACCOUNT) == Decimal(fee)
        assert reservation.settled_total == PRICE

        order = (await services.orders.get_order(order_id)).unwrap()
        assert order.status is OrderStatus.DISPUTE_RESOLVED
        assert order.resolution.decision.value == decision

    async def test_second_resolve_is_already_settled(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        (await services.disputes.resolve(dispute.id, ADMIN, "refund_buyer", NOTES)).unwrap()

        again = await services.disputes.resolve(dispute.id, ADMIN, "pay_seller", NOTES)
        assert again.error.code == "ALREADY_SETTLED"
        assert again.already_processed

        reservation = await ledger_of(services, order_id)
        assert paid(reservation, SELLER) == Decimal("0")

    async def test_resolve_through_order(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        resolved = (await services.orders.resolve_dispute(order_id, ADMIN, "pay_seller", NOTES)).unwrap()
        assert resolved.status is DisputeStatus.RESOLVED_FAVOR_SELLER

        again = await services.orders.resolve_dispute(order_id, ADMIN, "pay_seller", NOTES)
        assert again.error.code == "ALREADY_SETTLED"

    async def test_only_admin_resolves(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        result = await services.disputes.resolve(dispute.id, BUYER, "refund_buyer", NOTES)
        assert result.error.code == "FORBIDDEN"

    async def test_unknown_decision(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        result = await services.disputes.resolve(dispute.id, ADMIN, "coin_flip", NOTES)
        assert result.error.code == "INVALID_DECISION"
        assert not (await ledger_of(services, order_id)).is_settled

    async def test_notes_required(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        result = await services.disputes.resolve(dispute.id, ADMIN, "refund_buyer", "ok")
        assert result.error.code == "VALIDATION_ERROR"


class TestReview:
    async def test_evidence_and_review(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        dispute = (await services.disputes.add_evidence(dispute.id, SELLER, ["chat.png"])).unwrap()
        assert dispute.evidence == ["chat.png"]

        dispute = (await services.disputes.mark_under_review(dispute.id, ADMIN)).unwrap()
        assert dispute.status is DisputeStatus.UNDER_REVIEW
        assert dispute.reviewed_by == ADMIN

        again = await services.disputes.mark_under_review(dispute.id, ADMIN)
        assert again.error.code == "INVALID_STATE"

    async def test_no_evidence_after_resolution(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        dispute = (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        (await services.disputes.resolve(dispute.id, ADMIN, "refund_buyer", NOTES)).unwrap()
        result = await services.disputes.add_evidence(dispute.id, BUYER, ["late.png"])
        assert result.error.code == "INVALID_STATE"

    async def test_list_for_user(self, services, delivered_order) -> None:
        order_id = await delivered_order()
        (await services.orders.open_dispute(order_id, BUYER, "Not as described")).unwrap()
        assert len(await services.disputes.list_disputes_for_user(SELLER)) == 1
        assert await services.disputes.list_disputes_for_user(STRANGER) == []


class TestJobDisputes:
    async def test_worker_disputes_rejection(self, services, submit_work) -> None:
        sub_id = await submit_work()
        (await services.submissions.reject(sub_id, BUYER, "Half the rows are duplicated")).unwrap()
        dispute = (await services.submissions.create_dispute(sub_id, SELLER, "Rows are unique")).unwrap()
        assert dispute.subject_kind is SubjectKind.JOB
        assert dispute.job_id == "JOB-1"

        sub = (await services.submissions.get_submission(sub_id)).unwrap()
        assert sub.status is SubmissionStatus.DISPUTED

        resolved = (await services.disputes.resolve(dispute.id, ADMIN, "partial_refund", NOTES)).unwrap()
        assert resolved.status is DisputeStatus.RESOLVED_PARTIAL
        sub = (await services.submissions.get_submission(sub_id)).unwrap()
        assert sub.status is SubmissionStatus.DISPUTE_RESOLVED
        reservation = await ledger_of(services, sub_id)
        assert paid(reservation, SELLER) == Decimal("45.00")

    async def test_employer_cannot_open_job_dispute(self, services, submit_work) -> None:
        sub_id = await submit_work()
        (await services.submissions.reject(sub_id, BUYER, "Half the rows are duplicated")).unwrap()
        result = await services.disputes.open(SubjectKind.JOB, sub_id, BUYER, "Pre-empting")
        assert result.error.code == "FORBIDDEN"

    async def test_one_open_dispute_per_job(self, services, submit_work) -> None:
        first = await submit_work("JOB-9")
        second = await submit_work("JOB-9")
        for sub_id in (first, second):
            (await services.submissions.reject(sub_id, BUYER, "Half the rows are duplicated")).unwrap()
        (await services.submissions.create_dispute(first, SELLER, "Rows are unique")).unwrap()
        result = await services.submissions.create_dispute(second, SELLER, "Also unique")
        assert result.error.code == "CONFLICT"

    async def test_not_after_rejection_deadline(self, services, submit_work, clock) -> None:
        sub_id = await submit_work()
        (await services.submissions.reject(sub_id, BUYER, "Half the rows are duplicated")).unwrap()
        clock.advance(hours=48, minutes=1)
        result = await services.submissions.create_dispute(sub_id, SELLER, "Rows are unique")
        assert result.error.code == "EXPIRED"
