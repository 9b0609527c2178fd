"""Tests for the job submission review / revision / rejection workflow."""

from __future__ import annotations

from datetime import timedelta

from conftest import BUYER, PRICE, SELLER, ledger_of, paid

from marketplace_escrow.domain.enums import EventType, SubmissionStatus


class TestSubmitWork:
    async def test_submit_reserves_payment(self, services, clock) -> None:
        sub = (
            await services.submissions.submit_work("JOB-7", SELLER, BUYER, "100", "First draft", ["draft.pdf"])
        ).unwrap()
        assert sub.id.startswith("SUB-")
        assert sub.status is SubmissionStatus.SUBMITTED
        assert sub.review_deadline == clock() + timedelta(days=3)
        assert sub.payload.files == ("draft.pdf",)

        reservation = await ledger_of(services, sub.id)
        assert reservation.payer_id == BUYER
        assert reservation.amount == PRICE

    async def test_requires_message(self, services) -> None:
        result = await services.submissions.submit_work("JOB-7", SELLER, BUYER, "100", "")
        assert result.error.code == "VALIDATION_ERROR"

    async def test_worker_and_employer_differ(self, services) -> None:
        result = await services.submissions.submit_work("JOB-7", SELLER, SELLER, "100", "Work")
        assert result.error.code == "VALIDATION_ERROR"


class TestReview:
    async def test_approve_pays_worker(self, services, submit_work) -> None:
        sub_id = await submit_work()
        sub = (await services.submissions.approve(sub_id, BUYER)).unwrap()
        assert sub.status is SubmissionStatus.APPROVED
        reservation = await ledger_of(services, sub_id)
        assert paid(reservation, SELLER) == PRICE

    async def test_worker_cannot_approve_own_work(self, services, submit_work) -> None:
        sub_id = await submit_work()
        result = await services.submissions.approve(sub_id, SELLER)
        assert result.error.code == "FORBIDDEN"

    async def test_reject_sets_deadline(self, services, submit_work, clock) -> None:
        sub_id = await submit_work()
        sub = (await services.submissions.reject(sub_id, BUYER, "Half the rows are duplicated")).unwrap()
        assert sub.status is SubmissionStatus.REJECTED
        assert sub.rejection_deadline == clock() + timedelta(hours=48)
        reservation = await ledger_of(services, sub_id)
        assert not reservation.is_settled

    async def test_reject_needs_justification(self, services, submit_work) -> None:
        sub_id = await submit_work()
        result = await services.submissions.reject(sub_id, BUYER, "bad")
        assert result.error.code == "VALIDATION_ERROR"

    async def test_reject_after_review_period_is_expired(self, services, submit_work, clock) -> None:
        sub_id = await submit_work()
        clock.advance(days=3, minutes=1)
        result = await services.submissions.reject(sub_id, BUYER, "Too late to complain now")
        assert result.error.code == "EXPIRED"

    async def test_manual_approve_after_review_period(self, services, submit_work, clock) -> None:
        sub_id = await submit_work()
        clock.advance(days=4)
        sub = (await services.submissions.approve(sub_id, BUYER)).unwrap()
        assert sub.status is SubmissionStatus.APPROVED


class TestRevisions:
    async def test_revision_round_trip(self, services, submit_work, clock) -> None:
        sub_id = await submit_work()
        sub = (await services.submissions.request_revision(sub_id, BUYER, "Please dedupe column B")).unwrap()
        assert sub.status is SubmissionStatus.REVISION_REQUESTED
        assert sub.revision_count == 1
        assert sub.revision_deadline == clock() + timedelta(hours=24)

        clock.advance(hours=2)
        sub = (await services.submissions.resubmit(sub_id, SELLER, "Deduped", links=["https://x.test/v2"])).unwrap()
        assert sub.status is SubmissionStatus.SUBMITTED
        assert sub.revision_deadline is None
        assert sub.review_deadline == clock() + timedelta(days=3)
        assert sub.payload.message == "Deduped"

    async def test_revision_limit(self, services, submit_work) -> None:
        sub_id = await submit_work()
        for n in range(2):
            (await services.submissions.request_revision(sub_id, BUYER, f"Round {n}")).unwrap()
            (await services.submissions.resubmit(sub_id, SELLER, f"Fixed round {n}")).unwrap()

        result = await services.submissions.request_revision(sub_id, BUYER, "One more time")
        assert result.error.code == "INVALID_STATE"
        sub = (await services.submissions.get_submission(sub_id)).unwrap()
        assert sub.revision_count == 2
        assert sub.status is SubmissionStatus.SUBMITTED

    async def test_late_resubmit_is_expired(self, services, submit_work, clock) -> None:
        sub_id = await submit_work()
        (await services.submissions.request_revision(sub_id, BUYER, "Please dedupe")).unwrap()
        clock.advance(hours=24, minutes=1)
        result = await services.submissions.resubmit(sub_id, SELLER, "Here you go")
        assert result.error.code == "EXPIRED"

    async def test_worker_cancels_revision(self, services, submit_work) -> None:
        sub_id = await submit_work()
        (await services.submissions.request_revision(sub_id, BUYER, "Please dedupe")).unwrap()
        sub = (await services.submissions.cancel_job_by_worker(sub_id, SELLER)).unwrap()
        assert sub.status is SubmissionStatus.CANCELLED_BY_WORKER
        reservation = await ledger_of(services, sub_id)
        assert paid(reservation, BUYER) == PRICE


class TestRejectionResponse:
    async def test_accept_rejection_refunds_employer(self, services, submit_work) -> None:
        sub_id = await submit_work()
        (await services.submissions.reject(sub_id, BUYER, "Half the rows are duplicated")).unwrap()
        sub = (await services.submissions.accept_rejection(sub_id, SELLER)).unwrap()
        assert sub.status is SubmissionStatus.REJECTED_ACCEPTED
        reservation = await ledger_of(services, sub_id)
        assert paid(reservation, BUYER) == PRICE

    async def test_cannot_accept_unrejected(self, services, submit_work) -> None:
        sub_id = await submit_work()
        result = await services.submissions.accept_rejection(sub_id, SELLER)
        assert result.error.code == "INVALID_STATE"
        reservation = await ledger_of(services, sub_id)
        assert not reservation.is_settled

    async def test_audit_trail(self, services, submit_work) -> None:
        sub_id = await submit_work()
        (await services.submissions.reject(sub_id, BUYER, "Half the rows are duplicated")).unwrap()
        (await services.submissions.accept_rejection(sub_id, SELLER)).unwrap()
        trail = await services.submissions.get_audit_trail(sub_id)
        assert [e.event_type for e in trail] == [
            EventType.SUBMISSION_CREATED,
            EventType.SUBMISSION_STATUS_CHANGED,
            EventType.SUBMISSION_STATUS_CHANGED,
        ]
        assert trail[-1].new_status == "rejected_accepted"


class TestQueries:
    async def test_list_by_job(self, services, submit_work) -> None:
        first = await submit_work("JOB-A")
        await submit_work("JOB-B")
        subs = await services.submissions.list_submissions(job_id="JOB-A")
        assert [s.id for s in subs] == [first]

    async def test_unknown_submission(self, services) -> None:
        result = await services.submissions.get_submission("SUB-NOPE")
        assert result.error.code == "NOT_FOUND"
