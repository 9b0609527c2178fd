"""Submission Service: review, revision and rejection of job work.

Job-style engagements pay per submission. The employer (paying side)
reviews a worker's submission and may approve it, reject it, or ask for a
bounded number of revisions. Rejections and revision requests start a
worker response deadline; the sweeper applies the automatic outcome when
it passes.

Money stays reserved until a terminal outcome:
    approved / auto_approved       full release to the worker
    rejected_accepted              full refund to the employer
    cancelled_by_worker            full refund to the employer
    dispute_resolved               admin split (DisputeService)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from marketplace_escrow.domain.clock import deadline_after, is_past
from marketplace_escrow.domain.enums import (
    ActorRole,
    EventType,
    SubjectKind,
    SubmissionStatus,
)
from marketplace_escrow.domain.exceptions import (
    AlreadyCompletedError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    SubmissionNotFoundError,
    ValidationFailedError,
)
from marketplace_escrow.domain.models import Deliverables, Submission, to_money
from marketplace_escrow.domain.results import command
from marketplace_escrow.domain.state_machine import SubmissionStateMachine, validate_transition
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.services.context import SYSTEM_ACTOR

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from decimal import Decimal

    from marketplace_escrow.domain.models import AuditEntry, Dispute
    from marketplace_escrow.domain.results import CommandResult
    from marketplace_escrow.services.context import ServiceContext, Transaction
    from marketplace_escrow.services.disputes import DisputeService

logger = get_logger(__name__)


class SubmissionService:
    """Manages work submissions and their review workflow."""

    def __init__(self, ctx: ServiceContext, disputes: DisputeService) -> None:
        self._ctx = ctx
        self._disputes = disputes

    # ------------------------------------------------------------------
    # Worker: submit
    # ------------------------------------------------------------------

    @command
    async def submit_work(
        self,
        job_id: str,
        worker_id: str,
        employer_id: str,
        payment_amount: Decimal | int | str,
        message: str,
        files: Sequence[str] = (),
        links: Sequence[str] = (),
        submission_id: str | None = None,
    ) -> Submission:
        """Create a submission awaiting review and reserve its payment."""
        amount = to_money(payment_amount)
        if amount <= 0:
            raise ValidationFailedError("Payment amount must be positive", field="payment_amount")
        if worker_id == employer_id:
            raise ValidationFailedError("Worker and employer must differ", field="worker_id")
        message = self._ctx.require_text(message, "message")

        now = self._ctx.now()
        submission_id = submission_id or f"SUB-{uuid.uuid4().hex[:12].upper()}"
        submission = Submission(
            id=submission_id,
            job_id=job_id,
            worker_id=worker_id,
            employer_id=employer_id,
            payment_amount=amount,
            status=SubmissionStatus.SUBMITTED,
            submitted_at=now,
            payload=Deliverables(message, tuple(files), tuple(links), now),
            review_deadline=deadline_after(now, self._ctx.policy.submission_review_period),
        )

        async with self._ctx.transaction(submission_id) as tx:
            submission = await tx.stores.submissions.add(submission)
            await tx.stores.ledger.reserve(submission_id, SubjectKind.JOB, employer_id, amount)
            await tx.stores.audit.record(
                SubjectKind.JOB,
                submission_id,
                EventType.SUBMISSION_CREATED,
                actor=worker_id,
                new_status=submission.status.value,
                metadata={"job_id": job_id, "amount": str(amount)},
            )
            tx.emit(
                EventType.SUBMISSION_CREATED,
                SubjectKind.JOB,
                submission_id,
                worker_id,
                now,
                new_status=submission.status.value,
                **self._labels(submission),
                deadline=submission.review_deadline.isoformat(),
            )

        logger.info("submission.created", submission_id=submission_id, job_id=job_id, amount=str(amount))
        return submission

    # ------------------------------------------------------------------
    # Employer: review
    # ------------------------------------------------------------------

    @command
    async def approve(self, submission_id: str, employer_id: str) -> Submission:
        """Employer approves; the full payment goes to the worker."""
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            self._require_role(sub, employer_id, ActorRole.BUYER, "approve this submission")
            sub = await self._approve(tx, sub, "employer_approves", employer_id)
        logger.info("submission.approved", submission_id=submission_id)
        return sub

    @command
    async def reject(self, submission_id: str, employer_id: str, reason: str) -> Submission:
        """Employer rejects; the worker must accept or dispute before the deadline."""
        reason = self._ctx.require_justification(reason, "reason")
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            self._require_role(sub, employer_id, ActorRole.BUYER, "reject this submission")
            self._ensure_review_open(sub)

            now = self._ctx.now()
            old = self._advance(sub, "employer_rejects")
            sub.reviewed_at = now
            sub.rejection_reason = reason
            sub.rejection_deadline = deadline_after(now, self._ctx.policy.rejection_timeout)
            sub = await self._save(
                tx, sub, old, employer_id, now, {"reason": reason}, deadline=sub.rejection_deadline
            )
        logger.info(
            "submission.rejected",
            submission_id=submission_id,
            rejection_deadline=sub.rejection_deadline.isoformat(),
        )
        return sub

    @command
    async def request_revision(self, submission_id: str, employer_id: str, notes: str) -> Submission:
        """Employer asks for a revision, up to ``max_revision_requests`` times."""
        notes = self._ctx.require_text(notes, "notes")
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            self._require_role(sub, employer_id, ActorRole.BUYER, "request a revision")
            limit = self._ctx.policy.max_revision_requests
            if sub.status is SubmissionStatus.SUBMITTED and sub.revision_count >= limit:
                raise InvalidStateError(
                    sub.status.value,
                    "request_revision",
                    f"Revision limit of {limit} reached for {submission_id}",
                )
            self._ensure_review_open(sub)

            now = self._ctx.now()
            old = self._advance(sub, "employer_requests_revision")
            sub.revision_count += 1
            sub.reviewed_at = now
            sub.revision_notes = notes
            sub.revision_deadline = deadline_after(now, self._ctx.policy.revision_timeout)
            sub = await self._save(
                tx,
                sub,
                old,
                employer_id,
                now,
                {"notes": notes, "revision_count": sub.revision_count},
                deadline=sub.revision_deadline,
            )
        logger.info(
            "submission.revision_requested",
            submission_id=submission_id,
            revision_count=sub.revision_count,
        )
        return sub

    # ------------------------------------------------------------------
    # Worker: respond
    # ------------------------------------------------------------------

    @command
    async def accept_rejection(self, submission_id: str, worker_id: str) -> Submission:
        """Worker accepts the rejection; the employer is refunded in full."""
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            self._require_role(sub, worker_id, ActorRole.SELLER, "accept this rejection")
            sub = await self._refund(tx, sub, "rejection_accepted", worker_id)
        logger.info("submission.rejection_accepted", submission_id=submission_id)
        return sub

    async def create_dispute(
        self,
        submission_id: str,
        worker_id: str,
        reason: str,
        details: str = "",
        evidence: Sequence[str] = (),
    ) -> CommandResult[Dispute]:
        """Worker disputes a rejection instead of accepting it."""
        return await self._disputes.open(SubjectKind.JOB, submission_id, worker_id, reason, details, evidence)

    @command
    async def resubmit(
        self,
        submission_id: str,
        worker_id: str,
        message: str,
        files: Sequence[str] = (),
        links: Sequence[str] = (),
    ) -> Submission:
        """Worker hands in revised work; review starts over."""
        message = self._ctx.require_text(message, "message")
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            self._require_role(sub, worker_id, ActorRole.SELLER, "resubmit this work")
            self._ensure_worker_window(sub, sub.revision_deadline)

            now = self._ctx.now()
            old = self._advance(sub, "worker_resubmits")
            sub.payload = Deliverables(message, tuple(files), tuple(links), now)
            sub.reviewed_at = None
            sub.revision_deadline = None
            sub.review_deadline = deadline_after(now, self._ctx.policy.submission_review_period)
            sub = await self._save(
                tx,
                sub,
                old,
                worker_id,
                now,
                {"revision_count": sub.revision_count},
                deadline=sub.review_deadline,
            )
        logger.info("submission.resubmitted", submission_id=submission_id)
        return sub

    @command
    async def cancel_job_by_worker(self, submission_id: str, worker_id: str) -> Submission:
        """Worker gives up on a revision; the employer is refunded in full."""
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            self._require_role(sub, worker_id, ActorRole.SELLER, "cancel this job")
            sub = await self._refund(tx, sub, "worker_cancels", worker_id)
        logger.info("submission.cancelled_by_worker", submission_id=submission_id)
        return sub

    # ------------------------------------------------------------------
    # Automatic actions (timeout sweeper)
    # ------------------------------------------------------------------

    @command
    async def auto_approve(self, submission_id: str) -> Submission:
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            if not (
                self._ctx.policy.auto_release_payment
                and sub.status is SubmissionStatus.SUBMITTED
                and is_past(sub.review_deadline, self._ctx.now())
            ):
                raise InvalidStateError(sub.status.value, "review_period_elapsed", "Nothing to auto-approve")
            sub = await self._approve(tx, sub, "review_period_elapsed", SYSTEM_ACTOR)
        logger.info("sweeper.submission_auto_approved", submission_id=submission_id)
        return sub

    @command
    async def expire_rejection(self, submission_id: str) -> Submission:
        """Worker ignored a rejection: treat it as accepted."""
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            if not (
                self._ctx.policy.enable_automatic_refunds
                and sub.status is SubmissionStatus.REJECTED
                and is_past(sub.rejection_deadline, self._ctx.now())
            ):
                raise InvalidStateError(sub.status.value, "rejection_accepted", "Nothing to expire")
            sub = await self._refund(tx, sub, "rejection_accepted", SYSTEM_ACTOR)
        logger.info("sweeper.submission_rejection_expired", submission_id=submission_id)
        return sub

    @command
    async def expire_revision(self, submission_id: str) -> Submission:
        """Worker never resubmitted: cancel on their behalf."""
        async with self._ctx.transaction(submission_id) as tx:
            sub = await self._load(tx, submission_id)
            if not (
                self._ctx.policy.enable_automatic_refunds
                and sub.status is SubmissionStatus.REVISION_REQUESTED
                and is_past(sub.revision_deadline, self._ctx.now())
            ):
                raise InvalidStateError(sub.status.value, "worker_cancels", "Nothing to expire")
            sub = await self._refund(tx, sub, "worker_cancels", SYSTEM_ACTOR)
        logger.info("sweeper.submission_revision_expired", submission_id=submission_id)
        return sub

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @command
    async def get_submission(self, submission_id: str) -> Submission:
        async with self._ctx.read() as stores:
            sub = await stores.submissions.get(submission_id)
        if sub is None:
            raise SubmissionNotFoundError(submission_id)
        return sub

    async def list_submissions(
        self,
        job_id: str | None = None,
        worker_id: str | None = None,
        employer_id: str | None = None,
        status: SubmissionStatus | str | None = None,
    ) -> list[Submission]:
        async with self._ctx.read() as stores:
            return await stores.submissions.list(
                job_id=job_id,
                worker_id=worker_id,
                employer_id=employer_id,
                statuses=[SubmissionStatus(status)] if status else None,
            )

    async def get_audit_trail(self, submission_id: str) -> list[AuditEntry]:
        async with self._ctx.read() as stores:
            return await stores.audit.list_for_subject(submission_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load(self, tx: Transaction, submission_id: str) -> Submission:
        sub = await tx.stores.submissions.get(submission_id)
        if sub is None:
            raise SubmissionNotFoundError(submission_id)
        return sub

    @staticmethod
    def _require_role(sub: Submission, actor_id: str, role: ActorRole, action: str) -> None:
        if sub.role_of(actor_id) is not role:
            raise ForbiddenError(actor_id, action)

    @staticmethod
    def _advance(sub: Submission, event_name: str) -> SubmissionStatus:
        old = sub.status
        sub.status = SubmissionStatus(validate_transition(old.value, event_name, SubmissionStateMachine))
        return old

    @staticmethod
    def _labels(sub: Submission) -> dict[str, Any]:
        return {"buyer_id": sub.employer_id, "seller_id": sub.worker_id, "job_id": sub.job_id}

    def _ensure_review_open(self, sub: Submission) -> None:
        """Reject / revise are refused once auto-approval is already due."""
        if (
            sub.status is SubmissionStatus.SUBMITTED
            and self._ctx.policy.auto_release_payment
            and is_past(sub.review_deadline, self._ctx.now())
        ):
            raise ExpiredError(sub.id, sub.review_deadline.isoformat())  # type: ignore[union-attr]

    def _ensure_worker_window(self, sub: Submission, deadline: datetime | None) -> None:
        if self._ctx.policy.enable_automatic_refunds and is_past(deadline, self._ctx.now()):
            raise ExpiredError(sub.id, deadline.isoformat())  # type: ignore[union-attr]

    async def _save(
        self,
        tx: Transaction,
        sub: Submission,
        old: SubmissionStatus,
        actor: str,
        now: datetime,
        metadata: dict[str, Any] | None = None,
        deadline: datetime | None = None,
    ) -> Submission:
        saved = await tx.stores.submissions.compare_and_swap(sub, sub.version)
        await tx.stores.audit.record(
            SubjectKind.JOB,
            sub.id,
            EventType.SUBMISSION_STATUS_CHANGED,
            actor=actor,
            old_status=old.value,
            new_status=saved.status.value,
            metadata=metadata,
        )
        tx.emit(
            EventType.SUBMISSION_STATUS_CHANGED,
            SubjectKind.JOB,
            sub.id,
            actor,
            now,
            old_status=old.value,
            new_status=saved.status.value,
            **self._labels(saved),
            deadline=deadline.isoformat() if deadline else None,
        )
        return saved

    async def _approve(self, tx: Transaction, sub: Submission, event_name: str, actor: str) -> Submission:
        if sub.status in (SubmissionStatus.APPROVED, SubmissionStatus.AUTO_APPROVED):
            raise AlreadyCompletedError(sub.id)
        now = self._ctx.now()
        old = self._advance(sub, event_name)
        reservation = await tx.stores.ledger.release(sub.id, sub.worker_id, sub.payment_amount)
        sub.reviewed_at = sub.reviewed_at or now
        sub = await self._save(tx, sub, old, actor, now, {"ledger": reservation.snapshot()})
        tx.emit(
            EventType.PAYMENT_RELEASED,
            SubjectKind.JOB,
            sub.id,
            actor,
            now,
            old_status=old.value,
            new_status=sub.status.value,
            **self._labels(sub),
            amount=str(sub.payment_amount),
        )
        return sub

    async def _refund(self, tx: Transaction, sub: Submission, event_name: str, actor: str) -> Submission:
        # Accepting or cancelling late yields the sweeper's own outcome, so no window check.
        now = self._ctx.now()
        old = self._advance(sub, event_name)
        reservation = await tx.stores.ledger.refund(sub.id)
        sub = await self._save(tx, sub, old, actor, now, {"trigger": event_name, "ledger": reservation.snapshot()})
        tx.emit(
            EventType.PAYMENT_REFUNDED,
            SubjectKind.JOB,
            sub.id,
            actor,
            now,
            old_status=old.value,
            new_status=sub.status.value,
            **self._labels(sub),
            amount=str(reservation.amount),
        )
        return sub
