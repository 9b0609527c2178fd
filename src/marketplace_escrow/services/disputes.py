"""Dispute Service: one dispute registry for orders and job submissions.

A dispute is tagged with the kind of subject it is raised against
(``order`` or ``job``). Opening a dispute moves the subject into
``disputed`` and resolving it moves the subject into ``dispute_resolved``;
both happen in the same transaction, under the subject's lock, as the
dispute record itself. There is no second registry to keep in sync.

Resolution flow:
    1. Parse the decision (refund_buyer | pay_seller | partial_refund)
    2. Check the admin, the notes and that the dispute is still open
    3. Compute the split from the disputed amount
    4. Settle the escrow reservation once, with the split parts
    5. Write the immutable Resolution onto the dispute and the subject
    6. Audit the decision with before / after ledger state
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from marketplace_escrow.domain.clock import is_past
from marketplace_escrow.domain.enums import (
    ActorRole,
    DisputeStatus,
    EventType,
    OrderStatus,
    SubjectKind,
    SubmissionStatus,
)
from marketplace_escrow.domain.exceptions import (
    AlreadySettledError,
    ConflictError,
    DisputeNotFoundError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    OrderNotFoundError,
    ReservationMissingError,
    SubmissionNotFoundError,
    ValidationFailedError,
)
from marketplace_escrow.domain.models import Dispute, Order, Resolution, Submission
from marketplace_escrow.domain.results import command
from marketplace_escrow.domain.settlement import compute_split, parse_decision, settlement_parts
from marketplace_escrow.domain.state_machine import (
    OrderStateMachine,
    SubmissionStateMachine,
    validate_transition,
)
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from decimal import Decimal

    from marketplace_escrow.domain.enums import ResolutionDecision
    from marketplace_escrow.services.context import ServiceContext, Transaction

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Per-kind subject rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _SubjectRules:
    kind: SubjectKind
    repo: str
    machine: type
    status_type: type
    status_event: EventType
    not_found: type
    open_event: str
    opener: ActorRole | None


_RULES = {
    SubjectKind.ORDER: _SubjectRules(
        kind=SubjectKind.ORDER,
        repo="orders",
        machine=OrderStateMachine,
        status_type=OrderStatus,
        status_event=EventType.ORDER_STATUS_CHANGED,
        not_found=OrderNotFoundError,
        open_event="dispute_opened",
        opener=None,
    ),
    SubjectKind.JOB: _SubjectRules(
        kind=SubjectKind.JOB,
        repo="submissions",
        machine=SubmissionStateMachine,
        status_type=SubmissionStatus,
        status_event=EventType.SUBMISSION_STATUS_CHANGED,
        not_found=SubmissionNotFoundError,
        open_event="worker_disputes",
        opener=ActorRole.SELLER,
    ),
}


def _parties(subject: Order | Submission) -> tuple[str, str]:
    """(paying side, delivering side) of a subject."""
    if isinstance(subject, Order):
        return subject.buyer_id, subject.seller_id
    return subject.employer_id, subject.worker_id


def _amount(subject: Order | Submission) -> Decimal:
    return subject.price if isinstance(subject, Order) else subject.payment_amount


def _labels(subject: Order | Submission) -> dict[str, Any]:
    buyer, seller = _parties(subject)
    if isinstance(subject, Order):
        return {"buyer_id": buyer, "seller_id": seller, "service_name": subject.service_name}
    return {"buyer_id": buyer, "seller_id": seller, "job_id": subject.job_id}


class DisputeService:
    """Opens, reviews and resolves disputes against orders and submissions."""

    def __init__(self, ctx: ServiceContext) -> None:
        self._ctx = ctx

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    @command
    async def open(
        self,
        subject_kind: SubjectKind | str,
        subject_id: str,
        actor_id: str,
        reason: str,
        details: str = "",
        evidence: Sequence[str] = (),
    ) -> Dispute:
        """Raise a dispute; the subject moves to ``disputed``."""
        rules = _RULES[SubjectKind(subject_kind)]
        reason = self._ctx.require_text(reason, "reason")

        async with self._ctx.transaction(subject_id) as tx:
            subject = await self._load_subject(tx, rules, subject_id)
            role = subject.role_of(actor_id)
            if role is None or (rules.opener is not None and role is not rules.opener):
                raise ForbiddenError(actor_id, f"open a dispute on {subject_id}")
            await self._ensure_no_open_dispute(tx, subject)
            self._ensure_not_expired(subject)

            now = self._ctx.now()
            old = self._advance(rules, subject, rules.open_event)
            if rules.kind is SubjectKind.ORDER:
                subject.disputed_at = now  # type: ignore[union-attr]
            subject = await self._save_subject(tx, rules, subject, old, actor_id, now, {"reason": reason})

            buyer, seller = _parties(subject)
            dispute = Dispute(
                id=f"DSP-{uuid.uuid4().hex[:12].upper()}",
                subject_kind=rules.kind,
                subject_id=subject_id,
                opened_by=actor_id,
                opened_by_role=role,
                buyer_id=buyer,
                seller_id=seller,
                amount=_amount(subject),
                reason=reason,
                details=(details or "").strip(),
                opened_at=now,
                evidence=list(evidence),
                job_id=getattr(subject, "job_id", None),
            )
            dispute = await tx.stores.disputes.add(dispute)
            await tx.stores.audit.record(
                rules.kind,
                subject_id,
                EventType.DISPUTE_OPENED,
                actor=actor_id,
                new_status=dispute.status.value,
                metadata={"dispute_id": dispute.id, "reason": reason, "evidence": list(evidence)},
            )
            tx.emit(
                EventType.DISPUTE_OPENED,
                rules.kind,
                subject_id,
                actor_id,
                now,
                old_status=old.value,
                new_status=subject.status.value,
                dispute_id=dispute.id,
                dispute_status=dispute.status.value,
                **_labels(subject),
            )

        logger.info(
            "dispute.opened",
            dispute_id=dispute.id,
            subject_kind=rules.kind.value,
            subject_id=subject_id,
            opened_by=actor_id,
        )
        return dispute

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    @command
    async def add_evidence(self, dispute_id: str, actor_id: str, refs: Sequence[str]) -> Dispute:
        """Attach opaque evidence references while the dispute is open."""
        refs = [r.strip() for r in refs if r and r.strip()]
        if not refs:
            raise ValidationFailedError("At least one evidence reference is required", field="evidence")

        subject_id = await self._subject_of(dispute_id)
        async with self._ctx.transaction(subject_id) as tx:
            dispute = await self._load_dispute(tx, dispute_id)
            if actor_id not in (dispute.buyer_id, dispute.seller_id):
                raise ForbiddenError(actor_id, f"add evidence to {dispute_id}")
            if not dispute.status.is_open:
                raise InvalidStateError(dispute.status.value, "add_evidence")

            now = self._ctx.now()
            expected = dispute.version
            dispute.evidence.extend(refs)
            dispute = await tx.stores.disputes.compare_and_swap(dispute, expected)
            await tx.stores.audit.record(
                dispute.subject_kind,
                dispute.subject_id,
                EventType.DISPUTE_EVIDENCE_ADDED,
                actor=actor_id,
                metadata={"dispute_id": dispute_id, "evidence": refs},
            )
            tx.emit(
                EventType.DISPUTE_EVIDENCE_ADDED,
                dispute.subject_kind,
                dispute.subject_id,
                actor_id,
                now,
                dispute_id=dispute_id,
                buyer_id=dispute.buyer_id,
                seller_id=dispute.seller_id,
            )

        logger.info("dispute.evidence_added", dispute_id=dispute_id, count=len(refs))
        return dispute

    @command
    async def mark_under_review(self, dispute_id: str, admin_id: str) -> Dispute:
        await self._ctx.require_admin(admin_id, "review disputes")
        subject_id = await self._subject_of(dispute_id)
        async with self._ctx.transaction(subject_id) as tx:
            dispute = await self._load_dispute(tx, dispute_id)
            if dispute.status is not DisputeStatus.PENDING:
                raise InvalidStateError(dispute.status.value, "mark_under_review")

            now = self._ctx.now()
            expected = dispute.version
            dispute.status = DisputeStatus.UNDER_REVIEW
            dispute.reviewed_by = admin_id
            dispute = await tx.stores.disputes.compare_and_swap(dispute, expected)
            await tx.stores.audit.record(
                dispute.subject_kind,
                dispute.subject_id,
                EventType.DISPUTE_UNDER_REVIEW,
                actor=admin_id,
                old_status=DisputeStatus.PENDING.value,
                new_status=dispute.status.value,
                metadata={"dispute_id": dispute_id},
            )
            tx.emit(
                EventType.DISPUTE_UNDER_REVIEW,
                dispute.subject_kind,
                dispute.subject_id,
                admin_id,
                now,
                old_status=DisputeStatus.PENDING.value,
                new_status=dispute.status.value,
                dispute_id=dispute_id,
                buyer_id=dispute.buyer_id,
                seller_id=dispute.seller_id,
            )

        logger.info("dispute.under_review", dispute_id=dispute_id, admin_id=admin_id)
        return dispute

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @command
    async def resolve(
        self,
        dispute_id: str,
        admin_id: str,
        decision: ResolutionDecision | str,
        notes: str,
    ) -> Dispute:
        return await self._resolve(dispute_id, admin_id, decision, notes)

    @command
    async def resolve_for_subject(
        self,
        subject_id: str,
        admin_id: str,
        decision: ResolutionDecision | str,
        notes: str,
    ) -> Dispute:
        """Resolve whichever dispute is open on ``subject_id``."""
        async with self._ctx.read() as stores:
            dispute = await stores.disputes.get_open_for_subject(subject_id)
            if dispute is None:
                if await stores.disputes.list(subject_id=subject_id):
                    raise AlreadySettledError(subject_id)
                raise InvalidStateError("no_dispute", "resolve_dispute", f"No open dispute for {subject_id}")
        return await self._resolve(dispute.id, admin_id, decision, notes)

    async def _resolve(
        self,
        dispute_id: str,
        admin_id: str,
        decision: ResolutionDecision | str,
        notes: str,
    ) -> Dispute:
        decision = parse_decision(decision)
        await self._ctx.require_admin(admin_id, "resolve disputes")
        notes = self._ctx.require_justification(notes, "notes")

        subject_id = await self._subject_of(dispute_id)
        async with self._ctx.transaction(subject_id) as tx:
            dispute = await self._load_dispute(tx, dispute_id)
            if dispute.resolution is not None or not dispute.status.is_open:
                raise AlreadySettledError(dispute.subject_id)
            rules = _RULES[dispute.subject_kind]
            subject = await self._load_subject(tx, rules, dispute.subject_id)

            now = self._ctx.now()
            old = self._advance(rules, subject, "admin_resolves")
            before = await tx.stores.ledger.get(subject_id)
            if before is None:
                raise ReservationMissingError(subject_id)
            breakdown = compute_split(dispute.amount, decision, self._ctx.policy)
            after = await tx.stores.ledger.split(
                subject_id, settlement_parts(breakdown, dispute.buyer_id, dispute.seller_id)
            )
            resolution = Resolution(
                decision=decision,
                payment=breakdown,
                resolved_by=admin_id,
                notes=notes,
                resolved_at=now,
            )

            old_dispute_status = dispute.status
            expected = dispute.version
            dispute.status = decision.dispute_status
            dispute.reviewed_by = admin_id
            dispute.resolution = resolution
            dispute = await tx.stores.disputes.compare_and_swap(dispute, expected)

            subject.resolution = resolution
            subject = await self._save_subject(
                tx, rules, subject, old, admin_id, now, {"dispute_id": dispute_id, "decision": decision.value}
            )
            await tx.stores.audit.record(
                rules.kind,
                subject_id,
                EventType.DISPUTE_RESOLVED,
                actor=admin_id,
                old_status=old_dispute_status.value,
                new_status=dispute.status.value,
                metadata={
                    "dispute_id": dispute_id,
                    "decision": decision.value,
                    "notes": notes,
                    "payment": breakdown.to_dict(),
                    "ledger_before": before.snapshot(),
                    "ledger_after": after.snapshot(),
                },
            )
            tx.emit(
                EventType.DISPUTE_RESOLVED,
                rules.kind,
                subject_id,
                admin_id,
                now,
                old_status=old.value,
                new_status=subject.status.value,
                dispute_id=dispute_id,
                dispute_status=dispute.status.value,
                decision=decision.value,
                payment=breakdown.to_dict(),
                **_labels(subject),
            )

        logger.info(
            "dispute.resolved",
            dispute_id=dispute_id,
            subject_id=subject_id,
            decision=decision.value,
            buyer_refund=str(breakdown.buyer_refund),
            seller_payment=str(breakdown.seller_payment),
            platform_fee=str(breakdown.platform_fee),
        )
        return dispute

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @command
    async def get_dispute(self, dispute_id: str) -> Dispute:
        async with self._ctx.read() as stores:
            dispute = await stores.disputes.get(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    async def list_disputes(
        self,
        status: DisputeStatus | str | None = None,
        subject_kind: SubjectKind | str | None = None,
    ) -> list[Dispute]:
        async with self._ctx.read() as stores:
            return await stores.disputes.list(
                statuses=[DisputeStatus(status)] if status else None,
                subject_kind=SubjectKind(subject_kind) if subject_kind else None,
            )

    async def list_disputes_for_user(self, user_id: str) -> list[Dispute]:
        async with self._ctx.read() as stores:
            return await stores.disputes.list(party_id=user_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _subject_of(self, dispute_id: str) -> str:
        async with self._ctx.read() as stores:
            dispute = await stores.disputes.get(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute.subject_id

    @staticmethod
    async def _load_dispute(tx: Transaction, dispute_id: str) -> Dispute:
        dispute = await tx.stores.disputes.get(dispute_id)
        if dispute is None:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    @staticmethod
    async def _load_subject(tx: Transaction, rules: _SubjectRules, subject_id: str) -> Any:
        subject = await getattr(tx.stores, rules.repo).get(subject_id)
        if subject is None:
            raise rules.not_found(subject_id)
        return subject

    @staticmethod
    async def _ensure_no_open_dispute(tx: Transaction, subject: Order | Submission) -> None:
        existing = await tx.stores.disputes.get_open_for_subject(subject.id)
        job_id = getattr(subject, "job_id", None)
        if existing is None and job_id is not None:
            open_for_job = [
                d
                for d in await tx.stores.disputes.list(subject_kind=SubjectKind.JOB)
                if d.job_id == job_id and d.status.is_open
            ]
            existing = open_for_job[0] if open_for_job else None
        if existing is not None:
            raise ConflictError(f"Dispute {existing.id} is already open for {subject.id}")

    def _ensure_not_expired(self, subject: Order | Submission) -> None:
        """A dispute cannot pre-empt an automatic outcome that is already due."""
        now = self._ctx.now()
        policy = self._ctx.policy
        if getattr(subject, "status", None) is OrderStatus.DELIVERED:
            deadline = subject.review_deadline
            if policy.auto_release_payment and is_past(deadline, now):
                raise ExpiredError(subject.id, deadline.isoformat())  # type: ignore[union-attr]
        if getattr(subject, "status", None) is SubmissionStatus.REJECTED:
            deadline = subject.rejection_deadline  # type: ignore[union-attr]
            if policy.enable_automatic_refunds and is_past(deadline, now):
                raise ExpiredError(subject.id, deadline.isoformat())

    @staticmethod
    def _advance(rules: _SubjectRules, subject: Any, event_name: str) -> Any:
        old = subject.status
        subject.status = rules.status_type(validate_transition(old.value, event_name, rules.machine))
        return old

    @staticmethod
    async def _save_subject(
        tx: Transaction,
        rules: _SubjectRules,
        subject: Any,
        old: Any,
        actor: str,
        now: datetime,
        metadata: dict[str, Any],
    ) -> Any:
        saved = await getattr(tx.stores, rules.repo).compare_and_swap(subject, subject.version)
        await tx.stores.audit.record(
            rules.kind,
            subject.id,
            rules.status_event,
            actor=actor,
            old_status=old.value,
            new_status=saved.status.value,
            metadata=metadata,
        )
        tx.emit(
            rules.status_event,
            rules.kind,
            subject.id,
            actor,
            now,
            old_status=old.value,
            new_status=saved.status.value,
            **_labels(saved),
        )
        return saved
