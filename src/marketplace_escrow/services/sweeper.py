"""Timeout Sweeper: the only component that acts on elapsed deadlines.

Deadlines are passive facts. Once per interval the sweeper scans every
order and submission in a timed status, works out which automatic action
is due, and applies it through the same service command a person would
use, with actor = system. Races with manual actions are settled by the
ledger: whichever side arrives second gets ALREADY_SETTLED / INVALID_STATE
and the sweeper records a skip.

Automatic actions:
    order    awaiting_acceptance past acceptance_deadline   -> cancelled, refund
    order    pending / in_progress past expires_at          -> cancelled, refund
    order    delivered past review_deadline                 -> completed, release
    job      submitted past review_deadline                 -> auto_approved, release
    job      rejected past rejection_deadline               -> rejected_accepted, refund
    job      revision_requested past revision_deadline      -> cancelled_by_worker, refund

Usage:
    sweeper = TimeoutSweeper(ctx, orders, submissions, interval_seconds=60)
    sweeper.start()
    report = await sweeper.run_once(dry_run=True)
    await sweeper.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from marketplace_escrow.domain.clock import is_past
from marketplace_escrow.domain.enums import OrderStatus, SubjectKind, SubmissionStatus
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.services.orders import ACCEPTANCE_REMINDER, REVIEW_REMINDER

if TYPE_CHECKING:
    from datetime import datetime

    from marketplace_escrow.domain.models import Order, Submission
    from marketplace_escrow.domain.settlement import MarketplacePolicy
    from marketplace_escrow.services.context import ServiceContext
    from marketplace_escrow.services.orders import OrderService
    from marketplace_escrow.services.submissions import SubmissionService

logger = get_logger(__name__)

TIMED_ORDER_STATUSES = (
    OrderStatus.AWAITING_ACCEPTANCE,
    OrderStatus.PENDING,
    OrderStatus.IN_PROGRESS,
    OrderStatus.DELIVERED,
)
TIMED_SUBMISSION_STATUSES = (
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.REJECTED,
    SubmissionStatus.REVISION_REQUESTED,
)

# Outcomes recorded on each SweepAction
PLANNED = "planned"
APPLIED = "applied"
SKIPPED = "skipped"
FAILED = "failed"


# ---------------------------------------------------------------------------
# Pure decision functions
# ---------------------------------------------------------------------------


def due_order_action(order: Order, now: datetime, policy: MarketplacePolicy) -> str | None:
    """Name of the OrderService command the sweeper should run, if any."""
    if order.status is OrderStatus.AWAITING_ACCEPTANCE and is_past(order.acceptance_deadline, now):
        return "expire_acceptance"
    if order.status in (OrderStatus.PENDING, OrderStatus.IN_PROGRESS) and is_past(order.expires_at, now):
        return "expire_delivery"
    if (
        order.status is OrderStatus.DELIVERED
        and policy.auto_release_payment
        and is_past(order.review_deadline, now)
    ):
        return "auto_release"
    return None


def due_submission_action(sub: Submission, now: datetime, policy: MarketplacePolicy) -> str | None:
    """Name of the SubmissionService command the sweeper should run, if any."""
    if (
        sub.status is SubmissionStatus.SUBMITTED
        and policy.auto_release_payment
        and is_past(sub.review_deadline, now)
    ):
        return "auto_approve"
    if not policy.enable_automatic_refunds:
        return None
    if sub.status is SubmissionStatus.REJECTED and is_past(sub.rejection_deadline, now):
        return "expire_rejection"
    if sub.status is SubmissionStatus.REVISION_REQUESTED and is_past(sub.revision_deadline, now):
        return "expire_revision"
    return None


def due_reminders(order: Order, now: datetime, policy: MarketplacePolicy) -> list[str]:
    """Reminders whose window has opened and that were not sent yet."""
    due: list[str] = []
    if order.status is OrderStatus.AWAITING_ACCEPTANCE:
        window = timedelta(hours=policy.acceptance_reminder_hours)
        if order.acceptance_deadline - window <= now <= order.acceptance_deadline:
            due.append(ACCEPTANCE_REMINDER)
    if (
        order.status is OrderStatus.DELIVERED
        and policy.auto_release_payment
        and order.review_deadline is not None
    ):
        window = timedelta(hours=policy.review_reminder_hours)
        if order.review_deadline - window <= now <= order.review_deadline:
            due.append(REVIEW_REMINDER)
    return [r for r in due if r not in order.reminders_sent]


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SweepAction:
    subject_kind: SubjectKind
    subject_id: str
    action: str
    outcome: str = PLANNED
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_kind": self.subject_kind.value,
            "subject_id": self.subject_id,
            "action": self.action,
            "outcome": self.outcome,
            "detail": self.detail,
        }


@dataclass
class SweepReport:
    """Everything one pass decided, and what happened to each decision."""

    started_at: datetime
    dry_run: bool = False
    actions: list[SweepAction] = field(default_factory=list)
    finished_at: datetime | None = None

    def count(self, outcome: str) -> int:
        return sum(1 for a in self.actions if a.outcome == outcome)

    @property
    def applied(self) -> int:
        return self.count(APPLIED)

    @property
    def skipped(self) -> int:
        return self.count(SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "dry_run": self.dry_run,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "actions": [a.to_dict() for a in self.actions],
        }


# ---------------------------------------------------------------------------
# Sweeper
# ---------------------------------------------------------------------------


class TimeoutSweeper:
    """Periodically applies due automatic actions."""

    def __init__(
        self,
        ctx: ServiceContext,
        orders: OrderService,
        submissions: SubmissionService,
        interval_seconds: float = 60.0,
    ) -> None:
        self._ctx = ctx
        self._orders = orders
        self._submissions = submissions
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, dry_run: bool = False) -> SweepReport:
        """Scan every timed subject once and apply (or just list) due actions."""
        now = self._ctx.now()
        policy = self._ctx.policy
        report = SweepReport(started_at=now, dry_run=dry_run)

        async with self._ctx.read() as stores:
            orders = await stores.orders.list(statuses=TIMED_ORDER_STATUSES)
            submissions = await stores.submissions.list(statuses=TIMED_SUBMISSION_STATUSES)

        for order in orders:
            name = due_order_action(order, now, policy)
            if name is not None:
                report.actions.append(
                    await self._apply(SubjectKind.ORDER, order.id, name, self._orders, dry_run)
                )
                continue
            for reminder in due_reminders(order, now, policy):
                report.actions.append(
                    await self._apply(
                        SubjectKind.ORDER,
                        order.id,
                        f"{reminder}_reminder",
                        self._orders,
                        dry_run,
                        method="send_reminder",
                        args=(reminder,),
                    )
                )

        for sub in submissions:
            name = due_submission_action(sub, now, policy)
            if name is not None:
                report.actions.append(
                    await self._apply(SubjectKind.JOB, sub.id, name, self._submissions, dry_run)
                )

        report.finished_at = self._ctx.now()
        logger.info(
            "sweeper.pass_completed",
            dry_run=dry_run,
            scanned_orders=len(orders),
            scanned_submissions=len(submissions),
            applied=report.applied,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    async def check_order(self, order_id: str) -> SweepAction | None:
        """On-demand check of a single order, used before answering a client."""
        result = await self._orders.get_order(order_id)
        if not result.ok:
            return None
        name = due_order_action(result.value, self._ctx.now(), self._ctx.policy)  # type: ignore[arg-type]
        if name is None:
            return None
        return await self._apply(SubjectKind.ORDER, order_id, name, self._orders, dry_run=False)

    async def _apply(
        self,
        kind: SubjectKind,
        subject_id: str,
        action: str,
        service: Any,
        dry_run: bool,
        method: str | None = None,
        args: tuple[Any, ...] = (),
    ) -> SweepAction:
        if dry_run:
            return SweepAction(kind, subject_id, action)
        try:
            result = await getattr(service, method or action)(subject_id, *args)
        except Exception as exc:
            logger.exception("sweeper.action_failed", subject_id=subject_id, action=action)
            return SweepAction(kind, subject_id, action, FAILED, str(exc))
        if result.ok:
            return SweepAction(kind, subject_id, action, APPLIED)
        # Someone else got there first, or the deadline moved under us.
        logger.info(
            "sweeper.action_skipped",
            subject_id=subject_id,
            action=action,
            code=result.error.code,
        )
        return SweepAction(kind, subject_id, action, SKIPPED, result.error.code)

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="timeout-sweeper")
        logger.info("sweeper.started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sweeper.stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("sweeper.pass_failed")
            await asyncio.sleep(self._interval)
