"""User notifications rendered from domain events.

NotificationService subscribes to the EventBus, turns each event into
zero or more ``Notification`` messages (one per recipient) and pushes them
to a NotificationSink. Delivery is fire-and-forget: the bus already runs
this in its own task with a timeout.

The default sink only logs. Production deployments plug in an email /
push / in-app sink that satisfies the NotificationSink protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from marketplace_escrow.domain.enums import (
    EventType,
    OrderStatus,
    ResolutionDecision,
    SubmissionStatus,
)
from marketplace_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from marketplace_escrow.domain.models import DomainEvent
    from marketplace_escrow.domain.ports import NotificationSink

logger = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    user_id: str
    kind: str
    title: str
    description: str
    action_url: str | None = None


class LoggingNotificationSink:
    """Sink that writes every notification to the structured log."""

    async def send(
        self,
        user_id: str,
        kind: str,
        title: str,
        description: str,
        action_url: str | None = None,
    ) -> None:
        logger.info(
            "notification.sent",
            user_id=user_id,
            kind=kind,
            title=title,
            action_url=action_url,
        )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def _order_status_notifications(event: DomainEvent) -> list[Notification]:
    p = event.payload
    name = p.get("service_name") or event.subject_id
    buyer, seller = p["buyer_id"], p["seller_id"]
    url = f"/orders/{event.subject_id}"
    status = event.new_status

    if status == OrderStatus.PENDING:
        return [
            Notification(
                buyer,
                "job",
                "Order Accepted",
                f'Your order for "{name}" has been accepted. The seller will start working on it soon.',
                url,
            )
        ]
    if status == OrderStatus.IN_PROGRESS:
        return [
            Notification(
                buyer,
                "job",
                "Work Started",
                f'The seller has started working on your order "{name}". '
                "You'll be notified when it's delivered.",
                url,
            )
        ]
    if status == OrderStatus.DELIVERED:
        return [
            Notification(
                buyer,
                "job",
                "Work Delivered",
                f'Your order "{name}" has been delivered. Please review and approve the work to release payment.',
                url,
            ),
            Notification(
                seller,
                "job",
                "Work Delivered Successfully",
                f'You\'ve delivered "{name}". Waiting for buyer approval to release payment.',
                url,
            ),
        ]
    if status == OrderStatus.COMPLETED:
        return [
            Notification(
                buyer,
                "job",
                "Order Completed",
                f'Your order "{name}" has been completed. Payment has been released to the seller.',
                url,
            )
        ]
    if status == OrderStatus.CANCELLED:
        return [
            Notification(
                buyer,
                "system",
                "Order Cancelled",
                f'Your order "{name}" has been cancelled. A full refund has been processed.',
                url,
            ),
            Notification(
                seller,
                "system",
                "Order Cancelled",
                f'Order "{name}" has been cancelled. No payment will be processed.',
                url,
            ),
        ]
    return []


def _submission_status_notifications(event: DomainEvent) -> list[Notification]:
    p = event.payload
    employer, worker = p["buyer_id"], p["seller_id"]
    job = p.get("job_id") or event.subject_id
    url = f"/jobs/{job}/submissions/{event.subject_id}"
    status = event.new_status

    if status in (SubmissionStatus.APPROVED, SubmissionStatus.AUTO_APPROVED):
        return [Notification(worker, "payment", "Submission Approved", f"Your work for job {job} was approved.", url)]
    if status == SubmissionStatus.REJECTED:
        return [
            Notification(
                worker,
                "job",
                "Submission Rejected",
                f"Your work for job {job} was rejected. Accept the rejection or open a dispute before "
                f"{p.get('deadline')}.",
                url,
            )
        ]
    if status == SubmissionStatus.REVISION_REQUESTED:
        return [
            Notification(
                worker,
                "job",
                "Revision Requested",
                f"A revision was requested for job {job}. Resubmit before {p.get('deadline')}.",
                url,
            )
        ]
    if status == SubmissionStatus.SUBMITTED and event.old_status == SubmissionStatus.REVISION_REQUESTED:
        return [Notification(employer, "job", "Work Resubmitted", f"Revised work was submitted for job {job}.", url)]
    if status in (SubmissionStatus.REJECTED_ACCEPTED, SubmissionStatus.CANCELLED_BY_WORKER):
        return [Notification(employer, "payment", "Payment Refunded", f"The payment for job {job} was refunded.", url)]
    return []


def _dispute_notifications(event: DomainEvent) -> list[Notification]:
    p = event.payload
    buyer, seller = p["buyer_id"], p["seller_id"]
    name = p.get("service_name") or p.get("job_id") or event.subject_id
    url = f"/disputes/{p.get('dispute_id')}"

    if event.event_type is EventType.DISPUTE_OPENED:
        opener = event.actor
        other = seller if opener == buyer else buyer
        by = "buyer" if opener == buyer else "seller"
        return [
            Notification(
                other,
                "system",
                "Dispute Opened",
                f'A dispute has been opened for "{name}" by the {by}. An admin will review and resolve it.',
                url,
            ),
            Notification(
                opener,
                "system",
                "Dispute Submitted",
                f'Your dispute for "{name}" has been submitted. An admin will review it soon.',
                url,
            ),
        ]

    decision = ResolutionDecision(p["decision"])
    if decision is ResolutionDecision.REFUND_BUYER:
        buyer_text, seller_text = "in your favor. Refund processed.", "in the buyer's favor. Refund processed."
    elif decision is ResolutionDecision.PAY_SELLER:
        buyer_text, seller_text = "in the seller's favor. Payment released.", "in your favor. Payment released."
    else:
        buyer_text = seller_text = "with a partial refund. Funds have been split."
    return [
        Notification(buyer, "system", "Dispute Resolved", f'The dispute for "{name}" has been resolved {buyer_text}', url),
        Notification(seller, "system", "Dispute Resolved", f'The dispute for "{name}" has been resolved {seller_text}', url),
    ]


def _reminder_notifications(event: DomainEvent) -> list[Notification]:
    p = event.payload
    name = p.get("service_name") or event.subject_id
    url = f"/orders/{event.subject_id}"
    if p["reminder"] == "acceptance":
        return [
            Notification(
                p["seller_id"],
                "system",
                "Order Expiring Soon",
                f'Order "{name}" expires in {p["hours"]} hours. Accept or decline to avoid auto-cancellation.',
                url,
            )
        ]
    return [
        Notification(
            p["buyer_id"],
            "system",
            "Payment Auto-Release Soon",
            f'Payment for "{name}" will be auto-released in {p["hours"]} hours. Review now if you have concerns.',
            url,
        )
    ]


def render(event: DomainEvent) -> list[Notification]:
    """Map one domain event to the notifications it should produce."""
    p = event.payload
    et = event.event_type

    if et is EventType.ORDER_PLACED:
        return [
            Notification(
                p["seller_id"],
                "job",
                "New Order Received",
                f'You received a new order for "{p.get("service_name")}" worth ${p["price"]}. '
                "Please accept or decline before the acceptance deadline.",
                f"/orders/{event.subject_id}",
            )
        ]
    if et is EventType.ORDER_STATUS_CHANGED:
        return _order_status_notifications(event)
    if et is EventType.SUBMISSION_CREATED:
        return [
            Notification(
                p["buyer_id"],
                "job",
                "New Submission",
                f"Work was submitted for job {p.get('job_id')}. Review it before {p.get('deadline')}.",
                f"/jobs/{p.get('job_id')}/submissions/{event.subject_id}",
            )
        ]
    if et is EventType.SUBMISSION_STATUS_CHANGED:
        return _submission_status_notifications(event)
    if et is EventType.PAYMENT_RELEASED:
        return [
            Notification(
                p["seller_id"],
                "payment",
                "Payment Released",
                f"Payment of ${p['amount']} has been released. Funds were added to your wallet.",
                None,
            )
        ]
    if et in (EventType.DISPUTE_OPENED, EventType.DISPUTE_RESOLVED):
        return _dispute_notifications(event)
    if et is EventType.EXTENSION_REQUESTED:
        return [
            Notification(
                p["buyer_id"],
                "job",
                "Extension Requested",
                f"The seller asked for {p['days']} more day(s): {p['reason']}",
                f"/orders/{event.subject_id}",
            )
        ]
    if et is EventType.EXTENSION_ANSWERED:
        verdict = "approved" if p["approved"] else "declined"
        return [
            Notification(
                p["seller_id"],
                "job",
                f"Extension {verdict.title()}",
                f"The buyer {verdict} your extension request.",
                f"/orders/{event.subject_id}",
            )
        ]
    if et is EventType.MESSAGE_ADDED:
        return [
            Notification(r, "message", "New Message", p["preview"], f"/orders/{event.subject_id}")
            for r in p["recipients"]
        ]
    if et is EventType.DEADLINE_REMINDER:
        return _reminder_notifications(event)
    return []


class NotificationService:
    """EventBus subscriber that delivers rendered notifications."""

    def __init__(self, sink: NotificationSink) -> None:
        self._sink = sink

    async def handle(self, event: DomainEvent) -> None:
        for note in render(event):
            await self._sink.send(
                user_id=note.user_id,
                kind=note.kind,
                title=note.title,
                description=note.description,
                action_url=note.action_url,
            )
