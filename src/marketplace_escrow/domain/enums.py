"""Domain enumerations for the marketplace escrow engine.

These enums are the closed set of states and tags used throughout the
system. They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class OrderStatus(enum.StrEnum):
    """Lifecycle states of a marketplace order.

    Transitions are enforced by OrderStateMachine.
    See domain/state_machine.py for the transition table.
    """

    AWAITING_ACCEPTANCE = "awaiting_acceptance"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    DISPUTE_RESOLVED = "dispute_resolved"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_ORDER_STATUSES


_TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.DISPUTE_RESOLVED}
)


class SubmissionStatus(enum.StrEnum):
    """Lifecycle states of a work submission (job-style engagements)."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    AUTO_APPROVED = "auto_approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"
    REJECTED_ACCEPTED = "rejected_accepted"
    CANCELLED_BY_WORKER = "cancelled_by_worker"
    DISPUTED = "disputed"
    DISPUTE_RESOLVED = "dispute_resolved"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_SUBMISSION_STATUSES


_TERMINAL_SUBMISSION_STATUSES = frozenset(
    {
        SubmissionStatus.APPROVED,
        SubmissionStatus.AUTO_APPROVED,
        SubmissionStatus.REJECTED_ACCEPTED,
        SubmissionStatus.CANCELLED_BY_WORKER,
        SubmissionStatus.DISPUTE_RESOLVED,
    }
)


class SubjectKind(enum.StrEnum):
    """What a dispute, reservation or audit entry is attached to."""

    ORDER = "order"
    JOB = "job"


class DisputeStatus(enum.StrEnum):
    """Lifecycle states of a dispute.

    "buyer" is the paying side (order buyer / job poster), "seller" the
    delivering side (order seller / job worker).
    """

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED_FAVOR_BUYER = "resolved_favor_buyer"
    RESOLVED_FAVOR_SELLER = "resolved_favor_seller"
    RESOLVED_PARTIAL = "resolved_partial"

    @property
    def is_open(self) -> bool:
        return self in (DisputeStatus.PENDING, DisputeStatus.UNDER_REVIEW)


class ResolutionDecision(enum.StrEnum):
    """The three admin outcomes of a dispute."""

    REFUND_BUYER = "refund_buyer"
    PAY_SELLER = "pay_seller"
    PARTIAL_REFUND = "partial_refund"

    @property
    def dispute_status(self) -> DisputeStatus:
        return {
            ResolutionDecision.REFUND_BUYER: DisputeStatus.RESOLVED_FAVOR_BUYER,
            ResolutionDecision.PAY_SELLER: DisputeStatus.RESOLVED_FAVOR_SELLER,
            ResolutionDecision.PARTIAL_REFUND: DisputeStatus.RESOLVED_PARTIAL,
        }[self]


class ActorRole(enum.StrEnum):
    """Role an actor plays relative to one subject."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


class LedgerEntryKind(enum.StrEnum):
    """Destination category of one settlement part."""

    PAYOUT = "payout"
    REFUND = "refund"
    PLATFORM_FEE = "platform_fee"


class TimeUnit(enum.StrEnum):
    """Units accepted by the configurable revision / rejection timeouts."""

    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class EventType(enum.StrEnum):
    """Domain events published to collaborators and written to the audit log.

    Every state transition produces exactly one status-change event; money
    movements add a PAYMENT_* event.
    """

    # Lifecycle events
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    SUBMISSION_CREATED = "SUBMISSION_CREATED"
    SUBMISSION_STATUS_CHANGED = "SUBMISSION_STATUS_CHANGED"

    # Order side-channel events
    EXTENSION_REQUESTED = "EXTENSION_REQUESTED"
    EXTENSION_ANSWERED = "EXTENSION_ANSWERED"
    MESSAGE_ADDED = "MESSAGE_ADDED"
    REQUIREMENTS_UPDATED = "REQUIREMENTS_UPDATED"
    DEADLINE_REMINDER = "DEADLINE_REMINDER"

    # Settlement events
    PAYMENT_RELEASED = "PAYMENT_RELEASED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"

    # Dispute events
    DISPUTE_OPENED = "DISPUTE_OPENED"
    DISPUTE_EVIDENCE_ADDED = "DISPUTE_EVIDENCE_ADDED"
    DISPUTE_UNDER_REVIEW = "DISPUTE_UNDER_REVIEW"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
