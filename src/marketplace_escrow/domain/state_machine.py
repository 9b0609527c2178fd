"""Order and submission state machine guards.

Uses python-statemachine to enforce legal state transitions at the domain
level. Whatever the API, the sweeper or an admin tool asks for, an illegal
transition (e.g. awaiting_acceptance -> delivered) raises InvalidStateError
before anything is written.

The machines are instantiated per subject from its current status and
fired once; the resulting status is what the service writes back.

Order transition table:
    awaiting_acceptance -> pending             (seller_accepts)
    awaiting_acceptance -> cancelled           (seller_declines, acceptance_expired)
    pending             -> in_progress         (work_started)
    pending             -> cancelled           (order_cancelled, delivery_expired)
    in_progress         -> delivered           (work_delivered)
    in_progress         -> cancelled           (order_cancelled, delivery_expired)
    delivered           -> completed           (payment_released)
    delivered           -> disputed            (dispute_opened)
    delivered           -> cancelled           (order_cancelled)
    disputed            -> dispute_resolved    (admin_resolves)

Submission transition table:
    submitted           -> approved            (employer_approves)
    submitted           -> auto_approved       (review_period_elapsed)
    submitted           -> rejected            (employer_rejects)
    submitted           -> revision_requested  (employer_requests_revision)
    rejected            -> rejected_accepted   (rejection_accepted)
    rejected            -> disputed            (worker_disputes)
    revision_requested  -> submitted           (worker_resubmits)
    revision_requested  -> cancelled_by_worker (worker_cancels)
    disputed            -> dispute_resolved    (admin_resolves)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from marketplace_escrow.domain.exceptions import InvalidStateError


class _GuardMixin:
    """Shared constructor and helpers for the status guards."""

    def _start_at(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown status '{current_status}'. Valid states: {valid}")
        StateMachine.__init__(self, start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches the status enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current state."""
        return [getattr(event, "id", None) or event.name for event in self.allowed_events]


class OrderStateMachine(_GuardMixin, StateMachine):
    """Guards the marketplace order lifecycle.

    Usage:
        sm = OrderStateMachine(current_status="pending")
        sm.work_started()
        sm.status  # "in_progress"
    """

    # --- States ---
    AWAITING_ACCEPTANCE = State("Awaiting acceptance", value="awaiting_acceptance", initial=True)
    PENDING = State("Pending", value="pending")
    IN_PROGRESS = State("In progress", value="in_progress")
    DELIVERED = State("Delivered", value="delivered")
    DISPUTED = State("Disputed", value="disputed")
    COMPLETED = State("Completed", value="completed", final=True)
    CANCELLED = State("Cancelled", value="cancelled", final=True)
    DISPUTE_RESOLVED = State("Dispute resolved", value="dispute_resolved", final=True)

    # --- Seller response ---
    seller_accepts = AWAITING_ACCEPTANCE.to(PENDING)
    seller_declines = AWAITING_ACCEPTANCE.to(CANCELLED)
    acceptance_expired = AWAITING_ACCEPTANCE.to(CANCELLED)

    # --- Work ---
    work_started = PENDING.to(IN_PROGRESS)
    work_delivered = IN_PROGRESS.to(DELIVERED)
    delivery_expired = PENDING.to(CANCELLED) | IN_PROGRESS.to(CANCELLED)

    # --- Settlement ---
    payment_released = DELIVERED.to(COMPLETED)
    order_cancelled = (
        PENDING.to(CANCELLED) | IN_PROGRESS.to(CANCELLED) | DELIVERED.to(CANCELLED)
    )

    # --- Disputes ---
    dispute_opened = DELIVERED.to(DISPUTED)
    admin_resolves = DISPUTED.to(DISPUTE_RESOLVED)

    def __init__(self, current_status: str = "awaiting_acceptance") -> None:
        self._start_at(current_status)


class SubmissionStateMachine(_GuardMixin, StateMachine):
    """Guards the job submission review / revision / rejection workflow."""

    # --- States ---
    SUBMITTED = State("Submitted", value="submitted", initial=True)
    REJECTED = State("Rejected", value="rejected")
    REVISION_REQUESTED = State("Revision requested", value="revision_requested")
    DISPUTED = State("Disputed", value="disputed")
    APPROVED = State("Approved", value="approved", final=True)
    AUTO_APPROVED = State("Auto approved", value="auto_approved", final=True)
    REJECTED_ACCEPTED = State("Rejection accepted", value="rejected_accepted", final=True)
    CANCELLED_BY_WORKER = State("Cancelled by worker", value="cancelled_by_worker", final=True)
    DISPUTE_RESOLVED = State("Dispute resolved", value="dispute_resolved", final=True)

    # --- Employer review ---
    employer_approves = SUBMITTED.to(APPROVED)
    review_period_elapsed = SUBMITTED.to(AUTO_APPROVED)
    employer_rejects = SUBMITTED.to(REJECTED)
    employer_requests_revision = SUBMITTED.to(REVISION_REQUESTED)

    # --- Worker response ---
    rejection_accepted = REJECTED.to(REJECTED_ACCEPTED)
    worker_disputes = REJECTED.to(DISPUTED)
    worker_resubmits = REVISION_REQUESTED.to(SUBMITTED)
    worker_cancels = REVISION_REQUESTED.to(CANCELLED_BY_WORKER)

    # --- Disputes ---
    admin_resolves = DISPUTED.to(DISPUTE_RESOLVED)

    def __init__(self, current_status: str = "submitted") -> None:
        self._start_at(current_status)


def validate_transition(
    current_status: str,
    event_name: str,
    machine: type[StateMachine] = OrderStateMachine,
) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine at ``current_status``, fires the
    named event, and returns the resulting status string.

    Raises:
        InvalidStateError: If the transition is illegal from ``current_status``.
        ValueError: If the status or event name is unknown.
    """
    sm = machine(current_status=current_status)

    if not _is_event(sm, event_name):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    try:
        getattr(sm, event_name)()
    except TransitionNotAllowed as err:
        raise InvalidStateError(current_status, event_name) from err
    return sm.status


def _is_event(sm: StateMachine, event_name: str) -> bool:
    return (
        not event_name.startswith("_")
        and not hasattr(StateMachine, event_name)
        and not hasattr(_GuardMixin, event_name)
        and callable(getattr(sm, event_name, None))
    )
