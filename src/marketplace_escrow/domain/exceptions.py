"""Domain exceptions for the marketplace escrow engine.

Business-rule violations derive from MarketplaceError and carry a stable
``code``. Service commands convert them into CommandResult failures; the
API layer turns those into HTTP responses.

Infrastructure failures (ledger or database unavailable) derive from
InfrastructureError instead. They are never converted into results: they
propagate and abort the transition without partial mutation.
"""


class MarketplaceError(Exception):
    """Base exception for all business-rule violations."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- State errors ---


class InvalidStateError(MarketplaceError):
    """Raised when an operation is illegal for the subject's current status.

    Example: submit_delivery on an order that is still awaiting acceptance.
    """

    def __init__(self, current_state: str, attempted: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Operation '{attempted}' not allowed in state '{current_state}'",
            code="INVALID_STATE",
        )
        self.current_state = current_state
        self.attempted = attempted


class ExpiredError(MarketplaceError):
    """Raised when the deadline guarding an operation has passed.

    The client should re-read the subject: the sweeper may already have
    applied the automatic outcome.
    """

    def __init__(self, subject_id: str, deadline: str) -> None:
        super().__init__(
            message=f"Deadline {deadline} has passed for {subject_id}",
            code="EXPIRED",
        )
        self.subject_id = subject_id
        self.deadline = deadline


class AlreadyCompletedError(MarketplaceError):
    """Raised when payment is released again on a completed order."""

    def __init__(self, subject_id: str) -> None:
        super().__init__(
            message=f"Already completed: {subject_id}",
            code="ALREADY_COMPLETED",
        )
        self.subject_id = subject_id


# --- Authorization ---


class ForbiddenError(MarketplaceError):
    """Raised when the actor lacks the role the operation requires."""

    def __init__(self, actor_id: str, action: str) -> None:
        super().__init__(
            message=f"Actor {actor_id} may not {action}",
            code="FORBIDDEN",
        )
        self.actor_id = actor_id
        self.action = action


# --- Conflicts ---


class ConflictError(MarketplaceError):
    """Raised on duplicate disputes and duplicate extension requests."""

    def __init__(self, message: str, code: str = "CONFLICT") -> None:
        super().__init__(message=message, code=code)


class ConcurrentModificationError(ConflictError):
    """Raised when an optimistic version check fails on write."""

    def __init__(self, subject_id: str, expected_version: int) -> None:
        super().__init__(
            message=f"{subject_id} was modified concurrently (expected version {expected_version})",
            code="STALE_VERSION",
        )
        self.subject_id = subject_id
        self.expected_version = expected_version


# --- Input errors ---


class ValidationFailedError(MarketplaceError):
    """Raised when a required reason, note or amount is missing or too short."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class InvalidDecisionError(MarketplaceError):
    """Raised when a dispute resolution names an unknown decision."""

    def __init__(self, decision: str) -> None:
        super().__init__(
            message=f"Unknown resolution decision: {decision}",
            code="INVALID_DECISION",
        )
        self.decision = decision


# --- Lookup errors ---


class NotFoundError(MarketplaceError):
    """Raised when a subject id does not exist."""

    def __init__(self, kind: str, subject_id: str) -> None:
        super().__init__(message=f"{kind} not found: {subject_id}", code="NOT_FOUND")
        self.subject_id = subject_id


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str) -> None:
        super().__init__("Order", order_id)


class SubmissionNotFoundError(NotFoundError):
    def __init__(self, submission_id: str) -> None:
        super().__init__("Submission", submission_id)


class DisputeNotFoundError(NotFoundError):
    def __init__(self, dispute_id: str) -> None:
        super().__init__("Dispute", dispute_id)


# --- Ledger errors ---


class AlreadySettledError(MarketplaceError):
    """Raised when a reservation that was already settled is settled again.

    This is the single-settlement guard: whichever of a manual action and a
    sweeper action reaches the ledger second lands here.
    """

    def __init__(self, subject_id: str) -> None:
        super().__init__(
            message=f"Escrow already settled for {subject_id}",
            code="ALREADY_SETTLED",
        )
        self.subject_id = subject_id


class OverSettlementError(MarketplaceError):
    """Raised when settlement parts add up to more than was reserved."""

    def __init__(self, subject_id: str, requested: str, reserved: str) -> None:
        super().__init__(
            message=f"Settlement of {requested} exceeds reserved {reserved} for {subject_id}",
            code="VALIDATION_ERROR",
        )


# --- Infrastructure ---


class InfrastructureError(Exception):
    """A storage or ledger backend failed; the transition was rolled back."""


class ReservationMissingError(InfrastructureError):
    """The ledger holds no reservation for a subject that should have one."""

    def __init__(self, subject_id: str) -> None:
        super().__init__(f"No escrow reservation for {subject_id}")
        self.subject_id = subject_id
