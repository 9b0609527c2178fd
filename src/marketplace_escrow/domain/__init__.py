"""Domain layer: order, submission and dispute rules with no framework imports."""

from marketplace_escrow.domain.enums import (
    DisputeStatus,
    EventType,
    OrderStatus,
    ResolutionDecision,
    SubjectKind,
    SubmissionStatus,
)
from marketplace_escrow.domain.exceptions import (
    AlreadySettledError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
)
from marketplace_escrow.domain.models import Dispute, Order, Submission
from marketplace_escrow.domain.results import CommandResult, command
from marketplace_escrow.domain.settlement import MarketplacePolicy, compute_split
from marketplace_escrow.domain.state_machine import (
    OrderStateMachine,
    SubmissionStateMachine,
    validate_transition,
)

__all__ = [
    "AlreadySettledError",
    "CommandResult",
    "Dispute",
    "DisputeStatus",
    "EventType",
    "InvalidStateError",
    "MarketplaceError",
    "MarketplacePolicy",
    "NotFoundError",
    "Order",
    "OrderStateMachine",
    "OrderStatus",
    "ResolutionDecision",
    "SubjectKind",
    "Submission",
    "SubmissionStateMachine",
    "SubmissionStatus",
    "command",
    "compute_split",
    "validate_transition",
]
