"""Pydantic API schemas."""

from marketplace_escrow.schemas.common import (
    ActorRequest,
    AdminRequest,
    AlreadyProcessedResponse,
    AuditEntryResponse,
    ErrorResponse,
    HealthResponse,
    ReasonRequest,
    ResolveDisputeRequest,
)
from marketplace_escrow.schemas.disputes import (
    DisputeResponse,
    EvidenceRequest,
    OpenDisputeRequest,
    SweepReportResponse,
)
from marketplace_escrow.schemas.orders import (
    DeliveryRequest,
    ExtensionRequest,
    MessageRequest,
    OpenOrderDisputeRequest,
    OrderResponse,
    PlaceOrderRequest,
    RequirementsRequest,
    TimeRemainingResponse,
)
from marketplace_escrow.schemas.submissions import (
    JobDisputeRequest,
    ResubmitRequest,
    RevisionRequest,
    SubmissionResponse,
    SubmitWorkRequest,
)

__all__ = [
    "ActorRequest",
    "AdminRequest",
    "AlreadyProcessedResponse",
    "AuditEntryResponse",
    "DeliveryRequest",
    "DisputeResponse",
    "ErrorResponse",
    "EvidenceRequest",
    "ExtensionRequest",
    "HealthResponse",
    "JobDisputeRequest",
    "MessageRequest",
    "OpenDisputeRequest",
    "OpenOrderDisputeRequest",
    "OrderResponse",
    "PlaceOrderRequest",
    "ReasonRequest",
    "RequirementsRequest",
    "ResolveDisputeRequest",
    "ResubmitRequest",
    "RevisionRequest",
    "SubmissionResponse",
    "SubmitWorkRequest",
    "SweepReportResponse",
    "TimeRemainingResponse",
]
