"""Pydantic schemas for job submissions and their review workflow."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic resolves annotations at runtime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from marketplace_escrow.domain.enums import SubmissionStatus  # noqa: TC001
from marketplace_escrow.schemas.common import (
    ActorRequest,
    DeliverablesResponse,
    ResolutionResponse,
)


class SubmitWorkRequest(BaseModel):
    """Worker hands in work against a job."""

    job_id: str = Field(..., min_length=1, max_length=128)
    worker_id: str = Field(..., min_length=1, max_length=128)
    employer_id: str = Field(..., min_length=1, max_length=128)
    payment_amount: Decimal = Field(..., gt=0, decimal_places=2)
    message: str = Field(..., max_length=10_000)
    files: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
    submission_id: str | None = None


class RevisionRequest(ActorRequest):
    notes: str = Field(..., max_length=5000, description="What must change")


class ResubmitRequest(ActorRequest):
    message: str = Field(..., max_length=10_000)
    files: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)


class JobDisputeRequest(ActorRequest):
    reason: str = Field(..., max_length=2000)
    details: str = Field(default="", max_length=10_000)
    evidence: list[str] = Field(default_factory=list)


class SubmissionResponse(BaseModel):
    """Full view of one submission."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    worker_id: str
    employer_id: str
    payment_amount: Decimal
    status: SubmissionStatus
    submitted_at: datetime
    payload: DeliverablesResponse | None
    revision_count: int
    reviewed_at: datetime | None
    review_deadline: datetime | None
    rejection_deadline: datetime | None
    revision_deadline: datetime | None
    rejection_reason: str | None
    revision_notes: str | None
    resolution: ResolutionResponse | None
    version: int
