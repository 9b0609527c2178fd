"""Pydantic schemas for disputes and the maintenance endpoints."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - pydantic resolves annotations at runtime
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from marketplace_escrow.domain.enums import ActorRole, DisputeStatus, SubjectKind  # noqa: TC001
from marketplace_escrow.schemas.common import ActorRequest, ResolutionResponse


class OpenDisputeRequest(ActorRequest):
    """Open a dispute against any subject kind."""

    subject_kind: SubjectKind
    subject_id: str = Field(..., min_length=1, max_length=128)
    reason: str = Field(..., max_length=2000)
    details: str = Field(default="", max_length=10_000)
    evidence: list[str] = Field(default_factory=list)


class EvidenceRequest(ActorRequest):
    refs: list[str] = Field(..., min_length=1, description="Opaque evidence references")


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    subject_kind: SubjectKind
    subject_id: str
    job_id: str | None
    opened_by: str
    opened_by_role: ActorRole
    buyer_id: str
    seller_id: str
    amount: Decimal
    reason: str
    details: str
    evidence: list[str]
    status: DisputeStatus
    opened_at: datetime
    reviewed_by: str | None
    resolution: ResolutionResponse | None
    version: int


class SweepActionResponse(BaseModel):
    subject_kind: SubjectKind
    subject_id: str
    action: str
    outcome: str
    detail: str | None = None


class SweepReportResponse(BaseModel):
    """What one sweeper pass did (or would do, on a dry run)."""

    started_at: datetime
    finished_at: datetime | None
    dry_run: bool
    applied: int
    skipped: int
    failed: int
    actions: list[SweepActionResponse]
