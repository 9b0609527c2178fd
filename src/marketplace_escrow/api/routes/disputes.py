"""Dispute REST API routes (admin tooling and party evidence).

Routes:
    POST   /api/v1/disputes                  Open a dispute on an order or job
    GET    /api/v1/disputes                  List (status / subject kind / party)
    GET    /api/v1/disputes/{id}             Get dispute details
    POST   /api/v1/disputes/{id}/evidence    Party adds evidence references
    POST   /api/v1/disputes/{id}/review      Admin takes the dispute under review
    POST   /api/v1/disputes/{id}/resolve     Admin resolves (payment split)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from marketplace_escrow.api.deps import IdempotencyGuard, get_services, idempotency, to_response
from marketplace_escrow.domain.enums import DisputeStatus, SubjectKind
from marketplace_escrow.schemas.common import AdminRequest, ResolveDisputeRequest
from marketplace_escrow.schemas.disputes import DisputeResponse, EvidenceRequest, OpenDisputeRequest
from marketplace_escrow.services.container import Services

router = APIRouter(prefix="/api/v1/disputes", tags=["Disputes"])


@router.post("", response_model=DisputeResponse, status_code=201, summary="Open a dispute")
async def open_dispute(
    request: OpenDisputeRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> DisputeResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.disputes.open(
        request.subject_kind,
        request.subject_id,
        request.actor_id,
        request.reason,
        request.details,
        request.evidence,
    )
    return await guard.respond(result, DisputeResponse, status_code=201)


@router.get("", response_model=list[DisputeResponse], summary="List disputes")
async def list_disputes(
    status: DisputeStatus | None = Query(default=None),
    subject_kind: SubjectKind | None = Query(default=None),
    user_id: str | None = Query(default=None, description="Disputes where this user is a party"),
    services: Services = Depends(get_services),
) -> list[DisputeResponse]:
    if user_id is not None:
        disputes = await services.disputes.list_disputes_for_user(user_id)
        disputes = [
            d
            for d in disputes
            if (status is None or d.status is status) and (subject_kind is None or d.subject_kind is subject_kind)
        ]
    else:
        disputes = await services.disputes.list_disputes(status, subject_kind)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.get("/{dispute_id}", response_model=DisputeResponse, summary="Get dispute details")
async def get_dispute(dispute_id: str, services: Services = Depends(get_services)) -> DisputeResponse:
    return to_response(await services.disputes.get_dispute(dispute_id), DisputeResponse)


@router.post("/{dispute_id}/evidence", response_model=DisputeResponse, summary="Add evidence references")
async def add_evidence(
    dispute_id: str,
    request: EvidenceRequest,
    services: Services = Depends(get_services),
) -> DisputeResponse:
    result = await services.disputes.add_evidence(dispute_id, request.actor_id, request.refs)
    return to_response(result, DisputeResponse)


@router.post("/{dispute_id}/review", response_model=DisputeResponse, summary="Admin starts reviewing")
async def mark_under_review(
    dispute_id: str,
    request: AdminRequest,
    services: Services = Depends(get_services),
) -> DisputeResponse:
    result = await services.disputes.mark_under_review(dispute_id, request.admin_id)
    return to_response(result, DisputeResponse)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse, summary="Admin resolves the dispute")
async def resolve_dispute(
    dispute_id: str,
    request: ResolveDisputeRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> DisputeResponse | JSONResponse:
    """Settles the subject's escrow with the decision's split, exactly once."""
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.disputes.resolve(dispute_id, request.admin_id, request.decision, request.notes)
    return await guard.respond(result, DisputeResponse)
