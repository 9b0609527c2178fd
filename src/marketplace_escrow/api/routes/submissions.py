"""Job submission REST API routes (review, revision and rejection workflow).

Routes:
    POST   /api/v1/submissions                      Worker submits work
    GET    /api/v1/submissions                      List (job / worker / employer / status)
    GET    /api/v1/submissions/{id}                 Get submission details
    GET    /api/v1/submissions/{id}/audit           Audit trail
    POST   /api/v1/submissions/{id}/approve         Employer approves (release)
    POST   /api/v1/submissions/{id}/reject          Employer rejects
    POST   /api/v1/submissions/{id}/revision        Employer requests a revision
    POST   /api/v1/submissions/{id}/accept-rejection  Worker accepts rejection (refund)
    POST   /api/v1/submissions/{id}/dispute         Worker disputes the rejection
    POST   /api/v1/submissions/{id}/resubmit        Worker resubmits revised work
    POST   /api/v1/submissions/{id}/cancel          Worker cancels the job (refund)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from marketplace_escrow.api.deps import IdempotencyGuard, get_services, idempotency, to_response
from marketplace_escrow.domain.enums import SubmissionStatus
from marketplace_escrow.schemas.common import ActorRequest, AuditEntryResponse, ReasonRequest
from marketplace_escrow.schemas.disputes import DisputeResponse
from marketplace_escrow.schemas.submissions import (
    JobDisputeRequest,
    ResubmitRequest,
    RevisionRequest,
    SubmissionResponse,
    SubmitWorkRequest,
)
from marketplace_escrow.services.container import Services

router = APIRouter(prefix="/api/v1/submissions", tags=["Submissions"])


@router.post(
    "",
    response_model=SubmissionResponse,
    status_code=201,
    summary="Submit work and reserve its payment",
)
async def submit_work(
    request: SubmitWorkRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> SubmissionResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.submit_work(
        job_id=request.job_id,
        worker_id=request.worker_id,
        employer_id=request.employer_id,
        payment_amount=request.payment_amount,
        message=request.message,
        files=request.files,
        links=request.links,
        submission_id=request.submission_id,
    )
    return await guard.respond(result, SubmissionResponse, status_code=201)


@router.get("", response_model=list[SubmissionResponse], summary="List submissions")
async def list_submissions(
    job_id: str | None = Query(default=None),
    worker_id: str | None = Query(default=None),
    employer_id: str | None = Query(default=None),
    status: SubmissionStatus | None = Query(default=None),
    services: Services = Depends(get_services),
) -> list[SubmissionResponse]:
    subs = await services.submissions.list_submissions(job_id, worker_id, employer_id, status)
    return [SubmissionResponse.model_validate(s) for s in subs]


@router.get("/{submission_id}", response_model=SubmissionResponse, summary="Get submission details")
async def get_submission(submission_id: str, services: Services = Depends(get_services)) -> SubmissionResponse:
    return to_response(await services.submissions.get_submission(submission_id), SubmissionResponse)


@router.get("/{submission_id}/audit", response_model=list[AuditEntryResponse], summary="Audit trail")
async def get_audit_trail(
    submission_id: str, services: Services = Depends(get_services)
) -> list[AuditEntryResponse]:
    to_response(await services.submissions.get_submission(submission_id), SubmissionResponse)
    entries = await services.submissions.get_audit_trail(submission_id)
    return [AuditEntryResponse.model_validate(e) for e in entries]


# ---------------------------------------------------------------------------
# Employer review
# ---------------------------------------------------------------------------


@router.post("/{submission_id}/approve", response_model=SubmissionResponse, summary="Employer approves")
async def approve_submission(
    submission_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> SubmissionResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.approve(submission_id, request.actor_id)
    return await guard.respond(result, SubmissionResponse)


@router.post("/{submission_id}/reject", response_model=SubmissionResponse, summary="Employer rejects")
async def reject_submission(
    submission_id: str,
    request: ReasonRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> SubmissionResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.reject(submission_id, request.actor_id, request.reason)
    return await guard.respond(result, SubmissionResponse)


@router.post("/{submission_id}/revision", response_model=SubmissionResponse, summary="Employer requests a revision")
async def request_revision(
    submission_id: str,
    request: RevisionRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> SubmissionResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.request_revision(submission_id, request.actor_id, request.notes)
    return await guard.respond(result, SubmissionResponse)


# ---------------------------------------------------------------------------
# Worker response
# ---------------------------------------------------------------------------


@router.post(
    "/{submission_id}/accept-rejection",
    response_model=SubmissionResponse,
    summary="Worker accepts the rejection; employer refunded",
)
async def accept_rejection(
    submission_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> SubmissionResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.accept_rejection(submission_id, request.actor_id)
    return await guard.respond(result, SubmissionResponse)


@router.post(
    "/{submission_id}/dispute",
    response_model=DisputeResponse,
    status_code=201,
    summary="Worker disputes the rejection",
)
async def create_dispute(
    submission_id: str,
    request: JobDisputeRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> DisputeResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.create_dispute(
        submission_id, request.actor_id, request.reason, request.details, request.evidence
    )
    return await guard.respond(result, DisputeResponse, status_code=201)


@router.post("/{submission_id}/resubmit", response_model=SubmissionResponse, summary="Worker resubmits")
async def resubmit(
    submission_id: str,
    request: ResubmitRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> SubmissionResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.resubmit(
        submission_id, request.actor_id, request.message, request.files, request.links
    )
    return await guard.respond(result, SubmissionResponse)


@router.post(
    "/{submission_id}/cancel",
    response_model=SubmissionResponse,
    summary="Worker cancels the job; employer refunded",
)
async def cancel_job(
    submission_id: str,
    request: ActorRequest,
    services: Services = Depends(get_services),
    guard: IdempotencyGuard = Depends(idempotency),
) -> SubmissionResponse | JSONResponse:
    if (cached := await guard.replay()) is not None:
        return cached
    result = await services.submissions.cancel_job_by_worker(submission_id, request.actor_id)
    return await guard.respond(result, SubmissionResponse)
