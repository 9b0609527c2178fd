"""Operational endpoints for the timeout sweeper.

Routes:
    POST   /api/v1/maintenance/sweep    Run one sweeper pass now (optionally dry)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from marketplace_escrow.api.deps import get_services
from marketplace_escrow.logging_config import get_logger
from marketplace_escrow.schemas.disputes import SweepReportResponse
from marketplace_escrow.services.container import Services

router = APIRouter(prefix="/api/v1/maintenance", tags=["Maintenance"])
logger = get_logger(__name__)


@router.post(
    "/sweep",
    response_model=SweepReportResponse,
    summary="Apply every due automatic action now",
    description=(
        "Runs the same pass the background sweeper runs on its interval. "
        "With dry_run=true nothing is changed; the report lists what would be done."
    ),
)
async def run_sweep(
    dry_run: bool = Query(default=False),
    services: Services = Depends(get_services),
) -> SweepReportResponse:
    logger.info("maintenance.sweep_requested", dry_run=dry_run)
    report = await services.sweeper.run_once(dry_run=dry_run)
    return SweepReportResponse.model_validate(report.to_dict())
