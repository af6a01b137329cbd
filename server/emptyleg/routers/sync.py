"""Sync router: provider reconciliation triggers and run history."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_current_user, get_db, get_provider_client, require_cron_secret
from ..core.exceptions import SyncInProgressError
from ..models.sync_run import SyncType
from ..providers import ProviderClient
from ..schemas.sync import (
    ProviderHealthResponse,
    SyncError,
    SyncHistoryRequest,
    SyncHistoryResponse,
    SyncResult,
    SyncRun,
    SyncStatusResponse,
)
from ..services.sync_service import SyncOutcome, SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/sync", tags=["sync"])

DB_DEPENDENCY = Depends(get_db)
PROVIDER_DEPENDENCY = Depends(get_provider_client)


def _convert_run_to_schema(run) -> SyncRun:
    return SyncRun(
        id=str(run.id),
        sync_type=run.sync_type,
        status=run.status,
        triggered_by=run.triggered_by,
        started_at=run.started_at,
        completed_at=run.completed_at,
        duration_ms=run.duration_ms,
        deals_found=run.deals_found,
        deals_created=run.deals_created,
        deals_updated=run.deals_updated,
        deals_removed=run.deals_removed,
        error_message=run.error_message,
        errors=[SyncError(**error) for error in run.errors or []],
    )


def _convert_outcome_to_schema(outcome: SyncOutcome) -> SyncResult:
    return SyncResult(
        success=outcome.success,
        busy=outcome.busy,
        run_id=str(outcome.run_id) if outcome.run_id else None,
        deals_found=outcome.deals_found,
        deals_created=outcome.deals_created,
        deals_updated=outcome.deals_updated,
        deals_removed=outcome.deals_removed,
        duration_ms=outcome.duration_ms,
        errors=[SyncError(**error) for error in outcome.errors],
    )


@router.post("/run", response_model=SyncResult)
async def run_manual_sync(
    db: AsyncSession = DB_DEPENDENCY,
    provider: ProviderClient = PROVIDER_DEPENDENCY,
    current_user: dict = Depends(get_current_user),
) -> JSONResponse:
    """
    Run a MANUAL sync now.

    Answers 409 with code SYNC_IN_PROGRESS when another run holds the lock.
    A failed fetch is still a 200 with ``success: false``: the run happened
    and is recorded.
    """
    outcome = await SyncService(db, provider).run_sync(SyncType.MANUAL, triggered_by=current_user["user_id"])
    if outcome.busy:
        raise SyncInProgressError()

    return JSONResponse(status_code=200, content=_convert_outcome_to_schema(outcome).model_dump(mode="json"))


@router.post("/scheduled", response_model=SyncResult)
async def run_scheduled_sync(
    db: AsyncSession = DB_DEPENDENCY,
    provider: ProviderClient = PROVIDER_DEPENDENCY,
    actor: str = Depends(require_cron_secret),
) -> JSONResponse:
    """
    Run a SCHEDULED sync for an external scheduler.

    A busy lock is not an error here: the body carries ``busy: true`` so
    the scheduler does not alert.
    """
    outcome = await SyncService(db, provider).run_sync(SyncType.SCHEDULED, triggered_by=actor)
    return JSONResponse(status_code=200, content=_convert_outcome_to_schema(outcome).model_dump(mode="json"))


@router.post("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    db: AsyncSession = DB_DEPENDENCY,
    provider: ProviderClient = PROVIDER_DEPENDENCY,
    current_user: dict = Depends(get_current_user),
) -> JSONResponse:
    status = await SyncService(db, provider).get_sync_status()
    response_data = SyncStatusResponse(
        last_run=_convert_run_to_schema(status.last_run) if status.last_run else None,
        in_progress=status.in_progress,
        live_provider_deals=status.live_provider_deals,
        next_scheduled_run_at=status.next_scheduled_run_at,
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/history", response_model=SyncHistoryResponse)
async def get_sync_history(
    request: SyncHistoryRequest,
    db: AsyncSession = DB_DEPENDENCY,
    provider: ProviderClient = PROVIDER_DEPENDENCY,
    current_user: dict = Depends(get_current_user),
) -> JSONResponse:
    runs = await SyncService(db, provider).get_sync_history(request.limit)
    response_data = SyncHistoryResponse(items=[_convert_run_to_schema(run) for run in runs])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/provider-health", response_model=ProviderHealthResponse)
async def check_provider_health(
    db: AsyncSession = DB_DEPENDENCY,
    provider: ProviderClient = PROVIDER_DEPENDENCY,
    current_user: dict = Depends(get_current_user),
) -> JSONResponse:
    health = await SyncService(db, provider).check_provider_health()
    logger.info("Provider health checked", extra=health)
    return JSONResponse(status_code=200, content=ProviderHealthResponse(**health).model_dump(mode="json"))
