"""
Admin API

Sync warnings introspection, manual sync run, scheduler status
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from openpro_sync.adapters.openpro_client import OpenProClient
from openpro_sync.api.deps import get_client, get_sync_warnings
from openpro_sync.api.v1.schemas.admin import (
    SchedulerStatusResponse,
    SyncRunResponse,
    SyncWarningRead,
    SyncWarningsResponse,
)
from openpro_sync.core.config import settings
from openpro_sync.db.session import get_db
from openpro_sync.services.startup_sync_service import StartupSyncService
from openpro_sync.services.sync_warnings import SyncWarnings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/startup-warnings", response_model=SyncWarningsResponse)
def list_startup_warnings(
    warnings: SyncWarnings = Depends(get_sync_warnings),
) -> SyncWarningsResponse:
    items = warnings.list()
    return SyncWarningsResponse(
        count=len(items),
        warnings=[SyncWarningRead.model_validate(w) for w in items],
    )


@router.delete("/startup-warnings", status_code=status.HTTP_204_NO_CONTENT)
def clear_startup_warnings(
    warnings: SyncWarnings = Depends(get_sync_warnings),
) -> None:
    warnings.clear()


@router.post("/sync/run-now", response_model=SyncRunResponse)
async def run_sync_now(
    *,
    db: Session = Depends(get_db),
    client: OpenProClient = Depends(get_client),
    warnings: SyncWarnings = Depends(get_sync_warnings),
) -> SyncRunResponse:
    """Run every sync pass once, synchronously."""
    service = StartupSyncService(
        db,
        client,
        supplier_id=settings.SUPPLIER_ID,
        warnings=warnings,
        horizon_days=settings.EXPORT_HORIZON_DAYS,
    )
    report = await service.run()
    return SyncRunResponse(
        passes=report.passes,
        failed_passes=report.failed_passes,
        warnings=report.warnings,
        started_at=report.started_at,
        finished_at=report.finished_at,
    )


@router.get("/scheduler/status", response_model=SchedulerStatusResponse)
def get_scheduler_status() -> SchedulerStatusResponse:
    from openpro_sync.services.scheduler import get_scheduler, SYNC_JOB_ID

    scheduler = get_scheduler()
    if scheduler is None:
        return SchedulerStatusResponse(running=False, interval_minutes=None, next_run=None)

    job = scheduler.get_job(SYNC_JOB_ID)
    next_run = None
    if job and job.next_run_time:
        next_run = job.next_run_time.isoformat()

    return SchedulerStatusResponse(
        running=scheduler.running,
        interval_minutes=settings.SYNC_INTERVAL_MINUTES,
        next_run=next_run,
    )
