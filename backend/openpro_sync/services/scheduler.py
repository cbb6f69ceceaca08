# backend/openpro_sync/services/scheduler.py
"""
OpenPro Sync Scheduler (APScheduler)

Runs the full store <-> OpenPro reconciliation and the iCal imports on an
interval. The startup run is triggered from the FastAPI lifespan.

Usage:
    from openpro_sync.services.scheduler import start_scheduler, shutdown_scheduler

    # in the FastAPI lifespan
    start_scheduler(warnings)
    ...
    shutdown_scheduler()
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from openpro_sync.services.startup_sync_service import StartupSyncReport
from openpro_sync.services.sync_warnings import SyncWarnings

logger = logging.getLogger("openpro_sync.scheduler")
logger.setLevel(logging.INFO)

if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s [SCHEDULER] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

SYNC_JOB_ID = "openpro_sync_job"
ICAL_JOB_ID = "ical_import_job"

_scheduler: Optional[AsyncIOScheduler] = None


async def run_startup_sync(warnings: SyncWarnings) -> StartupSyncReport:
    """
    One full reconciliation run with its own session.
    Pass failures are warnings; the report is returned either way.
    """
    from openpro_sync.adapters.openpro_client import get_openpro_client
    from openpro_sync.core.config import settings
    from openpro_sync.db.session import SessionLocal
    from openpro_sync.services.startup_sync_service import StartupSyncService

    db = SessionLocal()
    try:
        service = StartupSyncService(
            db,
            get_openpro_client(),
            supplier_id=settings.SUPPLIER_ID,
            warnings=warnings,
            horizon_days=settings.EXPORT_HORIZON_DAYS,
        )
        return await service.run()
    finally:
        db.close()


async def startup_sync_job(warnings: SyncWarnings):
    """Interval job: full OpenPro reconciliation"""
    start_time = datetime.utcnow()
    logger.info("=" * 60)
    logger.info("OpenPro sync job started")
    logger.info(f"  start: {start_time.isoformat()}")

    try:
        report = await run_startup_sync(warnings)
    except Exception as e:
        logger.error(f"OpenPro sync job failed: {e}", exc_info=True)
        return

    elapsed = (datetime.utcnow() - start_time).total_seconds()
    logger.info(f"  passes: {report.passes}")
    logger.info(f"  new warnings: {report.warnings}")
    logger.info(f"OpenPro sync job finished in {elapsed:.1f}s")
    logger.info("=" * 60)


async def ical_import_job(warnings: SyncWarnings):
    """Interval job: import every configured iCal feed"""
    from openpro_sync.core.config import settings
    from openpro_sync.db.session import SessionLocal
    from openpro_sync.services.ical_service import IcalService

    db = SessionLocal()
    try:
        service = IcalService(
            db,
            supplier_id=settings.SUPPLIER_ID,
            public_base_url=settings.PUBLIC_BASE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        summary = await service.sync_all_imports(warnings=warnings)
        db.commit()
        logger.info(
            f"iCal import job: {len(summary.results)} feed(s) imported, {len(summary.errors)} error(s)"
        )
    except Exception as e:
        db.rollback()
        logger.error(f"iCal import job failed: {e}", exc_info=True)
    finally:
        db.close()


def start_scheduler(warnings: SyncWarnings, interval_minutes: int = 30):
    """
    Start the scheduler.

    Args:
        warnings: accumulator shared with the admin API
        interval_minutes: interval of both jobs
    """
    global _scheduler

    if _scheduler is not None:
        logger.warning("Scheduler already running")
        return

    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        startup_sync_job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[warnings],
        id=SYNC_JOB_ID,
        name="OpenPro reconciliation",
        replace_existing=True,
        max_instances=1,
    )

    _scheduler.add_job(
        ical_import_job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[warnings],
        id=ICAL_JOB_ID,
        name="iCal imports",
        replace_existing=True,
        max_instances=1,
    )

    _scheduler.start()

    logger.info("=" * 60)
    logger.info("OpenPro Sync scheduler started")
    logger.info(f"  [Job 1] OpenPro reconciliation: every {interval_minutes} min")
    logger.info(f"          next run: {_scheduler.get_job(SYNC_JOB_ID).next_run_time}")
    logger.info(f"  [Job 2] iCal imports: every {interval_minutes} min")
    logger.info(f"          next run: {_scheduler.get_job(ICAL_JOB_ID).next_run_time}")
    logger.info("=" * 60)


def shutdown_scheduler():
    """Stop the scheduler"""
    global _scheduler

    if _scheduler is None:
        return

    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("OpenPro Sync scheduler stopped")


def get_scheduler() -> Optional[AsyncIOScheduler]:
    return _scheduler
