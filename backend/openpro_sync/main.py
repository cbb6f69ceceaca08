import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from openpro_sync.api.v1.api import api_router
from openpro_sync.core.config import settings
from openpro_sync.core.errors import (
    ConflictError,
    NotFoundError,
    OperationCancelledError,
    UpstreamError,
    ValidationError,
)
from openpro_sync.db.session import init_db
from openpro_sync.services.scheduler import run_startup_sync, shutdown_scheduler, start_scheduler
from openpro_sync.services.sync_warnings import SyncWarnings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: one reconciliation run, then the interval scheduler.
    A failed startup run is logged; the API still starts.
    """
    warnings: SyncWarnings = app.state.sync_warnings

    if settings.STARTUP_SYNC_ENABLED:
        try:
            await run_startup_sync(warnings)
        except Exception as e:
            logger.error(f"STARTUP_SYNC: startup run failed: {e}", exc_info=True)
        start_scheduler(warnings, interval_minutes=settings.SYNC_INTERVAL_MINUTES)
    yield
    shutdown_scheduler()


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error_response(400, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error_response(404, exc)

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return _error_response(409, exc)

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        logger.warning(f"UPSTREAM: {request.method} {request.url.path} -> {exc}")
        return _error_response(502, exc)

    @app.exception_handler(OperationCancelledError)
    async def cancelled_handler(request: Request, exc: OperationCancelledError):
        return _error_response(503, exc)


def create_app(warnings: Optional[SyncWarnings] = None) -> FastAPI:
    app = FastAPI(
        title="OpenPro Sync Backend",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.sync_warnings = warnings if warnings is not None else SyncWarnings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    init_db()

    # v1 REST API
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
