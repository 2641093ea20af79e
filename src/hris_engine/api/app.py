"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hris_engine import __version__
from hris_engine.api.routes import attendance_router, health_router, payroll_router
from hris_engine.cache import ExpiringCache
from hris_engine.calculators.tables import load_contribution_tables
from hris_engine.config import Settings, get_settings
from hris_engine.database import dispose_db, init_db
from hris_engine.exceptions import (
    ConfigurationError,
    GeofenceRejection,
    HRISError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[HRISError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    GeofenceRejection: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StateConflictError: status.HTTP_409_CONFLICT,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: HRISError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    # Fail fast on malformed bracket tables
    tables = await run_in_threadpool(app.state.contribution_tables.get)
    tables.require()
    yield
    await dispose_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    app = FastAPI(
        title="HRIS Engine API",
        description="Attendance verification and payroll computation",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.contribution_tables = ExpiringCache(
        lambda: load_contribution_tables(settings.contribution_tables_dir),
        settings.contribution_table_ttl_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(HRISError)
    async def hris_exception_handler(request: Request, exc: HRISError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code, **exc.details()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(attendance_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
