"""
Application assembly.

    database = DatabaseService(settings.DATABASE_URL)
    app = create_app(settings, database, routers=[users])

The database connects when the app starts serving and disconnects on
shutdown. All error responses follow the standard envelope.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Iterable, Optional, Union

from fastapi import APIRouter, FastAPI, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from qcore.core.config import Settings, get_settings
from qcore.core.error_pipeline import ErrorPipeline, register_error_handlers
from qcore.core.errors import ErrorCode
from qcore.core.events import EventBus
from qcore.core.observability import setup_logging
from qcore.core.rate_limit import install_rate_limiter
from qcore.core.request_logger import RequestLoggingMiddleware
from qcore.core.responses import format_response, send_error, send_response
from qcore.db.database import DatabaseService
from qcore.routers.crud import CRUDRouter
from qcore.schemas.common import ApiResponse


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[DatabaseService] = None,
    routers: Iterable[Union[CRUDRouter, APIRouter]] = (),
    events: Optional[EventBus] = None,
    title: str = "qcore API",
    configure_logging: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    database = database or DatabaseService(settings.DATABASE_URL)
    if configure_logging:
        setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(database.connect)
        yield
        await run_in_threadpool(database.disconnect)

    app = FastAPI(
        title=title,
        description="All responses follow the `{success, statusCode, message, data, errors}` envelope.",
        version="1.0.0",
        lifespan=lifespan,
        responses={"default": {"model": ApiResponse}},
    )
    app.state.settings = settings
    app.state.database = database
    app.state.events = events or EventBus()

    # --- Middleware (last added runs first) ---
    app.add_middleware(RequestLoggingMiddleware, slow_request_ms=settings.SLOW_REQUEST_MS)
    install_rate_limiter(app, settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Error handling ---
    register_error_handlers(app, ErrorPipeline(production=settings.is_production))

    # --- Routers ---
    for router in routers:
        app.include_router(router.router if isinstance(router, CRUDRouter) else router)

    @app.get("/health", tags=["health"], summary="Health check")
    def health():
        """
        `data.db == "ok"` when the database answers; HTTP 503 otherwise.
        Used as the liveness probe.
        """
        if not database.health_check():
            return send_error(format_response(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "Service Unavailable",
                data={"status": "error", "db": "unreachable"},
                errors=[{"path": "database", "message": "Database unavailable",
                         "code": ErrorCode.DATABASE_ERROR}],
            ))
        return send_response(
            status.HTTP_200_OK,
            "Service healthy",
            {"status": "ok", "db": "ok", "env": settings.APP_ENV},
        )

    return app
