"""VAM FastAPI application: entry point for the API server."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from src.api.errors import register_error_handlers
from src.core.logging import clear_request_context, get_logger, setup_logging
from src.data.db import close_engine, get_engine

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup/shutdown lifecycle: initialize DB engine, close on exit."""
    log.info("api_starting")
    await get_engine()
    yield
    await close_engine()
    log.info("api_shutdown")


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    settings = get_settings()
    setup_logging(settings.vam_log_level, json_logs=settings.is_prod)

    app = FastAPI(
        title="VAM Attendance API",
        description="Multi-tenant attendance management: REST API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _fresh_log_context(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        clear_request_context()
        return await call_next(request)

    register_error_handlers(app)

    # Register routers
    from src.api.routes.attendance import router as attendance_router
    from src.api.routes.auth import router as auth_router
    from src.api.routes.courses import router as courses_router
    from src.api.routes.enrollments import router as enrollments_router
    from src.api.routes.health import router as health_router
    from src.api.routes.sessions import router as sessions_router
    from src.api.routes.students import router as students_router
    from src.api.routes.teachers import router as teachers_router

    app.include_router(health_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")
    app.include_router(courses_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")
    app.include_router(teachers_router, prefix="/api")
    app.include_router(students_router, prefix="/api")
    app.include_router(enrollments_router, prefix="/api")
    app.include_router(attendance_router, prefix="/api")

    return app


app = create_app()
