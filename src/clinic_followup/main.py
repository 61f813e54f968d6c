"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_followup import __version__
from clinic_followup.api import calls, followups, health, jobs, pending_requests, webhooks
from clinic_followup.config import get_settings, require_valid_settings
from clinic_followup.core.exceptions import FollowupEngineError
from clinic_followup.core.logging import get_logger, setup_logging
from clinic_followup.db import close_db, init_db
from clinic_followup.dependencies import close_classifier
from clinic_followup.integrations.channels import close_channel_adapter, get_channel_adapter
from clinic_followup.services.job_scheduler import JobScheduler


log = get_logger(__name__)

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _error_response(
    status_code: int,
    error: str,
    error_code: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "error_code": error_code,
            "details": details or {},
        },
    )


def engine_error_handler(request: Request, exc: FollowupEngineError) -> JSONResponse:
    """Render engine errors with their own status code."""
    log.warning(
        "Request failed",
        path=request.url.path,
        error_code=exc.error_code,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(
        exc.status_code,
        str(exc.detail),
        _HTTP_ERROR_CODES.get(exc.status_code, "ERROR"),
    )


def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one entry per invalid field."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body") or "request",
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error_response(422, "Request validation failed", "VALIDATION_ERROR", {"errors": errors})


def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected failure; the message is only exposed in debug mode."""
    log.exception(
        "Unhandled exception",
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    detail = str(exc) if get_settings().debug else "An internal error occurred"
    return _error_response(500, detail, "INTERNAL_ERROR")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging, check settings, create tables and start the scheduler."""
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        clinic_name=settings.clinic.name,
        mask_phones=settings.log_mask_phones,
    )
    require_valid_settings()

    log.info(
        "Starting clinic follow-up engine",
        version=__version__,
        environment=settings.environment,
        suppress_outbound=settings.messaging.suppress_outbound,
    )

    await init_db()
    log.info("Database initialized")

    scheduler: JobScheduler | None = None
    if settings.scheduler.enabled:
        scheduler = JobScheduler(settings, get_channel_adapter())
        await scheduler.start()
    else:
        log.info("In-process scheduler disabled; jobs run via /api/v1/jobs")

    yield

    log.info("Shutting down clinic follow-up engine")
    if scheduler:
        await scheduler.stop()

    await close_channel_adapter()
    await close_classifier()
    await close_db()
    log.info("Database connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Clinic Follow-up Engine",
        description="Appointment confirmation and no-show follow-up orchestration",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Exception handlers (most specific first)
    app.add_exception_handler(FollowupEngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(webhooks.router, prefix="/api/v1")
    app.include_router(pending_requests.router, prefix="/api/v1")
    app.include_router(calls.router, prefix="/api/v1")
    app.include_router(followups.router, prefix="/api/v1")
    app.include_router(jobs.router, prefix="/api/v1")

    return app


# Create application instance
app = create_app()


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "clinic_followup.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
