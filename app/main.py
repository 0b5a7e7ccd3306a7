# =============================================================================
# FastAPI Application — IndiaLawAI Compliance API
# =============================================================================
#
# create_app() builds the application; `app` is the instance uvicorn runs:
#
#   uvicorn app.main:app --port 8080
#
# LIFESPAN: the Services container (database engine, blob store, LLM
# client, knowledge base, job queue) is built once at startup and disposed
# at shutdown. Tests pass a pre-built container instead, which the app
# then leaves for the test to close.
#
# ERROR MAPPING: every ComplianceAppError becomes {"detail": message} with
# the status code the exception carries. Upstream failures (storage, OCR,
# model, translation) expose their message only outside production.
# Request validation errors are 400, not FastAPI's default 422.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import analysis, documents, files, qa, report, upload
from app.config import Settings, get_settings
from app.exceptions import AuthenticationFailed, ComplianceAppError, UpstreamServiceError
from app.models.responses import HealthResponse
from app.services.container import Services, build_services

logger = logging.getLogger(__name__)

GENERIC_UPSTREAM_ERROR = "An upstream service failed. Please try again later."


def _error_message(exc: ComplianceAppError, settings: Settings) -> str:
    if isinstance(exc, UpstreamServiceError) and settings.is_production:
        return GENERIC_UPSTREAM_ERROR
    return exc.message


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    settings = services.settings if services is not None else (settings or get_settings())

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = await build_services(settings) if owned else services
        logger.info(
            "Starting %s v%s (environment=%s)",
            settings.app_name, settings.app_version, settings.environment,
        )
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()
            logger.info("Shut down %s", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Upload contracts and agreements, get an Indian-law compliance "
            "analysis with risks and recommended clauses, ask questions in "
            "English or Indian languages, and download a PDF report."
        ),
        lifespan=lifespan,
    )
    if services is not None:
        # Available before startup, for tests that skip the lifespan
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.exception_handler(ComplianceAppError)
    async def handle_app_error(request: Request, exc: ComplianceAppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationFailed) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": _error_message(exc, settings)},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": _first_validation_message(exc)})

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        detail = "Internal server error" if settings.is_production else str(exc) or "Internal server error"
        return JSONResponse(status_code=500, content={"detail": detail})

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(timestamp=datetime.now(UTC))

    app.include_router(upload.router)
    app.include_router(documents.router)
    app.include_router(analysis.router)
    app.include_router(qa.router)
    app.include_router(report.router)
    app.include_router(files.router)

    return app


app = create_app()
