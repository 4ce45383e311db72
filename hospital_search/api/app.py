"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the search and indexing routers.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from hospital_search import __version__
from hospital_search.api.dependencies import Services, get_services
from hospital_search.api.indexing import router as indexing_router
from hospital_search.api.routes import router as search_router
from hospital_search.config import get_settings
from hospital_search.embeddings.service import validate_embedding_settings
from hospital_search.exceptions import (
    DatabaseError,
    ErrorCode,
    HospitalSearchError,
    ValidationError,
)
from hospital_search.logging_config import get_logger, setup_logging
from hospital_search.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the service graph on startup and closes it on shutdown.
    """
    # Startup
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting Hospital Search",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
            "embedding_provider": settings.embedding.provider.value,
        },
    )

    validation = validate_embedding_settings(settings)
    for error in validation.errors:
        logger.error(f"Embedding configuration: {error}")
    for warning in validation.warnings:
        logger.warning(f"Embedding configuration: {warning}")

    services = Services.build(settings)
    try:
        await services.store.ensure_collections()
    except DatabaseError as e:
        logger.error(f"Store initialisation failed: {e.message}")
    app.state.services = services

    yield

    # Shutdown
    logger.info("Shutting down Hospital Search")
    await services.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Hospital Search",
        description="Hybrid semantic and lexical hospital search",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(MetricsMiddleware)

    # Register exception handlers
    app.add_exception_handler(HospitalSearchError, hospital_search_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    # Register routes
    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics, methods=["GET"], tags=["Observability"])
    app.include_router(search_router)
    app.include_router(indexing_router)

    return app


async def hospital_search_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle HospitalSearchError exceptions.

    Converts exceptions to structured JSON responses.
    """
    # Type narrow to HospitalSearchError
    if not isinstance(exc, HospitalSearchError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": str(exc),
                    "details": {},
                }
            },
        )

    status_code = _get_status_code(exc.code)
    log = logger.warning if status_code < 500 else logger.error
    log(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(),
    )


async def request_validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Report malformed requests as 400 with the structured error body."""
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    error = ValidationError(
        "Invalid request",
        details={
            "errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                for e in errors
            ]
        },
    )
    return await hospital_search_exception_handler(request, error)


_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.HOSPITAL_NOT_FOUND: 404,
    ErrorCode.INDEXING_IN_PROGRESS: 409,
    ErrorCode.QUOTA_EXCEEDED: 429,
    ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
    ErrorCode.PROVIDER_NOT_CONFIGURED: 502,
    ErrorCode.INVALID_PROVIDER_RESPONSE: 502,
}


def _get_status_code(error_code: ErrorCode) -> int:
    """Map error code to HTTP status code."""
    # Database, configuration and internal errors -> 500
    return _STATUS_CODES.get(error_code, 500)


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Kubernetes readiness check.

    Checks embedding provider configuration and store connectivity.

    Returns:
        Readiness status with component checks.
    """
    validation = validate_embedding_settings()
    checks: dict[str, str] = {
        "config": "ok" if validation.is_valid else "invalid",
    }

    try:
        services = get_services(request)
    except HospitalSearchError:
        checks["store"] = "not_initialised"
    else:
        checks["store"] = "ok" if await services.store.ping() else "unreachable"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "errors": validation.errors,
        "warnings": validation.warnings,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness check.

    Simple check that the service is running.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
