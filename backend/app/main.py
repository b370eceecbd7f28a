# backend/app/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Starts and stops the revaluation scheduler
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.dependencies import get_price_source, get_revaluation_service
from app.middleware import CorrelationIdMiddleware
from app.routers import admin_router, holdings_router, trades_router
from app.schemas.errors import ErrorDetail, ValidationErrorDetail
from app.services.exceptions import (
    CircuitBreakerOpen,
    InsufficientQuantityError,
    NotFoundError,
    PersistenceError,
    ServiceError,
    ValidationError,
)
from app.services.revaluation import RevaluationScheduler, is_run_in_progress
from app.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.enable_scheduler:
        scheduler = RevaluationScheduler(service_factory=get_revaluation_service)
        scheduler.start()
    else:
        logger.info("Revaluation scheduler disabled")
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.shutdown()


# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Holding valuation, trading and daily revaluation API",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# These handlers catch service-layer exceptions and convert them to
# consistent HTTP responses. Starlette dispatches on the most specific
# registered class, so subclasses below win over ServiceError.
# =============================================================================

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle missing (or foreign) portfolios, holdings and instruments (404)."""
    logger.warning(f"{exc.resource_type or 'Resource'} not found: {exc.resource_id}")
    return JSONResponse(
        status_code=404,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details={
                "resource_type": exc.resource_type,
                "resource_id": exc.resource_id,
            },
        ).model_dump(),
    )


@app.exception_handler(InsufficientQuantityError)
async def insufficient_quantity_handler(
    request: Request, exc: InsufficientQuantityError
) -> JSONResponse:
    """Handle sells larger than the holding (400)."""
    logger.warning(f"Insufficient quantity: {exc}")
    return JSONResponse(
        status_code=400,
        content=ErrorDetail(
            error="InsufficientQuantityError",
            message=str(exc),
            details={
                "field": exc.field,
                "holding_id": exc.holding_id,
                "requested": str(exc.requested),
                "available": str(exc.available),
            },
        ).model_dump(),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """Handle business rule violations (400)."""
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details={"field": exc.field} if exc.field else None,
        ).model_dump(),
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Handle circuit breaker open (503 with Retry-After)."""
    logger.warning(f"Circuit breaker open: {exc.breaker_name}")
    retry_after = int(exc.time_remaining) + 1
    return JSONResponse(
        status_code=503,
        content=ErrorDetail(
            error="CircuitBreakerOpen",
            message=f"Service temporarily unavailable. The {exc.breaker_name} circuit breaker is open.",
            details={
                "breaker_name": exc.breaker_name,
                "retry_after": retry_after,
            },
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    """Handle failed writes (500). The operation left no partial state."""
    logger.error(f"Persistence error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="PersistenceError",
            message=str(exc),
            details={"operation": exc.operation},
        ).model_dump(),
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="ServiceError",
            message=str(exc),
            details=None,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle all HTTPExceptions with consistent error format.

    Converts FastAPI's default {"detail": "..."} format to our standard
    ErrorDetail format for API consistency.
    """
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        403: "ForbiddenError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        409: "ConflictError",
        422: "ValidationError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    error_type = error_types.get(exc.status_code, "HTTPError")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_type,
            message=str(exc.detail) if exc.detail else "An error occurred",
            details=None,
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert the default 422 validation error to ValidationErrorDetail."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error="RequestValidationError",
            message="Request validation failed",
            details=errors,
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(trades_router)  # /portfolios/{id}/buy, /holdings/{id}/sell
app.include_router(holdings_router)  # /holdings/{id}, /portfolios/{id}/summary
app.include_router(admin_router)  # /admin/*


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
def root():
    """API root - returns basic application info."""
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Comprehensive health check endpoint.

    Returns HTTP 503 if the database is unhealthy.
    Returns HTTP 200 with degraded status if the price source circuit
    breaker is open; revaluation keeps stored prices in that case.
    """
    checks = {}
    critical_healthy = True
    overall_status = "healthy"

    # Check 1: Database (CRITICAL)
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {
            "status": "healthy",
            "critical": True,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {
            "status": "unhealthy",
            "critical": True,
            "error": str(e),
        }
        critical_healthy = False
        overall_status = "unhealthy"

    # Check 2: Price source (circuit breaker state) - NON-CRITICAL
    breaker = get_price_source().circuit_breaker
    checks["price_source"] = {
        "status": "unhealthy" if breaker.is_open else "healthy",
        "critical": False,
        "circuit_breaker": breaker.snapshot(),
    }
    if breaker.is_open and overall_status == "healthy":
        overall_status = "degraded"

    # Check 3: Scheduler - NON-CRITICAL
    scheduler = getattr(request.app.state, "scheduler", None)
    next_run = scheduler.next_run_time() if scheduler is not None else None
    checks["revaluation_scheduler"] = {
        "status": "running" if scheduler is not None and scheduler.is_running else "disabled",
        "critical": False,
        "next_run_time": next_run.isoformat() if next_run else None,
        "run_in_progress": is_run_in_progress(),
    }

    response_data = {
        "status": overall_status,
        "checks": checks,
    }

    if not critical_healthy:
        return JSONResponse(
            status_code=503,
            content=response_data,
        )

    return response_data


@app.get("/health/live", tags=["Health"])
def liveness_check():
    """
    Liveness probe endpoint.

    Does NOT check dependencies - use /health/ready for that.
    """
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness probe endpoint.

    Returns HTTP 503 if the database is unavailable.
    """
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "error": "Database unavailable",
            },
        )
