# backend/repfi/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application
- Registers global exception handlers
- Registers all routers
- Defines global endpoints (health checks)
"""

import logging

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException

from repfi.config import settings
from repfi.database import get_db
from repfi.middleware import (
    CorrelationIdMiddleware,
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_HEALTH,
)
from repfi.routers import comptable_router, download_router, navigation_router
from repfi.schemas.errors import ErrorDetail, ValidationErrorDetail
from repfi.services.exceptions import (
    ServiceError,
    ValidationError,
    MissingFilesError,
    InvalidFileTypeError,
    FileTooLargeError,
    PeriodLockedError,
    NotFoundError,
    ConflictError,
    PeriodOverlapError,
    PeriodStateConflictError,
    StorageError,
    EtlTriggerError,
    AuthenticationError,
    TokenExpiredError,
    PermissionDeniedError,
)
from repfi.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()

# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Upload and tracking of comptable (accounting) files per billing period",
    version="0.1.0",
)


# =============================================================================
# CORS MIDDLEWARE
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# =============================================================================
# MIDDLEWARE (order matters: last added = first executed)
# =============================================================================

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================
# Service-layer exceptions are converted here to ErrorDetail responses.
# The most specific registered class wins, so subclasses of ValidationError
# and NotFoundError get their own status and details.
# =============================================================================

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error_response(
        status_code: int,
        error: str,
        message: str,
        details: dict | None = None,
        headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(error=error, message=message, details=details).model_dump(),
        headers=headers,
    )


@app.exception_handler(MissingFilesError)
async def missing_files_handler(request: Request, exc: MissingFilesError) -> JSONResponse:
    """Handle uploads lacking required files (400)."""
    logger.warning(f"Upload rejected, missing files: {exc.missing}")
    return _error_response(
        400,
        "MissingFilesError",
        str(exc),
        {
            "missing_files": exc.missing,
            "required_files": [
                {"type": file_type, "label": label} for file_type, label in exc.required
            ],
        },
    )


@app.exception_handler(InvalidFileTypeError)
async def invalid_file_type_handler(request: Request, exc: InvalidFileTypeError) -> JSONResponse:
    """Handle non-Excel files (400)."""
    logger.warning(f"Upload rejected, invalid file type: {exc.filename} ({exc.content_type})")
    return _error_response(
        400,
        "InvalidFileTypeError",
        str(exc),
        {"file": exc.label, "filename": exc.filename, "content_type": exc.content_type},
    )


@app.exception_handler(FileTooLargeError)
async def file_too_large_handler(request: Request, exc: FileTooLargeError) -> JSONResponse:
    """Handle files over the size limit (413)."""
    logger.warning(f"Upload rejected, file too large: {exc.filename} ({exc.size} bytes)")
    return _error_response(
        413,
        "FileTooLargeError",
        str(exc),
        {"filename": exc.filename, "size": exc.size, "max_size": exc.max_size},
    )


@app.exception_handler(PeriodLockedError)
async def period_locked_handler(request: Request, exc: PeriodLockedError) -> JSONResponse:
    """Handle changes to a period owned by the ETL (400)."""
    logger.warning(f"Period {exc.period_id} is locked ({exc.status})")
    return _error_response(
        400,
        "PeriodLockedError",
        str(exc),
        {"period_id": exc.period_id, "status": exc.status},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors (400)."""
    logger.warning(f"Validation error: {exc}")
    return _error_response(
        400,
        "ValidationError",
        str(exc),
        {"field": exc.field} if exc.field else None,
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle missing resources (404)."""
    logger.warning(f"{exc.resource_type} not found: {exc.resource_id}")
    return _error_response(
        404,
        type(exc).__name__,
        str(exc),
        {"resource_type": exc.resource_type, "resource_id": exc.resource_id},
    )


@app.exception_handler(PeriodOverlapError)
async def period_overlap_handler(request: Request, exc: PeriodOverlapError) -> JSONResponse:
    """Handle uploads overlapping an already processed period (409)."""
    logger.warning(f"Period overlap: {exc}")
    return _error_response(
        409,
        "PeriodOverlapError",
        str(exc),
        {
            "existing_period": {
                "start": exc.existing_start.isoformat(),
                "end": exc.existing_end.isoformat(),
            },
        },
    )


@app.exception_handler(PeriodStateConflictError)
async def period_state_conflict_handler(request: Request, exc: PeriodStateConflictError) -> JSONResponse:
    """Handle ETL triggers on periods that cannot start (409)."""
    logger.warning(f"ETL trigger refused for period {exc.period_id} ({exc.status}): {exc}")
    return _error_response(
        409,
        "PeriodStateConflictError",
        str(exc),
        {"period_id": exc.period_id, "status": exc.status},
    )


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    """Handle other state conflicts (409)."""
    logger.warning(f"Conflict: {exc}")
    return _error_response(409, type(exc).__name__, str(exc))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Handle object storage failures (502)."""
    logger.error(f"Storage error during {exc.operation} of {exc.key}: {exc.reason}")
    return _error_response(
        502,
        "StorageError",
        str(exc),
        {"operation": exc.operation},
    )


@app.exception_handler(EtlTriggerError)
async def etl_trigger_error_handler(request: Request, exc: EtlTriggerError) -> JSONResponse:
    """Handle ETL orchestrator failures (502)."""
    logger.error(f"ETL trigger failed for batch {exc.batch_id}: {exc.reason}")
    return _error_response(
        502,
        "EtlTriggerError",
        str(exc),
        {"batch_id": exc.batch_id},
    )


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError) -> JSONResponse:
    """Handle access to another company's resources (403)."""
    logger.warning(f"Permission denied: {exc.resource_type} {exc.resource_id}")
    return _error_response(
        403,
        "PermissionDeniedError",
        str(exc),
        {"resource_type": exc.resource_type, "resource_id": exc.resource_id},
    )


@app.exception_handler(TokenExpiredError)
async def token_expired_handler(request: Request, exc: TokenExpiredError) -> JSONResponse:
    """Handle token expired errors (401)."""
    return _error_response(
        401,
        "TokenExpiredError",
        str(exc),
        {"token_type": exc.token_type},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """Handle generic authentication errors (401)."""
    logger.warning(f"Authentication error: {exc}")
    return _error_response(
        401,
        "AuthenticationError",
        str(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle database failures (500) without leaking the statement."""
    logger.error(f"Database error: {exc}")
    return _error_response(500, "DatabaseError", "A database error occurred")


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle generic service errors (500)."""
    logger.error(f"Service error: {exc}")
    return _error_response(500, "ServiceError", str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Convert {"detail": "..."} responses to ErrorDetail.

    Registered on the Starlette class so routing errors (404, 405) are
    covered as well as HTTPExceptions raised by dependencies.
    """
    error_types = {
        400: "BadRequestError",
        401: "UnauthorizedError",
        403: "ForbiddenError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        409: "ConflictError",
        413: "PayloadTooLargeError",
        422: "ValidationError",
        429: "RateLimitError",
        500: "InternalServerError",
        503: "ServiceUnavailableError",
    }
    return _error_response(
        exc.status_code,
        error_types.get(exc.status_code, "HTTPError"),
        str(exc.detail) if exc.detail else "An error occurred",
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert the default 422 validation error to ValidationErrorDetail."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(
            error="ValidationError",
            message="Request validation failed",
            details=errors,
        ).model_dump(),
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(comptable_router)  # /files/comptable/*
app.include_router(download_router)  # /files/download/*
app.include_router(navigation_router)  # /retour


# =============================================================================
# GLOBAL ENDPOINTS
# =============================================================================

@app.get("/", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def root(request: Request):
    """API root - returns basic application info."""
    return {
        "message": f"Welcome to {settings.app_name}!",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Health check with dependency status.

    Returns HTTP 503 when the database is unreachable. Object storage and
    the ETL orchestrator are reported from configuration only.
    """
    checks = {}
    status_code = 200

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy", "critical": True}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {"status": "unhealthy", "critical": True, "error": str(e)}
        status_code = 503

    checks["storage"] = {
        "status": "configured" if settings.aws_s3_bucket_name else "not_configured",
        "critical": False,
        "bucket": settings.aws_s3_bucket_name,
    }
    checks["etl"] = {
        "status": "configured" if settings.is_airflow_configured else "not_configured",
        "critical": False,
    }

    response_data = {
        "status": "healthy" if status_code == 200 else "unhealthy",
        "checks": checks,
    }

    if status_code != 200:
        return JSONResponse(status_code=status_code, content=response_data)

    return response_data


@app.get("/health/live", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Liveness check: succeeds whenever the process is running."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """Readiness check: 503 while the database is unavailable."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except SQLAlchemyError as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "error": "Database unavailable"},
        )
