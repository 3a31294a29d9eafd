"""
FastAPI Application Entry Point
HTTP adapter over the access-decision engine
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from media_access.api.v1 import router as api_v1_router
from media_access.core.clock import utc_now
from media_access.core.config import settings
from media_access.core.exceptions import AppException
from media_access.core.logging import get_logger, setup_logging
from media_access.db.session import check_connection, close_db, init_db
from media_access.models.common import ErrorDetail, ErrorResponse, HealthResponse

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan management"""
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # Startup
    await init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Layered access decisions for user-owned media",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)


def _error_response(status_code: int, code: str, message: str, details=None, timestamp=None) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details or None, timestamp=timestamp)
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


# Exception Handlers
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application-specific exceptions"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.details}")
    # NotFound and AccessDenied carry the same code and message; keep the
    # details out so the two stay indistinguishable
    details = None if exc.code == "not_found" else exc.details
    return _error_response(exc.status_code, exc.code, exc.message, details, exc.timestamp)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation errors"""
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        "validation_error",
        "Invalid request parameters",
        {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]},
    )


# Include routers
app.include_router(api_v1_router, prefix="/api/v1")


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    database_ok = await check_connection()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        version=settings.APP_VERSION,
        timestamp=utc_now().isoformat(),
        services={"database": "healthy" if database_ok else "unavailable"},
    )
