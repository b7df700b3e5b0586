"""
Main FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from mindsift.core.config import settings
from mindsift.core.errors import MindSiftError
from mindsift.core.logging import get_logger, setup_logging
from mindsift.db.redis import check_redis_health, close_redis, init_redis
from mindsift.db.session import check_db_health, close_db, init_db
from mindsift.services.processors.embedder import shutdown_embedding_service

VERSION = "0.1.0"

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.
    Handles startup and shutdown tasks.
    """
    # Startup
    logger.info(
        "starting_application",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        version=VERSION,
    )

    await init_db()
    init_redis()

    yield

    # Shutdown
    logger.info("shutting_down_application")

    await shutdown_embedding_service()
    await close_redis()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="YouTube transcript ingestion and chat - Backend API",
    version=VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check() -> JSONResponse:
    """
    Health check endpoint for monitoring.
    Includes database and Redis connectivity checks; Redis being down only
    degrades the ingestion lock, so it does not make the service unhealthy.
    """
    db_healthy = await check_db_health()
    redis_healthy = await check_redis_health()

    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "unhealthy",
            "app_name": settings.APP_NAME,
            "environment": settings.APP_ENV,
            "version": VERSION,
            "database": "connected" if db_healthy else "disconnected",
            "redis": "connected" if redis_healthy else "disconnected",
        }
    )


# Include API routers
from mindsift.api import api_router  # noqa: E402
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


@app.exception_handler(MindSiftError)
async def mindsift_exception_handler(request: Request, exc: MindSiftError) -> JSONResponse:
    """Render domain errors with their own status and code."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "request_failed",
        code=exc.code,
        error=exc.message,
        path=request.url.path,
        method=request.method,
    )
    return error_response(exc.http_status, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(str(error.get("msg", "")) for error in errors) or "Invalid request"
    logger.info("request_validation_failed", path=request.url.path, errors=len(errors))
    return error_response(422, "invalid_input", message)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return error_response(
        500,
        "internal_server_error",
        "An unexpected error occurred. Please try again later.",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mindsift.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
