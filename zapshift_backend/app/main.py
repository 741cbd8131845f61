"""
FastAPI Application Entry Point.

This is the main application file for the ZapShift Parcel Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from zapshift_backend.app.core.config import settings
from zapshift_backend.app.api.v1.router import router as api_v1_router
from zapshift_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from zapshift_backend.app.core.redis_client import ping_redis, close_redis
from zapshift_backend.app.db.session import engine, Base
from zapshift_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from zapshift_backend.app.models.user import User
from zapshift_backend.app.models.audit_log import AuditLog
from zapshift_backend.app.models.parcel import Parcel
from zapshift_backend.app.models.rider import Rider
from zapshift_backend.app.models.payment import Payment
from zapshift_backend.app.models.tracking_event import TrackingEvent


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging.
    2. Creates database tables on startup.
    3. Closes Redis and the engine pool on shutdown.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_redis()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Parcel lifecycle and payment reconciliation engine",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "ZapShift is shifting",
        "docs": "/docs",
        "health": "/health",
    }
