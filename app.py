"""
Learning-resource management API: role-based catalog, usage tracking and analytics.
"""
import time
from contextlib import asynccontextmanager

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

import config
from core.exceptions import AppError, TransientBackendFailure
from core.logger import logger
from database.connection import Database
from middleware.security import (
    RateLimitMiddleware, SecurityHeadersMiddleware,
    setup_cors, setup_trusted_hosts
)
from middleware.auth_middleware import AuthRequiredMiddleware
from services.category_service import CategoryService
from storage.factory import create_storage
from routers.auth import router as auth_router
from routers.profile import router as profile_router
from routers.roles import router as roles_router
from routers.categories import router as categories_router
from routers.resources import router as resources_router
from routers.files import router as files_router
from routers.analytics import router as analytics_router
from routers.users import router as users_router
from routers.navigation import router as navigation_router


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Initialize database and object storage on startup.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME} {config.APP_VERSION}...")
    logger.info("=" * 60)

    # Initialize database
    try:
        config.db = Database(
            database_url=config.DATABASE_URL,
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW,
            pool_timeout=config.DB_POOL_TIMEOUT_SECONDS,
            connect_timeout=config.DB_CONNECT_TIMEOUT_SECONDS,
        )
        # Create tables if they don't exist
        config.db.create_tables()
        if config.SEED_DEFAULT_CATEGORIES:
            with config.db.get_session() as session:
                CategoryService.seed_default_categories(session)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise

    # Initialize object storage
    try:
        config.storage = create_storage()
        logger.info(f"Object storage initialized ({config.STORAGE_BACKEND}, bucket: {config.STORAGE_BUCKET_NAME})")
    except Exception as e:
        logger.error(f"Failed to initialize object storage: {e}", exc_info=True)
        raise

    logger.info("=" * 60)
    logger.info("Server ready!")
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info("API Docs: /docs")
    logger.info("=" * 60)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down...")
    if config.db:
        config.db.engine.dispose()
        logger.info("Database connections closed")
    config.db = None
    config.storage = None


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Role-based learning resource catalog with usage analytics",
    version=config.APP_VERSION,
    lifespan=lifespan
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Single mapping from the service error taxonomy to HTTP responses."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.code},
        headers=headers,
    )


@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: OperationalError):
    """Lost connections, lock and statement timeouts."""
    logger.error(f"Database failure on {request.method} {request.url.path}: {exc}", exc_info=True)
    return await app_error_handler(request, TransientBackendFailure("Database is unavailable"))


# Setup security middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=config.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=config.RATE_LIMIT_PER_HOUR
)
# Logs protected requests arriving without credentials
app.add_middleware(AuthRequiredMiddleware)
setup_cors(app, config.CORS_ORIGINS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)

# Include routers
app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(roles_router)
app.include_router(categories_router)
app.include_router(resources_router)
app.include_router(files_router)
app.include_router(analytics_router)
app.include_router(users_router)
app.include_router(navigation_router)


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "endpoints": {
            "auth": "/api/auth",
            "resources": "/api/resources",
            "categories": "/api/categories",
            "analytics": "/api/analytics",
            "users": "/api/users",
        },
        "docs": "/docs",
        "storage_backend": config.STORAGE_BACKEND,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring. Public endpoint."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    # Check database
    try:
        if config.db is None:
            health_status["checks"]["database"] = {"status": "error", "error": "not initialized"}
            health_status["status"] = "degraded"
        else:
            with config.db.get_session() as db:
                db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "ok"}
    except OperationalError as e:
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"

    # Check object storage
    if config.storage is None:
        health_status["checks"]["storage"] = {"status": "error", "error": "not initialized"}
        health_status["status"] = "degraded"
    else:
        try:
            config.storage.ping()
            health_status["checks"]["storage"] = {
                "status": "ok",
                "backend": config.STORAGE_BACKEND,
                "bucket": config.STORAGE_BUCKET_NAME,
            }
        except (OSError, BotoCoreError, ClientError) as e:
            health_status["checks"]["storage"] = {"status": "error", "backend": config.STORAGE_BACKEND, "error": str(e)}
            health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content=health_status)
