"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order

For local development:
    uvicorn bitdrop.main:app --reload

For production:
    gunicorn bitdrop.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import drops, health
from .config.settings import Settings, get_settings
from .core.errors import DropError
from .infrastructure.snowflake.client import create_connection_pool
from .infrastructure.snowflake.repositories.drops import SnowflakeConfig
from .infrastructure.storage.client import StorageConfig, create_storage_client
from .infrastructure.video.processor import create_frame_extractor

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


def _snowflake_config(settings: Settings) -> SnowflakeConfig:
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the long-lived clients (storage, frame extractor, connection
    pool) once and keeps them on app.state; closes them on shutdown.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "BitDrop API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {
                "snowflake": settings.snowflake_mock_mode,
                "storage": settings.storage_mock_mode,
                "frame_extractor": settings.frame_extractor_mock_mode,
            }
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Logged rather than fatal so /health/ready can report it
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    app.state.storage_client = create_storage_client(
        config=StorageConfig(
            endpoint_url=settings.storage_endpoint,
            service_key=settings.supabase_service_role_key,
            timeout=settings.storage_timeout_seconds,
        ),
        mock_mode=settings.storage_mock_mode,
    )
    app.state.frame_extractor = create_frame_extractor(
        mock_mode=settings.frame_extractor_mock_mode,
        ffmpeg_path=settings.ffmpeg_path,
        timeout=settings.ffmpeg_timeout_seconds,
    )
    app.state.connection_pool = create_connection_pool(
        config=_snowflake_config(settings),
        mock_mode=settings.snowflake_mock_mode,
        pool_size=settings.snowflake_pool_size,
    )

    yield

    logger.info("BitDrop API shutting down")
    await app.state.storage_client.close()
    app.state.connection_pool.close()


def create_app() -> FastAPI:
    """
    Application factory.

    Called once at startup in production, and once per test client in
    tests with different configurations.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Short video drops.

        ## Authentication

        All /api endpoints require a bearer token in the `Authorization`
        header. Tokens issued by this service and by the auth platform are
        both accepted.

        ## Workflow

        1. **Upload**: `POST /api/drops/upload` (multipart: video, caption, group_id)
        2. **List**: `GET /api/drops/user`
        3. **Details**: `GET /api/drops/{id}/details`
        4. **Delete**: `DELETE /api/drops/{id}`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        drops.router,
        prefix="/api/drops",
        tags=["Drops"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "BitDrop API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(DropError)
    async def drop_error_handler(request: Request, exc: DropError):
        """Render classified failures as {"error": category, "detail": cause}."""
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Request failed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "category": exc.category,
                "status_code": exc.status_code,
                "error": exc.detail,
            }
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.category, "detail": exc.detail},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        Prevents stack traces from leaking to clients. We log the full
        error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "bitdrop.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
