"""FastAPI application entry point.

This module creates and configures the FastAPI application instance.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from newtube import __version__
from newtube.api.v1 import api_router
from newtube.core.container import ApplicationContainer, get_container
from newtube.core.database import check_db_connection, close_db, init_db
from newtube.core.exceptions import MediaNotFoundError, NewTubeError
from newtube.core.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events.

    Handles startup and shutdown events for the FastAPI application.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    container: ApplicationContainer = app.state.container
    config = container.config()
    engine = container.infrastructure.db_engine()
    # Startup
    logger.info("Starting NewTube application", env=config.app_env, media_root=str(config.media_root))
    config.media_root.mkdir(parents=True, exist_ok=True)

    # Initialize database (only in development; use migrations otherwise)
    if config.is_development:
        try:
            if await check_db_connection(engine):
                await init_db(engine)
                logger.info("Database initialized")
            else:
                logger.warning("Database connection not available, skipping initialization")
        except Exception as e:
            logger.warning(
                "Database initialization skipped", error=str(e), hint="Use migrations in production"
            )

    # The cache subscribes to catalog writes when built
    container.services.read_cache()
    await container.services.catalog().sync_generation()

    yield

    # Shutdown
    logger.info("Shutting down NewTube application")
    await container.services.downloads().wait_all()
    await close_db(engine)
    if config.lock_backend == "redis":
        await container.infrastructure.redis_async_client().aclose()
    logger.info("Cleanup complete")


def create_app(container: ApplicationContainer | None = None) -> FastAPI:
    """Build the FastAPI application around a DI container.

    Args:
        container: Container to serve from (the global one by default)

    Returns:
        Configured FastAPI application
    """
    container = container or get_container()
    config = container.config()

    app = FastAPI(
        title=config.app_name,
        description="Self-hosted video archive: acquisition, catalog and streaming",
        version=__version__,
        docs_url="/docs" if config.is_development else None,
        redoc_url="/redoc" if config.is_development else None,
        lifespan=lifespan,
    )
    app.state.container = container

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "PUT", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(MediaNotFoundError)
    async def media_not_found_handler(request: Request, exc: MediaNotFoundError) -> JSONResponse:
        logger.debug("Media not found", path=request.url.path, **exc.context)
        return JSONResponse(status_code=404, content={"error": "Not found"})

    @app.exception_handler(NewTubeError)
    async def newtube_error_handler(request: Request, exc: NewTubeError) -> JSONResponse:
        logger.error("Request failed", path=request.url.path, **exc.to_dict())
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint.

        Returns:
            Health status
        """
        return {
            "status": "healthy",
            "app": config.app_name,
            "env": config.app_env,
        }

    app.include_router(api_router)
    return app


app = create_app()
