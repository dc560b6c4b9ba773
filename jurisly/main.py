# jurisly/main.py

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from . import __version__
from .auth.base import BackendMode
from .backend import MEDIA_URL_PREFIX, Backend, build_backend
from .config import Settings, settings
from .database import async_engine, create_tables, get_async_db
from .error_handlers import register_exception_handlers
from .logging_config import get_logger, setup_logging
from .middleware import register_middleware
from .rate_limit import register_rate_limiting

from .auth.router import router as auth_router
from .chats.router import router as chats_router
from .users.router import router as users_router

logger = get_logger(__name__)

VERSION = __version__


def create_app(config: Settings = settings, backend: Optional[Backend] = None) -> FastAPI:
    """
    Build the API. `backend` replaces the one normally wired from `config`
    at startup (tests inject one with mocked hosted services).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ====================================================================
        # STARTUP
        # ====================================================================
        logger.info("=" * 80)
        logger.info("Starting Jurisly API")
        logger.info("=" * 80)

        logger.info(
            "Application configuration",
            extra={
                "extra_data": {
                    "environment": config.ENVIRONMENT,
                    "log_level": config.LOG_LEVEL,
                    "backend_mode": config.resolved_backend_mode,
                    "database": config.DATABASE_URL.split("@")[-1],
                    "webhook_configured": bool(config.N8N_WEBHOOK_URL),
                }
            }
        )

        app.state.backend = backend or build_backend(config)

        if app.state.backend.mode == BackendMode.HOSTED and config.AUTO_CREATE_TABLES:
            await create_tables(async_engine)

        logger.info("Jurisly API is ready to accept requests")

        yield

        # ====================================================================
        # SHUTDOWN
        # ====================================================================
        logger.info("Shutting down Jurisly API")
        await app.state.backend.aclose()

    app = FastAPI(
        title="Jurisly API",
        description="AI legal assistant: accounts, chat history, live message feed and webhook replies",
        version=VERSION,
        lifespan=lifespan,
    )

    register_middleware(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_rate_limiting(app)

    app.include_router(auth_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    app.include_router(chats_router, prefix="/api")

    # Local avatars; hosted avatars are served by the object storage
    media_root = backend.media_root if backend else None
    if media_root is None and config.resolved_backend_mode == BackendMode.LOCAL.value:
        media_root = Path(config.LOCAL_DATA_DIR) / "media"
    if media_root is not None:
        app.mount(MEDIA_URL_PREFIX, StaticFiles(directory=str(media_root), check_dir=False), name="media")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers"""
        return {
            "status": "healthy",
            "environment": config.ENVIRONMENT,
            "backend_mode": config.resolved_backend_mode,
            "version": VERSION,
        }

    @app.get("/health/db")
    async def db_health(db: AsyncSession = Depends(get_async_db)):
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": config.DATABASE_URL.split("@")[-1]}

    @app.get("/")
    async def root():
        return {"message": "Jurisly API", "version": VERSION, "docs": "/docs"}

    return app


# Setup logging BEFORE creating the app
setup_logging()

app = create_app()
