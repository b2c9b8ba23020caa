"""
CodeTrack FastAPI application entry point.

Lifecycle: scan repository -> review diff -> reconcile into tasks
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from codetrack import __version__
from codetrack.config import get_settings
from codetrack.db.session import check_db_connection, engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("CodeTrack starting")
    try:
        try:
            check_db_connection()
            logger.info("Database connection verified")
        except Exception as e:
            logger.critical("Database unreachable: %s", e)
            raise

        settings = get_settings()
        if not settings.secret_key:
            logger.warning("SECRET_KEY is not set; issued tokens are not secure")
        logger.info("Tracker command: %s", " ".join(settings.tracker_path))

        yield
    finally:
        logger.info("CodeTrack shutting down")
        engine.dispose()
        logger.info("Database connection pool closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    from codetrack.api.auth import router as auth_router
    from codetrack.api.projects import router as projects_router
    from codetrack.api.tasks import router as tasks_router

    app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
    app.include_router(projects_router, prefix="/api/projects", tags=["projects"])
    app.include_router(tasks_router, prefix="/api/tasks", tags=["tasks"])

    @app.get("/health")
    def health():
        """Health check endpoint. Confirms DB connectivity."""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "version": __version__,
                    "database": "disconnected",
                },
            )
        return {
            "status": "ok",
            "version": __version__,
            "database": "connected",
        }

    return app


app = create_app()
