"""FastAPI application for TLDR Bot.

Provides a REST API for group configuration, settings and stats.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..database.repository import DatabaseRepository
from .dependencies import init_dependencies
from .routes import stats_router, groups_router, health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("Starting TLDR Bot API...")
    init_dependencies(app)
    logger.info("API dependencies initialized")

    yield

    logger.info("TLDR Bot API shutdown complete")


def create_app(db_repo: Optional[DatabaseRepository] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_repo: Repository to serve from; opened from DB_PATH on startup if None
    """
    app = FastAPI(
        title="TLDR Bot API",
        description="REST API for managing Telegram group summaries",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )
    app.state.db_repo = db_repo

    # Configure CORS
    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers with /api prefix
    app.include_router(health_router, prefix="/api")
    app.include_router(groups_router, prefix="/api")
    app.include_router(stats_router, prefix="/api")

    return app


def main():
    """Run the API server."""
    import uvicorn

    from ..main import setup_logging

    setup_logging()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    log_level = os.getenv("LOG_LEVEL", "INFO").lower()

    logger.info(f"Starting TLDR Bot API on {host}:{port}")

    uvicorn.run(
        "tldr_bot.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
        reload=os.getenv("API_RELOAD", "false").lower() == "true"
    )


if __name__ == "__main__":
    main()
