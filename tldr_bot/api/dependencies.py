"""Dependency injection for TLDR Bot API."""

import logging
import os

from fastapi import FastAPI, Request

from ..database.repository import DatabaseRepository

logger = logging.getLogger(__name__)


def init_dependencies(app: FastAPI) -> DatabaseRepository:
    """Attach a DatabaseRepository to the app unless one was injected.

    Returns:
        The repository the app will serve from
    """
    if getattr(app.state, 'db_repo', None) is None:
        db_path = os.getenv("DB_PATH", "/data/tldr_bot.db")
        logger.info(f"Opening database at {db_path}")
        app.state.db_repo = DatabaseRepository(db_path)
    return app.state.db_repo


def get_db_repo(request: Request) -> DatabaseRepository:
    """Dependency for database repository."""
    return init_dependencies(request.app)
