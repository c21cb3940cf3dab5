"""API routes for TLDR Bot."""

from .stats import router as stats_router
from .groups import router as groups_router
from .health import router as health_router

__all__ = ['stats_router', 'groups_router', 'health_router']
