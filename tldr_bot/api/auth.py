"""Operator API authentication for TLDR Bot.

The API changes group settings and exposes per-group stats, so when
API_SECRET is set every route except /api/health needs it in X-API-Key.
"""

import logging
import os
import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

# Returned when API_SECRET is unset (local development)
DEVELOPMENT_KEY = "development"


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """Verify the X-API-Key header against API_SECRET.

    Returns:
        The validated API key, or DEVELOPMENT_KEY when no secret is configured

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    expected_key = os.getenv("API_SECRET")
    if not expected_key:
        return DEVELOPMENT_KEY

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
        )

    if not secrets.compare_digest(api_key.encode(), expected_key.encode()):
        logger.warning("Rejected operator API request with an invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key
