"""Health check endpoint for TLDR Bot API."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from ..dependencies import get_db_repo
from ...database.repository import DatabaseRepository
from ...utils.timezone import utcnow

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    database: str
    encrypted: bool
    timestamp: datetime
    message: Optional[str] = None


@router.get("", response_model=HealthResponse)
async def health_check(
    db_repo: DatabaseRepository = Depends(get_db_repo)
) -> HealthResponse:
    """Check database connectivity."""
    db_status = "ok"
    message = None
    try:
        db_repo.get_all_group_configs()
    except Exception as e:
        db_status = "error"
        message = str(e)

    return HealthResponse(
        status="healthy" if db_status == "ok" else "degraded",
        database=db_status,
        encrypted=bool(getattr(db_repo, "_use_sqlcipher", False)),
        timestamp=utcnow(),
        message=message,
    )
