"""Stats API routes for TLDR Bot."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Dict, Optional
from datetime import datetime

from ..auth import verify_api_key
from ..dependencies import get_db_repo
from ...database.repository import DatabaseRepository

router = APIRouter(prefix="/stats", tags=["stats"])


class StatsResponse(BaseModel):
    total_messages: int
    total_summaries: int
    total_groups: int
    active_groups: int
    messages_by_chat: Dict[str, int]
    oldest_message: Optional[datetime]
    newest_message: Optional[datetime]


@router.get("", response_model=StatsResponse)
async def get_stats(
    api_key: str = Depends(verify_api_key),
    db_repo: DatabaseRepository = Depends(get_db_repo)
) -> StatsResponse:
    """Get cache and archive statistics."""
    stats = db_repo.get_stats()

    return StatsResponse(
        total_messages=stats['total_messages'],
        total_summaries=stats['total_summaries'],
        total_groups=stats['total_groups'],
        active_groups=stats['active_groups'],
        messages_by_chat={str(chat_id): count for chat_id, count in stats['messages_by_chat'].items()},
        oldest_message=stats['oldest_message'],
        newest_message=stats['newest_message'],
    )
