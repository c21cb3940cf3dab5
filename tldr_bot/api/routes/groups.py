"""Groups API routes for TLDR Bot."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from ..auth import verify_api_key
from ..dependencies import get_db_repo
from ...database.repository import DatabaseRepository
from ...pipeline.settings_actions import (
    ExcludeUser,
    IncludeUser,
    SetCustomPrompt,
    SetExcludeBots,
    SetExcludeCommands,
    SetSchedule,
    SetStyle,
    SettingsState,
    apply_action,
)

router = APIRouter(prefix="/groups", tags=["groups"])


class SettingsResponse(BaseModel):
    summary_style: str
    custom_prompt: Optional[str]
    exclude_bot_messages: bool
    exclude_commands: bool
    excluded_user_ids: List[int]
    schedule_enabled: bool
    schedule_frequency: str
    schedule_time: str
    last_scheduled_run: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupResponse(BaseModel):
    chat_id: int
    status: str
    enabled: bool
    setup_by_user_id: Optional[int]
    cached_messages: int = 0
    created_at: datetime
    updated_at: datetime
    settings: Optional[SettingsResponse] = None


class GroupListResponse(BaseModel):
    groups: List[GroupResponse]
    total: int


class SettingsUpdate(BaseModel):
    summary_style: Optional[str] = None
    custom_prompt: Optional[str] = None
    clear_custom_prompt: bool = False
    exclude_bot_messages: Optional[bool] = None
    exclude_commands: Optional[bool] = None
    exclude_user_ids: List[int] = []
    include_user_ids: List[int] = []
    schedule_enabled: Optional[bool] = None
    schedule_frequency: Optional[str] = None
    schedule_time: Optional[str] = None


class EnabledUpdate(BaseModel):
    enabled: bool


class SummaryResponse(BaseModel):
    id: int
    text: str
    message_count: int
    period_start: datetime
    period_end: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class SummaryListResponse(BaseModel):
    summaries: List[SummaryResponse]
    total: int


def _group_status(group) -> str:
    if group.is_pending:
        return "pending"
    return "active" if group.enabled else "disabled"


def _group_response(group, cached_messages: int, settings=None) -> GroupResponse:
    return GroupResponse(
        chat_id=group.chat_id,
        status=_group_status(group),
        enabled=group.enabled,
        setup_by_user_id=group.setup_by_user_id,
        cached_messages=cached_messages,
        created_at=group.created_at,
        updated_at=group.updated_at,
        settings=SettingsResponse.model_validate(settings) if settings is not None else None,
    )


def _get_group_or_404(db_repo: DatabaseRepository, chat_id: int):
    group = db_repo.get_group_config(chat_id)
    if not group:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Group {chat_id} not found"
        )
    return group


def _actions_from_update(update: SettingsUpdate, state: SettingsState) -> list:
    actions = []
    if update.summary_style is not None:
        actions.append(SetStyle(update.summary_style))
    if update.clear_custom_prompt:
        actions.append(SetCustomPrompt(None))
    elif update.custom_prompt is not None:
        actions.append(SetCustomPrompt(update.custom_prompt))
    if update.exclude_bot_messages is not None:
        actions.append(SetExcludeBots(update.exclude_bot_messages))
    if update.exclude_commands is not None:
        actions.append(SetExcludeCommands(update.exclude_commands))
    actions.extend(ExcludeUser(uid) for uid in update.exclude_user_ids)
    actions.extend(IncludeUser(uid) for uid in update.include_user_ids)
    if (update.schedule_enabled is not None
            or update.schedule_frequency is not None
            or update.schedule_time is not None):
        enabled = state.schedule_enabled if update.schedule_enabled is None else update.schedule_enabled
        actions.append(SetSchedule(enabled, frequency=update.schedule_frequency, time=update.schedule_time))
    return actions


@router.get("", response_model=GroupListResponse)
async def list_groups(
    api_key: str = Depends(verify_api_key),
    db_repo: DatabaseRepository = Depends(get_db_repo)
) -> GroupListResponse:
    """List all configured groups."""
    groups = db_repo.get_all_group_configs()
    message_counts = db_repo.get_message_count_by_chat()

    return GroupListResponse(
        groups=[_group_response(group, message_counts.get(group.chat_id, 0)) for group in groups],
        total=len(groups)
    )


@router.get("/{chat_id}", response_model=GroupResponse)
async def get_group(
    chat_id: int,
    api_key: str = Depends(verify_api_key),
    db_repo: DatabaseRepository = Depends(get_db_repo)
) -> GroupResponse:
    """Get a group with its settings."""
    group = _get_group_or_404(db_repo, chat_id)
    message_counts = db_repo.get_message_count_by_chat()
    settings = db_repo.get_group_settings(chat_id)
    return _group_response(group, message_counts.get(chat_id, 0), settings)


@router.patch("/{chat_id}/settings", response_model=SettingsResponse)
async def update_settings(
    chat_id: int,
    update: SettingsUpdate,
    api_key: str = Depends(verify_api_key),
    db_repo: DatabaseRepository = Depends(get_db_repo)
) -> SettingsResponse:
    """Change a group's summary settings."""
    _get_group_or_404(db_repo, chat_id)

    state = SettingsState.from_model(db_repo.get_group_settings(chat_id))
    try:
        for action in _actions_from_update(update, state):
            state = apply_action(state, action)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    settings = db_repo.update_group_settings(chat_id, **state.to_columns())
    return SettingsResponse.model_validate(settings)


@router.post("/{chat_id}/enabled", response_model=GroupResponse)
async def set_enabled(
    chat_id: int,
    update: EnabledUpdate,
    api_key: str = Depends(verify_api_key),
    db_repo: DatabaseRepository = Depends(get_db_repo)
) -> GroupResponse:
    """Enable or disable summaries for a group."""
    group = db_repo.set_group_enabled(chat_id, update.enabled)
    if not group:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Group {chat_id} not found"
        )
    message_counts = db_repo.get_message_count_by_chat()
    return _group_response(group, message_counts.get(chat_id, 0))


@router.get("/{chat_id}/summaries", response_model=SummaryListResponse)
async def list_summaries(
    chat_id: int,
    limit: int = 20,
    api_key: str = Depends(verify_api_key),
    db_repo: DatabaseRepository = Depends(get_db_repo)
) -> SummaryListResponse:
    """List archival summaries for a group, newest first."""
    _get_group_or_404(db_repo, chat_id)
    summaries = db_repo.get_summaries(chat_id, limit=limit)

    return SummaryListResponse(
        summaries=[SummaryResponse.model_validate(summary) for summary in summaries],
        total=len(summaries)
    )
