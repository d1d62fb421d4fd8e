"""Per-user settings: the default maximum meeting length."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..constants import DEFAULT_MAX_MEETING_LENGTH_MINUTES
from ..database import User, UserNotFoundError, get_db, get_user, set_user_default_length

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users/{user_id}/settings", tags=["settings"])


class SettingsResponse(BaseModel):
    user_id: uuid.UUID
    display_name: str
    default_meeting_length_minutes: Optional[int] = None
    effective_default_minutes: int


class UpdateSettingsRequest(BaseModel):
    default_meeting_length_minutes: Optional[int] = Field(default=None, gt=0)


def _settings_response(user: User) -> SettingsResponse:
    return SettingsResponse(
        user_id=user.user_id,
        display_name=user.display_name,
        default_meeting_length_minutes=user.default_meeting_length_minutes,
        effective_default_minutes=(
            user.default_meeting_length_minutes
            if user.default_meeting_length_minutes is not None
            else DEFAULT_MAX_MEETING_LENGTH_MINUTES
        ),
    )


@router.get("")
async def get_settings_for_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> SettingsResponse:
    user = await get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _settings_response(user)


@router.post("")
async def update_settings(
    user_id: uuid.UUID,
    request: UpdateSettingsRequest,
    db: AsyncSession = Depends(get_db),
) -> SettingsResponse:
    """Set or clear the user's default maximum meeting length."""
    try:
        user = await set_user_default_length(db, user_id, request.default_meeting_length_minutes)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(
        f"User {user_id} default meeting length set to "
        f"{request.default_meeting_length_minutes} minute(s)"
    )
    return _settings_response(user)
