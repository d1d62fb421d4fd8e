"""Meetings API: tracked meetings, per-meeting limits, live meetings on Zoom."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from .. import policy
from ..database import (
    Meeting,
    MeetingNotFoundError,
    User,
    get_db,
    get_meeting,
    get_user,
    list_user_meetings,
    set_meeting_override,
)
from ..tokens import get_valid_access_token
from ..zoom import UnknownDurationError, ZoomClient, ZoomError, get_zoom_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users/{user_id}", tags=["meetings"])


class MeetingResponse(BaseModel):
    """Basic meeting info for list views."""

    model_config = ConfigDict(from_attributes=True)

    meeting_id: uuid.UUID
    zoom_id: str
    zoom_uuid: str
    topic: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    max_meeting_length_minutes: Optional[int] = None


class MeetingDetailResponse(MeetingResponse):
    """Meeting with its computed duration and limit."""

    duration_minutes: int
    max_length_minutes: int
    max_length_source: str
    minutes_remaining: Optional[int] = None


class UpdateMeetingRequest(BaseModel):
    max_meeting_length_minutes: Optional[int] = Field(default=None, gt=0)


async def _require_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _require_meeting(db: AsyncSession, meeting_id: uuid.UUID, user_id: uuid.UUID) -> Meeting:
    meeting = await get_meeting(db, meeting_id, user_id)
    if meeting is None:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting


def _detail(meeting: Meeting, user: User, now: datetime) -> MeetingDetailResponse:
    base = MeetingResponse.model_validate(meeting)
    return MeetingDetailResponse(
        **base.model_dump(),
        duration_minutes=int(policy.duration(meeting, now).total_seconds() // 60),
        max_length_minutes=policy.max_duration_minutes(meeting, user),
        max_length_source=policy.max_duration_source(meeting, user),
        minutes_remaining=None if policy.is_ended(meeting) else policy.minutes_remaining(meeting, user, now),
    )


@router.get("/meetings")
async def list_meetings(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """List a user's tracked meetings, split into running and ended."""
    await _require_user(db, user_id)
    meetings = await list_user_meetings(db, user_id)

    current = [MeetingResponse.model_validate(m) for m in meetings if not policy.is_ended(m)]
    ended = [MeetingResponse.model_validate(m) for m in meetings if policy.is_ended(m)]
    return {"current": current, "ended": ended}


@router.get("/meetings/{meeting_id}")
async def get_meeting_detail(
    user_id: uuid.UUID,
    meeting_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> MeetingDetailResponse:
    user = await _require_user(db, user_id)
    meeting = await _require_meeting(db, meeting_id, user_id)
    return _detail(meeting, user, policy.utcnow())


@router.post("/meetings/{meeting_id}")
async def update_meeting(
    user_id: uuid.UUID,
    meeting_id: uuid.UUID,
    request: UpdateMeetingRequest,
    db: AsyncSession = Depends(get_db),
) -> MeetingDetailResponse:
    """Set or clear the maximum length for one meeting."""
    user = await _require_user(db, user_id)
    try:
        meeting = await set_meeting_override(
            db, meeting_id, user_id, request.max_meeting_length_minutes
        )
    except MeetingNotFoundError:
        raise HTTPException(status_code=404, detail="Meeting not found")

    logger.info(
        f"Meeting {meeting_id} max length set to {request.max_meeting_length_minutes} minute(s)"
    )
    return _detail(meeting, user, policy.utcnow())


@router.post("/meetings/{meeting_id}/end")
async def end_meeting_now(
    user_id: uuid.UUID,
    meeting_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    zoom: ZoomClient = Depends(get_zoom_client),
) -> dict[str, str]:
    """End a tracked meeting on Zoom right away, regardless of its limit."""
    user = await _require_user(db, user_id)
    meeting = await _require_meeting(db, meeting_id, user_id)
    if policy.is_ended(meeting):
        return {"status": "already_ended", "meeting_id": str(meeting_id)}

    try:
        access_token = await get_valid_access_token(db, user, zoom)
        outcome = await zoom.end_meeting(meeting.zoom_id, access_token)
    except ZoomError as e:
        logger.error(f"Failed to end meeting {meeting_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to end meeting")

    return {"status": outcome.value, "meeting_id": str(meeting_id)}


@router.get("/live_meetings")
async def live_meetings(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    zoom: ZoomClient = Depends(get_zoom_client),
) -> dict[str, Any]:
    """List the meetings Zoom currently reports as live for this user."""
    user = await _require_user(db, user_id)

    try:
        access_token = await get_valid_access_token(db, user, zoom)
        meetings = await zoom.list_live_meetings(access_token)
    except ZoomError as e:
        logger.error(f"Failed to get live meetings for user {user_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to get meetings")

    now = policy.utcnow()
    results = []
    for listed in meetings:
        try:
            live_duration_seconds: Optional[int] = listed.live_duration(now)
        except UnknownDurationError as e:
            logger.debug(f"Live duration unknown for meeting {listed.id}: {e}")
            live_duration_seconds = None

        results.append(
            {
                "id": listed.id,
                "uuid": listed.uuid,
                "topic": listed.topic,
                "type": listed.type,
                "live_duration_seconds": live_duration_seconds,
            }
        )

    return {"total": len(results), "meetings": results}
