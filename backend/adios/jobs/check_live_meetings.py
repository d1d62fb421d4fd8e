"""Discovery sweep: record every meeting Zoom reports as live."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from ..database import UserNotFoundError, get_user, insert_meeting_if_absent, list_users
from ..tokens import get_valid_access_token
from .base import Job, JobContext, JobRegistry

logger = logging.getLogger(__name__)


@JobRegistry.register
@dataclass(frozen=True)
class CheckLiveUserMeetings(Job):
    NAME = "CheckLiveUserMeetings"

    user_id: uuid.UUID

    @property
    def key(self) -> Optional[str]:
        return str(self.user_id)

    async def run(self, ctx: JobContext) -> None:
        async with ctx.session_maker() as session:
            user = await get_user(session, self.user_id)
            if user is None:
                raise UserNotFoundError(f"User {self.user_id} not found")

            access_token = await get_valid_access_token(session, user, ctx.zoom, ctx.now())
            live_meetings = await ctx.zoom.list_live_meetings(access_token)

            inserted = 0
            for listed in live_meetings:
                # First sighting is the best start time discovery can offer
                if await insert_meeting_if_absent(
                    session,
                    user_id=user.user_id,
                    zoom_id=str(listed.id),
                    zoom_uuid=listed.uuid,
                    start_time=ctx.now(),
                ):
                    inserted += 1

        logger.info(
            f"User {self.user_id}: {len(live_meetings)} live meeting(s), {inserted} new"
        )


@JobRegistry.register
@dataclass(frozen=True)
class CheckLiveMeetings(Job):
    NAME = "CheckLiveMeetings"

    async def run(self, ctx: JobContext) -> None:
        async with ctx.session_maker() as session:
            users = await list_users(session)

        for user in users:
            ctx.runtime.enqueue(CheckLiveUserMeetings(user.user_id), "CheckLiveMeetings Loop")

        logger.info(f"Fanned out live meeting checks for {len(users)} user(s)")
