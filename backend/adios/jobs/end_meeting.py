"""Termination sweep: end every open meeting that ran past its limit."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from .. import policy
from ..database import MeetingNotFoundError, UserNotFoundError, get_meeting, get_user, list_open_meetings
from ..tokens import get_valid_access_token
from ..zoom import EndMeetingOutcome
from .base import Job, JobContext, JobRegistry

logger = logging.getLogger(__name__)


@JobRegistry.register
@dataclass(frozen=True)
class EndMeeting(Job):
    NAME = "EndMeeting"

    meeting_id: uuid.UUID

    @property
    def key(self) -> Optional[str]:
        return str(self.meeting_id)

    async def run(self, ctx: JobContext) -> None:
        async with ctx.session_maker() as session:
            meeting = await get_meeting(session, self.meeting_id)
            if meeting is None:
                raise MeetingNotFoundError(f"Meeting {self.meeting_id} not found")

            owner = await get_user(session, meeting.user_id)
            if owner is None:
                raise UserNotFoundError(f"User {meeting.user_id} not found")

            if policy.is_ended(meeting):
                logger.debug(f"Meeting {self.meeting_id} already ended")
                return

            now = ctx.now()
            if not policy.is_over_limit(meeting, owner, now):
                logger.debug(
                    f"Meeting {self.meeting_id} has "
                    f"{policy.minutes_remaining(meeting, owner, now)} minute(s) remaining"
                )
                return

            logger.info(
                f"Meeting {self.meeting_id} ran {policy.duration(meeting, now)}, "
                f"limit is {policy.max_duration(meeting, owner)}; ending it"
            )
            access_token = await get_valid_access_token(session, owner, ctx.zoom, now)

        # end_time is only ever set by the meeting.ended webhook
        outcome = await ctx.zoom.end_meeting(meeting.zoom_id, access_token)
        if outcome is EndMeetingOutcome.ALREADY_OVER:
            logger.info(f"Meeting {self.meeting_id} was already over on Zoom")


@JobRegistry.register
@dataclass(frozen=True)
class EndActiveMeetings(Job):
    NAME = "EndActiveMeetings"

    async def run(self, ctx: JobContext) -> None:
        async with ctx.session_maker() as session:
            meetings = await list_open_meetings(session)

        for meeting in meetings:
            ctx.runtime.enqueue(EndMeeting(meeting.meeting_id), "EndActiveMeetings Loop")

        logger.debug(f"Fanned out end checks for {len(meetings)} open meeting(s)")
