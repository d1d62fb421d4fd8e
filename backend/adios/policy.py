"""Meeting duration and maximum-length rules.

Pure functions over rows already in hand: nothing here touches the store or
the provider, so every rule can be tested with plain objects.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from .constants import DEFAULT_MAX_MEETING_LENGTH_MINUTES


class MeetingLike(Protocol):
    start_time: datetime
    end_time: Optional[datetime]
    max_meeting_length_minutes: Optional[int]


class UserLike(Protocol):
    default_meeting_length_minutes: Optional[int]


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_ended(meeting: MeetingLike) -> bool:
    return meeting.end_time is not None


def duration(meeting: MeetingLike, now: datetime) -> timedelta:
    """Elapsed time as of `now` for open meetings, total time once ended."""
    end = meeting.end_time if meeting.end_time is not None else now
    return as_utc(end) - as_utc(meeting.start_time)


def max_duration_source(meeting: MeetingLike, user: UserLike) -> str:
    if meeting.max_meeting_length_minutes is not None:
        return "meeting"
    if user.default_meeting_length_minutes is not None:
        return "user"
    return "default"


def max_duration_minutes(meeting: MeetingLike, user: UserLike) -> int:
    # Meeting override > user default > system default
    if meeting.max_meeting_length_minutes is not None:
        return meeting.max_meeting_length_minutes
    if user.default_meeting_length_minutes is not None:
        return user.default_meeting_length_minutes
    return DEFAULT_MAX_MEETING_LENGTH_MINUTES


def max_duration(meeting: MeetingLike, user: UserLike) -> timedelta:
    return timedelta(minutes=max_duration_minutes(meeting, user))


def minutes_remaining(meeting: MeetingLike, user: UserLike, now: datetime) -> int:
    """Whole minutes left before the limit, floored; negative once exceeded."""
    remaining = max_duration(meeting, user) - duration(meeting, now)
    return int(remaining.total_seconds() // 60)


def is_over_limit(meeting: MeetingLike, user: UserLike, now: datetime) -> bool:
    return duration(meeting, now) > max_duration(meeting, user)
