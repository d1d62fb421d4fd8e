"""Background jobs: live meeting discovery and over-limit termination."""

from ..constants import CHECK_LIVE_MEETINGS_INTERVAL_SECONDS, END_ACTIVE_MEETINGS_INTERVAL_SECONDS
from .base import Job, JobContext, JobRegistry
from .check_live_meetings import CheckLiveMeetings, CheckLiveUserMeetings
from .end_meeting import EndActiveMeetings, EndMeeting
from .runtime import JobRuntime, is_retriable

__all__ = [
    "Job",
    "JobContext",
    "JobRegistry",
    "JobRuntime",
    "is_retriable",
    "CheckLiveMeetings",
    "CheckLiveUserMeetings",
    "EndActiveMeetings",
    "EndMeeting",
    "register_periodic_jobs",
]


def register_periodic_jobs(runtime: JobRuntime) -> None:
    """Register the two sweeps on their fixed intervals.

    Call this at application startup unless cron is disabled.
    """
    runtime.schedule_periodic(CheckLiveMeetings(), CHECK_LIVE_MEETINGS_INTERVAL_SECONDS)
    runtime.schedule_periodic(EndActiveMeetings(), END_ACTIVE_MEETINGS_INTERVAL_SECONDS)
