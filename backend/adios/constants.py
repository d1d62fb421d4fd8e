"""Constants shared by the duration policy, token cache and job schedule."""

from __future__ import annotations

from datetime import timedelta
from typing import Final

# Applies when neither the meeting nor its host sets a maximum length
DEFAULT_MAX_MEETING_LENGTH_MINUTES: Final[int] = 40

# Tokens closer than this to expiry are refreshed before use
TOKEN_EXPIRY_BUFFER: Final[timedelta] = timedelta(seconds=60)

# Periodic sweep intervals
CHECK_LIVE_MEETINGS_INTERVAL_SECONDS: Final[int] = 60 * 5
END_ACTIVE_MEETINGS_INTERVAL_SECONDS: Final[int] = 30

# Provider meeting types (Zoom "type" field)
MEETING_TYPE_INSTANT: Final[int] = 1
MEETING_TYPE_PERSONAL_ROOM: Final[int] = 4

LIVE_MEETINGS_PAGE_SIZE: Final[int] = 300

JOB_RETRY_BASE_DELAY_SECONDS: Final[int] = 10
