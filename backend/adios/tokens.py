"""Per-user Zoom access tokens, refreshed on demand."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .constants import TOKEN_EXPIRY_BUFFER
from .database import User, update_user_tokens
from .policy import as_utc, utcnow
from .zoom import ZoomClient

logger = logging.getLogger(__name__)


def is_access_token_expired(user: User, now: Optional[datetime] = None) -> bool:
    """A token is stale unless it outlives `now` by the refresh buffer."""
    now = now or utcnow()
    return not (as_utc(now) + TOKEN_EXPIRY_BUFFER < as_utc(user.expires_at))


async def get_valid_access_token(
    session: AsyncSession,
    user: User,
    zoom: ZoomClient,
    now: Optional[datetime] = None,
) -> str:
    """
    Return a usable access token for `user`, refreshing it if needed.

    The refreshed credential is written back to the user row before the token
    is returned. Refresh failures propagate; retrying is the job runtime's job.
    """
    now = now or utcnow()
    if not is_access_token_expired(user, now):
        return user.access_token

    logger.info(f"Access token for user {user.user_id} expired or expiring, refreshing")
    token = await zoom.refresh_access_token(user.refresh_token)

    # Zoom rotates refresh tokens; keep the old one if none came back
    refresh_token = token.refresh_token or user.refresh_token
    expires_at = as_utc(now) + timedelta(seconds=token.expires_in)

    await update_user_tokens(
        session,
        user.user_id,
        access_token=token.access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
    )

    user.access_token = token.access_token
    user.refresh_token = refresh_token
    user.expires_at = expires_at
    return token.access_token
