"""Zoom OAuth callback: exchange the authorization code and record the user."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..database import get_db, upsert_user
from ..policy import utcnow
from ..zoom import ZoomClient, ZoomError, get_zoom_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


@router.get("/zoom/authorize")
async def zoom_authorize_url(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """URL the user should visit to grant this app access to their Zoom account."""
    return {
        "url": (
            f"{settings.zoom_oauth_url}/oauth/authorize?response_type=code"
            f"&client_id={settings.zoom_client_id}&redirect_uri={settings.zoom_redirect_url}"
        )
    }


@router.get("/zoom")
async def zoom_oauth(
    code: str,
    settings: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
    zoom: ZoomClient = Depends(get_zoom_client),
) -> dict[str, Any]:
    """
    OAuth redirect target.

    Creates the user on first login and refreshes their credentials on every
    later one.
    """
    try:
        token = await zoom.exchange_code(code, settings.zoom_redirect_url)
        zoom_user = await zoom.get_current_user(token.access_token)
    except ZoomError as e:
        logger.error(f"Zoom OAuth exchange failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to get access token")

    if not token.refresh_token:
        raise HTTPException(status_code=502, detail="Zoom did not return a refresh token")

    user = await upsert_user(
        db,
        zoom_id=zoom_user.id,
        display_name=zoom_user.display_name,
        access_token=token.access_token,
        refresh_token=token.refresh_token,
        expires_at=utcnow() + timedelta(seconds=token.expires_in),
    )
    logger.info(f"User logged in: {user.user_id}")

    return {"user_id": str(user.user_id), "display_name": user.display_name}
