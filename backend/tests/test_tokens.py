"""Tests for the on-demand access token refresh."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from adios.database import get_user
from adios.policy import as_utc
from adios.tokens import get_valid_access_token, is_access_token_expired
from adios.zoom import ZoomDecodeError

from conftest import NOW


class TestIsAccessTokenExpired:
    @pytest.mark.asyncio
    async def test_token_inside_buffer_counts_as_expired(self, user_factory):
        user = await user_factory(expires_at=NOW + timedelta(seconds=30))
        assert is_access_token_expired(user, NOW)

    @pytest.mark.asyncio
    async def test_token_outside_buffer_is_valid(self, user_factory):
        user = await user_factory(expires_at=NOW + timedelta(minutes=5))
        assert not is_access_token_expired(user, NOW)

    @pytest.mark.asyncio
    async def test_token_exactly_at_buffer_counts_as_expired(self, user_factory):
        user = await user_factory(expires_at=NOW + timedelta(seconds=60))
        assert is_access_token_expired(user, NOW)


class TestGetValidAccessToken:
    @pytest.mark.asyncio
    async def test_valid_token_is_returned_without_refresh(
        self, test_session: AsyncSession, user_factory, zoom_client, zoom_api
    ):
        user = await user_factory(expires_at=NOW + timedelta(minutes=5))

        token = await get_valid_access_token(test_session, user, zoom_client, NOW)

        assert token == "access-token"
        assert zoom_api.requests == []

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed_and_persisted(
        self, test_session: AsyncSession, session_maker, user_factory, zoom_client, zoom_api
    ):
        user = await user_factory(expires_at=NOW + timedelta(seconds=30))

        token = await get_valid_access_token(test_session, user, zoom_client, NOW)

        assert token == "new-access-token"
        grants = zoom_api.calls("POST", "/oauth/token")
        assert len(grants) == 1
        assert b"grant_type=refresh_token" in grants[0].content
        assert b"refresh_token=refresh-token" in grants[0].content

        async with session_maker() as session:
            stored = await get_user(session, user.user_id)
        assert stored.access_token == "new-access-token"
        assert stored.refresh_token == "new-refresh-token"
        assert as_utc(stored.expires_at) == NOW + timedelta(seconds=3600)

    @pytest.mark.asyncio
    async def test_missing_refresh_token_keeps_the_old_one(
        self, test_session: AsyncSession, session_maker, user_factory, zoom_client, zoom_api
    ):
        zoom_api.token_response.pop("refresh_token")
        user = await user_factory(expires_at=NOW - timedelta(hours=1))

        await get_valid_access_token(test_session, user, zoom_client, NOW)

        async with session_maker() as session:
            stored = await get_user(session, user.user_id)
        assert stored.access_token == "new-access-token"
        assert stored.refresh_token == "refresh-token"

    @pytest.mark.asyncio
    async def test_refresh_failure_propagates(
        self, test_session: AsyncSession, user_factory, zoom_client, zoom_api
    ):
        zoom_api.token_response = {"reason": "Invalid Token!", "error": "invalid_request"}
        user = await user_factory(expires_at=NOW - timedelta(hours=1))

        with pytest.raises(ZoomDecodeError):
            await get_valid_access_token(test_session, user, zoom_client, NOW)

        assert user.access_token == "access-token"
