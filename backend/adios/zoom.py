"""Zoom API client: live meeting discovery, ending meetings, OAuth token grants."""

from __future__ import annotations

import enum
import json
import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from fastapi import Request
from pydantic import BaseModel, ValidationError

from .config import Settings
from .constants import LIVE_MEETINGS_PAGE_SIZE, MEETING_TYPE_INSTANT, MEETING_TYPE_PERSONAL_ROOM
from .policy import as_utc, utcnow

logger = logging.getLogger(__name__)

# Zoom error code for "meeting does not exist or has expired"
MEETING_GONE_CODE = 3001


class ZoomError(Exception):
    """Base class for every failure talking to Zoom."""


class ZoomTransportError(ZoomError):
    """Network failure or timeout before a response arrived."""


class ZoomProtocolError(ZoomError):
    """Zoom answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str, code: Optional[int] = None):
        self.status_code = status_code
        self.body = body
        self.code = code
        super().__init__(f"Zoom API error {status_code}: {body or 'empty response body'}")

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ZoomProtocolError":
        body = response.text
        code = None
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("code"), int):
            code = payload["code"]
        return cls(response.status_code, body, code)


class ZoomDecodeError(ZoomError):
    """Zoom answered 2xx but the body was not the expected JSON shape."""


class UnknownDurationError(Exception):
    """The live duration of a listed meeting cannot be derived."""


class UnsupportedMeetingTypeError(UnknownDurationError):
    """Live duration is only defined for instant meetings."""


class MeetingType(str, enum.Enum):
    LIVE = "live"
    SCHEDULED = "scheduled"


class EndMeetingOutcome(str, enum.Enum):
    ENDED = "ended"
    ALREADY_OVER = "already_over"


class ListedMeeting(BaseModel):
    """One entry of `GET /users/me/meetings`."""

    id: int
    uuid: str
    host_id: str
    type: int
    created_at: datetime
    topic: Optional[str] = None
    agenda: Optional[str] = None
    start_time: Optional[datetime] = None
    duration: Optional[int] = None
    timezone: Optional[str] = None

    def live_duration(self, now: Optional[datetime] = None) -> int:
        """
        Seconds this meeting has been running.

        Raises:
            UnknownDurationError: For Personal Meeting Rooms, whose created_at
                is the first time the room was ever used
            UnsupportedMeetingTypeError: For any type other than instant
        """
        if self.type == MEETING_TYPE_PERSONAL_ROOM:
            raise UnknownDurationError(
                "Could not determine the live duration of a Personal Meeting Room meeting: "
                "created_at is the first time the room was ever used"
            )
        if self.type != MEETING_TYPE_INSTANT:
            raise UnsupportedMeetingTypeError(f"Meeting type {self.type} is not supported")

        now = now or utcnow()
        return int((as_utc(now) - as_utc(self.created_at)).total_seconds())


class MeetingList(BaseModel):
    meetings: list[ListedMeeting] = []
    next_page_token: Optional[str] = None
    page_size: Optional[int] = None
    total_records: Optional[int] = None


class MeetingOccurrence(BaseModel):
    occurrence_id: str
    start_time: datetime
    duration: int


class FullMeeting(BaseModel):
    """`GET /meetings/{id}`."""

    id: int
    type: int
    uuid: Optional[str] = None
    topic: Optional[str] = None
    start_time: Optional[datetime] = None
    duration: Optional[int] = None
    occurrences: Optional[list[MeetingOccurrence]] = None


class TokenResponse(BaseModel):
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    api_url: Optional[str] = None


class ZoomUser(BaseModel):
    id: str
    display_name: str = ""
    email: Optional[str] = None


def _decode(response: httpx.Response, model: type[BaseModel]) -> Any:
    try:
        return model.model_validate_json(response.content)
    except ValidationError as e:
        logger.error(f"Unexpected Zoom response for {response.request.url}: {response.text[:500]}")
        raise ZoomDecodeError(f"Could not decode {model.__name__}: {e}") from e


class ZoomClient:
    """Thin async wrapper over the Zoom REST and OAuth endpoints."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        api_url: str = "https://api.zoom.us/v2",
        oauth_url: str = "https://zoom.us",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_url = api_url.rstrip("/")
        self.oauth_url = oauth_url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ZoomClient":
        return cls(
            client_id=settings.zoom_client_id,
            client_secret=settings.zoom_client_secret,
            api_url=settings.zoom_api_url,
            oauth_url=settings.zoom_oauth_url,
            timeout=settings.zoom_http_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        access_token: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        if access_token is not None:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise ZoomTransportError(f"{method} {url} failed: {e!r}") from e

        if response.is_success:
            return response

        error = ZoomProtocolError.from_response(response)
        logger.warning(f"{method} {url} returned {error.status_code}: {error.body[:500]}")
        raise error

    async def list_meetings(self, access_token: str, meeting_type: MeetingType) -> list[ListedMeeting]:
        """List the token owner's meetings, following every result page."""
        meetings: list[ListedMeeting] = []
        params: dict[str, Any] = {"type": meeting_type.value, "page_size": LIVE_MEETINGS_PAGE_SIZE}

        while True:
            response = await self._request(
                "GET", f"{self.api_url}/users/me/meetings", access_token=access_token, params=params
            )
            page: MeetingList = _decode(response, MeetingList)
            meetings.extend(page.meetings)
            if not page.next_page_token:
                break
            params["next_page_token"] = page.next_page_token

        return meetings

    async def list_live_meetings(self, access_token: str) -> list[ListedMeeting]:
        return await self.list_meetings(access_token, MeetingType.LIVE)

    async def get_meeting(self, meeting_id: str | int, access_token: str) -> FullMeeting:
        response = await self._request(
            "GET", f"{self.api_url}/meetings/{meeting_id}", access_token=access_token
        )
        return _decode(response, FullMeeting)

    async def end_meeting(self, meeting_id: str | int, access_token: str) -> EndMeetingOutcome:
        """
        End a live meeting for everyone in it.

        A meeting Zoom no longer knows as running counts as already over, not
        as a failure.
        """
        try:
            await self._request(
                "PUT",
                f"{self.api_url}/meetings/{meeting_id}/status",
                access_token=access_token,
                json={"action": "end"},
            )
        except ZoomProtocolError as e:
            if e.status_code == 404 or e.code == MEETING_GONE_CODE:
                logger.info(f"Meeting {meeting_id} was already over")
                return EndMeetingOutcome.ALREADY_OVER
            raise

        logger.info(f"Ended meeting {meeting_id}")
        return EndMeetingOutcome.ENDED

    async def _token_grant(self, data: dict[str, str]) -> TokenResponse:
        response = await self._request(
            "POST",
            f"{self.oauth_url}/oauth/token",
            data=data,
            auth=(self.client_id, self.client_secret),
        )
        return _decode(response, TokenResponse)

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        return await self._token_grant(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenResponse:
        return await self._token_grant(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
        )

    async def get_current_user(self, access_token: str) -> ZoomUser:
        response = await self._request("GET", f"{self.api_url}/users/me", access_token=access_token)
        return _decode(response, ZoomUser)


def get_zoom_client(request: Request) -> ZoomClient:
    """Dependency for FastAPI routes to get the shared Zoom client."""
    return request.app.state.zoom
