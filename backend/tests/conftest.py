"""Shared fixtures: a throwaway SQLite store, a mocked Zoom API and an ASGI client."""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

# The app must not pick up a real database from the environment
os.environ.pop("DATABASE_URL", None)

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from adios.config import Settings, get_settings
from adios.database import Base, Meeting, User, get_db
from adios.jobs import JobContext
from adios.zoom import ZoomClient

NOW = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)
FAR_FUTURE = datetime(2099, 1, 1, tzinfo=timezone.utc)

ZOOM_API_URL = "https://api.zoom.test/v2"
ZOOM_OAUTH_URL = "https://zoom.test"
WEBHOOK_SECRET = "webhook-secret"


class FakeZoomAPI:
    """In-memory stand-in for the Zoom REST and OAuth endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.live_pages: list[list[dict[str, Any]]] = [[]]
        self.end_status = 204
        self.end_body: Any = None
        self.token_response: dict[str, Any] = {
            "access_token": "new-access-token",
            "refresh_token": "new-refresh-token",
            "expires_in": 3600,
            "token_type": "bearer",
            "scope": "meeting:write",
        }
        self.me: dict[str, Any] = {"id": "zoom-user-1", "display_name": "Ada Lovelace"}

    def set_live_meetings(self, *meetings: dict[str, Any]) -> None:
        self.live_pages = [list(meetings)]

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path == "/v2/users/me/meetings":
            token = request.url.params.get("next_page_token")
            index = int(token) if token else 0
            body: dict[str, Any] = {
                "meetings": self.live_pages[index],
                "page_size": 300,
                "total_records": sum(len(p) for p in self.live_pages),
                "next_page_token": str(index + 1) if index + 1 < len(self.live_pages) else "",
            }
            return httpx.Response(200, json=body)

        if request.method == "PUT" and path.startswith("/v2/meetings/") and path.endswith("/status"):
            if self.end_body is None:
                return httpx.Response(self.end_status)
            return httpx.Response(self.end_status, json=self.end_body)

        if request.method == "POST" and path == "/oauth/token":
            return httpx.Response(200, json=self.token_response)

        if request.method == "GET" and path == "/v2/users/me":
            return httpx.Response(200, json=self.me)

        return httpx.Response(404, json={"code": 3001, "message": "Not found"})


class RecordingRuntime:
    """Captures fan-out enqueues instead of scheduling them."""

    def __init__(self) -> None:
        self.enqueued: list[tuple[Any, str]] = []

    def enqueue(self, job: Any, origin: str, **kwargs: Any) -> bool:
        self.enqueued.append((job, origin))
        return True


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=None,
        zoom_client_id="client-id",
        zoom_client_secret="client-secret",
        zoom_secret_token=WEBHOOK_SECRET,
        base_url="http://test",
        zoom_api_url=ZOOM_API_URL,
        zoom_oauth_url=ZOOM_OAUTH_URL,
    )


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'adios.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def zoom_api() -> FakeZoomAPI:
    return FakeZoomAPI()


@pytest_asyncio.fixture
async def zoom_client(zoom_api: FakeZoomAPI):
    client = ZoomClient(
        client_id="client-id",
        client_secret="client-secret",
        api_url=ZOOM_API_URL,
        oauth_url=ZOOM_OAUTH_URL,
        transport=httpx.MockTransport(zoom_api.handler),
    )
    yield client
    await client.aclose()


@pytest.fixture
def runtime() -> RecordingRuntime:
    return RecordingRuntime()


@pytest.fixture
def job_context(session_maker, zoom_client, runtime) -> JobContext:
    return JobContext(
        session_maker=session_maker,
        zoom=zoom_client,
        runtime=runtime,
        clock=lambda: NOW,
    )


@pytest.fixture
def user_factory(test_session: AsyncSession):
    async def create(**overrides: Any) -> User:
        values: dict[str, Any] = {
            "zoom_id": f"zoom-{uuid.uuid4().hex[:8]}",
            "display_name": "Test Host",
            "access_token": "access-token",
            "refresh_token": "refresh-token",
            "expires_at": FAR_FUTURE,
            "default_meeting_length_minutes": None,
        }
        values.update(overrides)
        user = User(**values)
        test_session.add(user)
        await test_session.commit()
        await test_session.refresh(user)
        return user

    return create


@pytest.fixture
def meeting_factory(test_session: AsyncSession):
    async def create(user: User, *, start_time: Optional[datetime] = None, **overrides: Any) -> Meeting:
        values: dict[str, Any] = {
            "user_id": user.user_id,
            "zoom_id": "85746065432",
            "zoom_uuid": f"{uuid.uuid4().hex[:22]}==",
            "start_time": start_time or NOW - timedelta(minutes=10),
            "end_time": None,
            "max_meeting_length_minutes": None,
        }
        values.update(overrides)
        meeting = Meeting(**values)
        test_session.add(meeting)
        await test_session.commit()
        await test_session.refresh(meeting)
        return meeting

    return create


@pytest_asyncio.fixture
async def client(session_maker, zoom_client, test_settings):
    """ASGI client with the store, settings and Zoom client swapped for test doubles."""
    from adios.main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.state.zoom = zoom_client

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
