from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    case,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .config import get_settings

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().database_url


class UserNotFoundError(LookupError):
    """No local user matches the given id or provider identity."""


class MeetingNotFoundError(LookupError):
    """No meeting row matches the given id or provider instance id."""


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    zoom_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    default_meeting_length_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    meetings: Mapped[list["Meeting"]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"<User {self.user_id} zoom_id={self.zoom_id}>"


class Meeting(Base):
    __tablename__ = "meetings"

    meeting_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=False, index=True
    )
    zoom_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # Instance id: one row per concrete occurrence of a (possibly reused) meeting id
    zoom_uuid: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    topic: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_meeting_length_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user: Mapped[User] = relationship(back_populates="meetings")

    def __repr__(self) -> str:
        return f"<Meeting {self.meeting_id} zoom_uuid={self.zoom_uuid} end_time={self.end_time}>"


engine = None
async_session_maker = None

if DATABASE_URL:
    engine = create_async_engine(DATABASE_URL, echo=False, pool_pre_ping=True)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Initialize database by creating all tables."""
    if not engine:
        logger.warning("Database not configured, skipping initialization")
        return

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncSession:
    """Dependency for FastAPI routes to get database session."""
    if not async_session_maker:
        from fastapi import HTTPException

        raise HTTPException(
            status_code=503,
            detail="Database not configured. Set DATABASE_URL environment variable.",
        )
    async with async_session_maker() as session:
        yield session


def _dialect_insert(session: AsyncSession, model: type[Base]):
    """Return an INSERT that supports ON CONFLICT for the bound dialect."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


# --- Users ---


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    stmt = select(User).where(User.user_id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_zoom_id(session: AsyncSession, zoom_id: str) -> Optional[User]:
    stmt = select(User).where(User.zoom_id == zoom_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_users(session: AsyncSession) -> list[User]:
    result = await session.execute(select(User).order_by(User.created_at))
    return list(result.scalars().all())


async def upsert_user(
    session: AsyncSession,
    *,
    zoom_id: str,
    display_name: str,
    access_token: str,
    refresh_token: str,
    expires_at: datetime,
) -> User:
    """Create the user on first login, refresh name and credentials afterwards."""
    insert_stmt = _dialect_insert(session, User).values(
        user_id=uuid.uuid4(),
        zoom_id=zoom_id,
        display_name=display_name,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
    )
    stmt = insert_stmt.on_conflict_do_update(
        index_elements=[User.zoom_id],
        set_={
            "display_name": insert_stmt.excluded.display_name,
            "access_token": insert_stmt.excluded.access_token,
            "refresh_token": insert_stmt.excluded.refresh_token,
            "expires_at": insert_stmt.excluded.expires_at,
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt)
    await session.commit()

    result = await session.execute(
        select(User).where(User.zoom_id == zoom_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one()
    logger.info(f"Upserted user {user.user_id} (zoom_id: {zoom_id})")
    return user


async def update_user_tokens(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    access_token: str,
    refresh_token: str,
    expires_at: datetime,
) -> None:
    """Persist a refreshed credential bundle in one statement."""
    stmt = (
        update(User)
        .where(User.user_id == user_id)
        .values(access_token=access_token, refresh_token=refresh_token, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    if result.rowcount == 0:
        raise UserNotFoundError(f"User {user_id} not found")


async def set_user_default_length(
    session: AsyncSession, user_id: uuid.UUID, minutes: Optional[int]
) -> User:
    stmt = (
        update(User)
        .where(User.user_id == user_id)
        .values(default_meeting_length_minutes=minutes)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    if result.rowcount == 0:
        raise UserNotFoundError(f"User {user_id} not found")

    result = await session.execute(
        select(User).where(User.user_id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


# --- Meetings ---


async def get_meeting(
    session: AsyncSession,
    meeting_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
) -> Optional[Meeting]:
    """Retrieve a meeting by id, optionally scoped to its host."""
    stmt = select(Meeting).where(Meeting.meeting_id == meeting_id)
    if user_id is not None:
        stmt = stmt.where(Meeting.user_id == user_id)
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def get_meeting_by_zoom_uuid(session: AsyncSession, zoom_uuid: str) -> Optional[Meeting]:
    stmt = select(Meeting).where(Meeting.zoom_uuid == zoom_uuid)
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def list_open_meetings(session: AsyncSession) -> list[Meeting]:
    stmt = select(Meeting).where(Meeting.end_time.is_(None)).order_by(Meeting.start_time)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_user_meetings(session: AsyncSession, user_id: uuid.UUID) -> list[Meeting]:
    stmt = (
        select(Meeting)
        .where(Meeting.user_id == user_id)
        .order_by(Meeting.start_time.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def insert_meeting_if_absent(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    zoom_id: str,
    zoom_uuid: str,
    start_time: datetime,
) -> bool:
    """
    Record a meeting first seen by the discovery sweep.

    An existing row for the same instance id wins and is left untouched.

    Returns:
        True if a new row was inserted
    """
    stmt = (
        _dialect_insert(session, Meeting)
        .values(
            meeting_id=uuid.uuid4(),
            user_id=user_id,
            zoom_id=zoom_id,
            zoom_uuid=zoom_uuid,
            start_time=start_time,
        )
        .on_conflict_do_nothing(index_elements=[Meeting.zoom_uuid])
    )
    result = await session.execute(stmt)
    await session.commit()
    inserted = result.rowcount == 1
    if inserted:
        logger.info(f"Discovered live meeting {zoom_id} (uuid: {zoom_uuid})")
    else:
        logger.debug(f"Meeting uuid {zoom_uuid} already recorded, skipping")
    return inserted


async def create_meeting_from_webhook(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    zoom_id: str,
    zoom_uuid: str,
    start_time: datetime,
    topic: Optional[str],
) -> Meeting:
    """
    Record a meeting announced by the provider's "meeting started" event.

    If discovery already recorded the instance, its start time is corrected
    and the topic filled in; no second row is created.
    """
    insert_stmt = _dialect_insert(session, Meeting).values(
        meeting_id=uuid.uuid4(),
        user_id=user_id,
        zoom_id=zoom_id,
        zoom_uuid=zoom_uuid,
        start_time=start_time,
        topic=topic,
    )
    stmt = insert_stmt.on_conflict_do_update(
        index_elements=[Meeting.zoom_uuid],
        set_={
            "start_time": insert_stmt.excluded.start_time,
            "topic": insert_stmt.excluded.topic,
            "updated_at": func.now(),
        },
    )
    await session.execute(stmt)
    await session.commit()

    meeting = await get_meeting_by_zoom_uuid(session, zoom_uuid)
    if meeting is None:
        raise MeetingNotFoundError(f"Meeting uuid {zoom_uuid} vanished after insert")
    return meeting


async def mark_meeting_ended(
    session: AsyncSession, zoom_uuid: str, end_time: datetime
) -> Meeting:
    """
    Close a meeting by instance id.

    The end time only ever moves forward: an earlier or repeated event leaves
    the stored value in place.

    Raises:
        MeetingNotFoundError: If no row has this instance id
    """
    stmt = (
        update(Meeting)
        .where(Meeting.zoom_uuid == zoom_uuid)
        .values(
            end_time=case(
                (or_(Meeting.end_time.is_(None), Meeting.end_time < end_time), end_time),
                else_=Meeting.end_time,
            )
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    if result.rowcount == 0:
        raise MeetingNotFoundError(f"No meeting with uuid {zoom_uuid}")

    meeting = await get_meeting_by_zoom_uuid(session, zoom_uuid)
    if meeting is None:
        raise MeetingNotFoundError(f"No meeting with uuid {zoom_uuid}")
    return meeting


async def set_meeting_override(
    session: AsyncSession,
    meeting_id: uuid.UUID,
    user_id: uuid.UUID,
    minutes: Optional[int],
) -> Meeting:
    """Set or clear the per-meeting maximum length."""
    stmt = (
        update(Meeting)
        .where(Meeting.meeting_id == meeting_id, Meeting.user_id == user_id)
        .values(max_meeting_length_minutes=minutes)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.commit()
    if result.rowcount == 0:
        raise MeetingNotFoundError(f"Meeting {meeting_id} not found")

    meeting = await get_meeting(session, meeting_id, user_id)
    if meeting is None:
        raise MeetingNotFoundError(f"Meeting {meeting_id} not found")
    return meeting
