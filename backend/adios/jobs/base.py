"""Base classes for background jobs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable, ClassVar, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..policy import utcnow
from ..zoom import ZoomClient

if TYPE_CHECKING:
    from .runtime import JobRuntime


@dataclass
class JobContext:
    """Everything a job needs to run: store, provider client, runtime, clock."""

    session_maker: async_sessionmaker[AsyncSession]
    zoom: ZoomClient
    runtime: "JobRuntime"
    clock: Callable[[], datetime] = field(default=utcnow)

    def now(self) -> datetime:
        return self.clock()


class Job(ABC):
    """A named unit of work.

    Jobs are deduplicated by `job_id`: the name plus the entity key, so at
    most one pending job exists per entity.
    """

    NAME: ClassVar[str]

    @property
    def key(self) -> Optional[str]:
        return None

    @property
    def job_id(self) -> str:
        if self.key is None:
            return self.NAME
        return f"{self.NAME}:{self.key}"

    @abstractmethod
    async def run(self, ctx: JobContext) -> None:
        """Run the job once. Any exception fails the job."""


class JobRegistry:
    """Registry to map job names to job classes."""

    _jobs: dict[str, type[Job]] = {}

    @classmethod
    def register(cls, job_cls: type[Job]) -> type[Job]:
        cls._jobs[job_cls.NAME] = job_cls
        return job_cls

    @classmethod
    def get(cls, name: str) -> type[Job]:
        """Get job class by name.

        Raises:
            ValueError: If name is not registered
        """
        if name not in cls._jobs:
            available = ", ".join(cls._jobs.keys()) or "none"
            raise ValueError(f"Unknown job: {name}. Available: {available}")
        return cls._jobs[name]

    @classmethod
    def list_names(cls) -> list[str]:
        return list(cls._jobs.keys())
