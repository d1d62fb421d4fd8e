"""APScheduler-backed job runtime: deduplicated enqueue, periodic sweeps, retries."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.jobstores.base import ConflictingIdError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.exc import OperationalError

from ..constants import JOB_RETRY_BASE_DELAY_SECONDS
from ..zoom import ZoomTransportError
from .base import Job, JobContext, JobRegistry

logger = logging.getLogger(__name__)

RETRIABLE_ERRORS = (ZoomTransportError, OperationalError, asyncio.TimeoutError)


def is_retriable(error: BaseException) -> bool:
    """Transport-level failures are retried; protocol and domain errors are not."""
    return isinstance(error, RETRIABLE_ERRORS)


class JobRuntime:
    """Runs jobs on an AsyncIOScheduler.

    Each enqueued job is a one-shot scheduler entry whose id is the job's
    `job_id`, so a second enqueue for the same name and key while the first
    is still pending is dropped.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        retry_base_delay: float = JOB_RETRY_BASE_DELAY_SECONDS,
    ) -> None:
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.context: Optional[JobContext] = None
        self.scheduler = AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={
                "coalesce": True,  # Combine missed runs
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )

    def bind(self, context: JobContext) -> None:
        self.context = context

    def enqueue(
        self,
        job: Job,
        origin: str,
        *,
        attempt: int = 1,
        delay_seconds: float = 0,
    ) -> bool:
        """
        Schedule `job` to run once.

        Args:
            job: The job to run
            origin: Human-readable source of the request, for logs only
            attempt: 1-based attempt number
            delay_seconds: Run after this delay instead of immediately

        Returns:
            False if an identical job was already pending
        """
        JobRegistry.get(job.NAME)

        if self.scheduler.get_job(job.job_id) is not None:
            logger.debug(f"Job {job.job_id} already pending, skipping (origin: {origin})")
            return False

        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        try:
            self.scheduler.add_job(
                self.execute,
                trigger="date",
                run_date=run_date,
                id=job.job_id,
                name=job.NAME,
                kwargs={"job": job, "origin": origin, "attempt": attempt},
            )
        except ConflictingIdError:
            logger.debug(f"Job {job.job_id} already pending, skipping (origin: {origin})")
            return False

        logger.debug(f"Enqueued {job.job_id} (origin: {origin}, attempt: {attempt})")
        return True

    async def execute(self, job: Job, origin: str, attempt: int = 1) -> None:
        """Run one attempt of `job`, re-enqueueing it on retriable failure."""
        if self.context is None:
            raise RuntimeError("JobRuntime.bind() must be called before jobs run")

        try:
            await job.run(self.context)
        except Exception as e:
            if is_retriable(e) and attempt < self.max_attempts:
                delay = self.retry_base_delay * 2 ** (attempt - 1)
                logger.warning(
                    f"Job {job.job_id} failed (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay}s: {e}"
                )
                self.enqueue(job, origin, attempt=attempt + 1, delay_seconds=delay)
            else:
                logger.error(
                    f"Job {job.job_id} failed (origin: {origin}, attempt {attempt}): {e}",
                    exc_info=True,
                )
            return

        logger.debug(f"Job {job.job_id} completed (origin: {origin})")

    async def _fire_periodic(self, job: Job) -> None:
        self.enqueue(job, "Cron")

    def schedule_periodic(self, job: Job, seconds: int) -> None:
        self.scheduler.add_job(
            self._fire_periodic,
            "interval",
            seconds=seconds,
            id=f"cron:{job.NAME}",
            name=f"Cron {job.NAME}",
            kwargs={"job": job},
            replace_existing=True,
        )
        logger.info(f"Registered periodic job {job.NAME} every {seconds}s")

    def start(self) -> None:
        self.scheduler.start()
        logger.info("Job runtime started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Job runtime stopped")
