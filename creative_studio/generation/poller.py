from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from creative_studio.config import settings
from creative_studio.generation.errors import PollTimeoutError, ProviderError
from creative_studio.generation.types import JobHandle, JobStatus

logger = logging.getLogger(__name__)


Sleep = Callable[[float], Awaitable[None]]
StatusCheck = Callable[[JobHandle], Awaitable[JobStatus]]
ProgressCallback = Callable[[float], None]


class JobPoller:
    """
    Drives an external job to a terminal status with a bounded number of checks.

    Each attempt sleeps first and then checks, so a job is never polled in the same
    tick it was submitted. A check that raises consumes one attempt; transient
    provider errors must not abort a long-running render.
    """

    def __init__(
        self,
        *,
        poll_interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        interval = settings.GENERATION_POLL_INTERVAL_SECONDS if poll_interval_seconds is None else poll_interval_seconds
        attempts = settings.GENERATION_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        if interval < 0:
            raise ValueError("poll_interval_seconds must not be negative")
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.poll_interval_seconds = float(interval)
        self.max_attempts = int(attempts)
        self._sleep = sleep or asyncio.sleep

    async def poll(
        self,
        check: StatusCheck,
        handle: JobHandle,
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> JobStatus:
        error_attempts = 0
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.poll_interval_seconds)
            try:
                status = await check(handle)
            except Exception as exc:  # noqa: BLE001
                error_attempts += 1
                last_error = exc
                logger.warning(
                    "Job status check failed",
                    extra={
                        "job_id": handle.job_id,
                        "plugin_id": handle.plugin_id,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "error": str(exc),
                    },
                )
                continue

            if status.is_terminal:
                logger.info(
                    "Job reached terminal status",
                    extra={
                        "job_id": handle.job_id,
                        "plugin_id": handle.plugin_id,
                        "state": status.state,
                        "attempt": attempt,
                    },
                )
                return status

            logger.debug(
                "Job still processing",
                extra={
                    "job_id": handle.job_id,
                    "attempt": attempt,
                    "max_attempts": self.max_attempts,
                    "progress": status.progress,
                },
            )
            if on_progress is not None and status.progress is not None:
                on_progress(status.progress)

        if error_attempts == self.max_attempts and last_error is not None:
            raise ProviderError(
                f"Status checks failed on all {self.max_attempts} attempts for job {handle.job_id}: {last_error}",
                plugin_id=handle.plugin_id,
            ) from last_error

        raise PollTimeoutError(
            job_id=handle.job_id,
            attempts=self.max_attempts,
            interval_seconds=self.poll_interval_seconds,
        )
