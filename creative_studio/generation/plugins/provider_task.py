from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from creative_studio.config import settings
from creative_studio.generation.errors import ProviderError
from creative_studio.generation.plugins.base import GenerationPlugin, RequestT
from creative_studio.generation.types import Immediate, JobHandle, JobStatus, Outcome, Pending
from creative_studio.schemas.generation_service import ProviderTaskOut
from creative_studio.services.generation_service_client import (
    GenerationServiceClient,
    GenerationServiceConfigError,
    GenerationServiceRequestError,
)

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    """Connection failures, 429 and 5xx replies; other 4xx replies are final."""
    if isinstance(exc, GenerationServiceRequestError):
        if exc.status_code is None:
            return isinstance(exc.__cause__, httpx.RequestError)
        return exc.status_code == 429 or exc.status_code >= 500
    return isinstance(exc, httpx.RequestError)


class ProviderTaskPlugin(GenerationPlugin[RequestT]):
    """
    Base for plugins backed by the hosted generation task API.

    The client is resolved at submit time so a missing provider configuration
    surfaces as an error on the run instead of at startup. Task creation is
    retried with exponential backoff on transient failures only; status checks
    are not retried here because the poller already spends an attempt on each.
    """

    supports_polling = True

    def __init__(
        self,
        client: Optional[GenerationServiceClient] = None,
        *,
        submit_max_attempts: Optional[int] = None,
        submit_backoff_seconds: Optional[float] = None,
    ) -> None:
        self._client = client
        self.submit_max_attempts = (
            settings.GENERATION_SUBMIT_MAX_ATTEMPTS if submit_max_attempts is None else submit_max_attempts
        )
        self.submit_backoff_seconds = (
            settings.GENERATION_SUBMIT_BACKOFF_SECONDS if submit_backoff_seconds is None else submit_backoff_seconds
        )

    def _get_client(self) -> GenerationServiceClient:
        if self._client is None:
            try:
                self._client = GenerationServiceClient()
            except GenerationServiceConfigError as exc:
                raise ProviderError(str(exc), plugin_id=self.plugin_id) from exc
        return self._client

    @abstractmethod
    async def _create_task(self, client: GenerationServiceClient, request: RequestT) -> ProviderTaskOut:
        raise NotImplementedError

    @abstractmethod
    def _build_result(self, task: ProviderTaskOut) -> Any:
        raise NotImplementedError

    async def _create_task_with_retry(self, client: GenerationServiceClient, request: RequestT) -> ProviderTaskOut:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.submit_max_attempts)),
            wait=wait_exponential(multiplier=self.submit_backoff_seconds, max=self.submit_backoff_seconds * 8),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        task: Optional[ProviderTaskOut] = None
        async for attempt in retrying:
            with attempt:
                task = await self._create_task(client, request)
        return task

    async def submit(self, request: RequestT) -> Outcome:
        client = self._get_client()
        try:
            task = await self._create_task_with_retry(client, request)
        except (GenerationServiceRequestError, httpx.HTTPError) as exc:
            raise ProviderError(str(exc), plugin_id=self.plugin_id) from exc

        logger.info(
            "Provider task created",
            extra={"plugin_id": self.plugin_id, "task_id": task.id, "status": task.status},
        )
        status = self.to_job_status(task)
        if status.state == "succeeded":
            return Immediate(status.result)
        if status.state == "failed":
            raise ProviderError(status.error_detail or "Provider task failed", plugin_id=self.plugin_id)
        return Pending(JobHandle(job_id=task.id, plugin_id=self.plugin_id))

    async def poll_status(self, handle: JobHandle) -> JobStatus:
        client = self._get_client()
        try:
            task = await client.get_task(task_id=handle.job_id)
        except (GenerationServiceRequestError, httpx.HTTPError) as exc:
            raise ProviderError(str(exc), plugin_id=self.plugin_id) from exc
        return self.to_job_status(task)

    async def cancel(self, handle: JobHandle) -> None:
        client = self._get_client()
        await client.cancel_task(task_id=handle.job_id)
        logger.info(
            "Provider task cancellation requested",
            extra={"plugin_id": self.plugin_id, "task_id": handle.job_id},
        )

    def to_job_status(self, task: ProviderTaskOut) -> JobStatus:
        if task.status == "succeeded":
            if not task.primary_url:
                return JobStatus.failed(f"Provider task {task.id} completed without an output URL")
            return JobStatus.succeeded(self._build_result(task))
        if task.status == "failed":
            return JobStatus.failed(task.error_detail or f"Provider task {task.id} failed")
        if task.status == "cancelled":
            return JobStatus.failed(task.error_detail or f"Provider task {task.id} was cancelled by the provider")
        return JobStatus.processing(progress=task.progress)
