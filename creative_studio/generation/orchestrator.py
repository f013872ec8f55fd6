from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from creative_studio.config import settings
from creative_studio.generation.errors import HistoryEntryNotFoundError, RunCancelledError
from creative_studio.generation.history import HistoryStore
from creative_studio.generation.plugins.base import GenerationPlugin
from creative_studio.generation.plugins.registry import PluginRegistry
from creative_studio.generation.poller import JobPoller
from creative_studio.generation.types import (
    HistoryEntry,
    HistoryTransition,
    Immediate,
    JobHandle,
)
from creative_studio.observability import bind_run_trace, start_langfuse_span

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_entry_id() -> str:
    return uuid4().hex


class GenerationOrchestrator:
    """
    Runs plugins and records every attempt in the history store.

    `run()` appends a pending entry and returns it at once; the plugin is driven to a
    terminal outcome in its own asyncio task. Failures after the entry exists are
    recorded on the entry and never raised to the caller.
    """

    def __init__(
        self,
        *,
        registry: PluginRegistry,
        history: Optional[HistoryStore] = None,
        poller: Optional[JobPoller] = None,
        id_factory: Callable[[], str] = _new_entry_id,
        clock: Callable[[], datetime] = _utcnow,
        cancel_timeout_seconds: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.history = history if history is not None else HistoryStore()
        self.poller = poller or JobPoller()
        self._id_factory = id_factory
        self._clock = clock
        self.cancel_timeout_seconds = (
            settings.GENERATION_CANCEL_TIMEOUT_SECONDS if cancel_timeout_seconds is None else cancel_timeout_seconds
        )
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def run(self, plugin_id: str, request: Any) -> HistoryEntry:
        plugin = self.registry.get(plugin_id)
        entry = self.history.append(
            HistoryEntry(
                id=self._id_factory(),
                plugin_id=plugin.plugin_id,
                request=request,
                timestamp=self._clock(),
            )
        )
        logger.info("Generation run submitted", extra={"entry_id": entry.id, "plugin_id": plugin.plugin_id})

        task = asyncio.create_task(self._drive(plugin, entry), name=f"generation-run-{entry.id}")
        self._tasks[entry.id] = task
        task.add_done_callback(lambda done, entry_id=entry.id: self._on_task_done(entry_id, done))
        return entry

    async def run_and_wait(self, plugin_id: str, request: Any) -> HistoryEntry:
        entry = await self.run(plugin_id, request)
        return await self.wait(entry.id)

    async def wait(self, entry_id: str) -> HistoryEntry:
        task = self._tasks.get(entry_id)
        if task is not None:
            await asyncio.wait({task})
        entry = self.history.get(entry_id)
        if entry is None:
            raise HistoryEntryNotFoundError(entry_id)
        return entry

    async def cancel(self, entry_id: str) -> bool:
        task = self._tasks.get(entry_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.wait({task})
        return True

    def in_flight(self) -> list[str]:
        return [entry_id for entry_id, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        if not tasks:
            return
        logger.info("Cancelling in-flight generation runs", extra={"count": len(tasks)})
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _drive(self, plugin: GenerationPlugin, entry: HistoryEntry) -> None:
        handle: Optional[JobHandle] = None
        with bind_run_trace(entry.id, plugin.plugin_id):
            with start_langfuse_span(
                name=f"generation.{plugin.plugin_id}",
                input=entry.request,
                metadata={"entry_id": entry.id},
            ) as span:
                try:
                    request = plugin.parse_request(entry.request)
                    outcome = await plugin.submit(request)
                    if isinstance(outcome, Immediate):
                        transition = HistoryTransition.success(outcome.result)
                    else:
                        handle = outcome.handle
                        logger.info(
                            "Generation job pending",
                            extra={"entry_id": entry.id, "plugin_id": plugin.plugin_id, "job_id": handle.job_id},
                        )
                        status = await self.poller.poll(
                            plugin.poll_status,
                            handle,
                            on_progress=lambda progress: self.history.report_progress(entry.id, progress),
                        )
                        if status.state == "succeeded":
                            transition = HistoryTransition.success(status.result)
                        else:
                            transition = HistoryTransition.failure(status.error_detail or "Generation job failed")
                except asyncio.CancelledError:
                    self._finalize(entry.id, HistoryTransition.cancelled(str(RunCancelledError())))
                    if handle is not None:
                        await self._cancel_remote(plugin, handle)
                    raise
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "Generation run failed",
                        exc_info=True,
                        extra={"entry_id": entry.id, "plugin_id": plugin.plugin_id, "error": str(exc)},
                    )
                    transition = HistoryTransition.failure(str(exc) or type(exc).__name__)

                if span is not None:
                    span.update(output={"status": transition.status, "error": transition.error})
                self._finalize(entry.id, transition)

    async def _cancel_remote(self, plugin: GenerationPlugin, handle: JobHandle) -> None:
        try:
            await asyncio.wait_for(plugin.cancel(handle), timeout=self.cancel_timeout_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Remote job cancellation failed",
                extra={"plugin_id": plugin.plugin_id, "job_id": handle.job_id, "error": str(exc)},
            )

    def _finalize(self, entry_id: str, transition: HistoryTransition) -> None:
        try:
            self.history.update(entry_id, transition)
        except HistoryEntryNotFoundError:
            # History was cleared while the run was in flight.
            logger.info(
                "Discarding outcome for cleared history entry",
                extra={"entry_id": entry_id, "status": transition.status},
            )

    def _on_task_done(self, entry_id: str, task: asyncio.Task[None]) -> None:
        self._tasks.pop(entry_id, None)
        if task.cancelled():
            # A task cancelled before its first step never enters _drive.
            transition = HistoryTransition.cancelled(str(RunCancelledError()))
        else:
            exc = task.exception()
            if exc is None:
                return
            # Raised outside the run's own error handling, e.g. by tracing.
            logger.error(
                "Generation run task crashed",
                exc_info=exc,
                extra={"entry_id": entry_id, "error": str(exc)},
            )
            transition = HistoryTransition.failure(str(exc) or type(exc).__name__)
        entry = self.history.get(entry_id)
        if entry is not None and not entry.is_terminal:
            self._finalize(entry_id, transition)
