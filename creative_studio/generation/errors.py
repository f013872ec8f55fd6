from __future__ import annotations

from typing import Iterable

from creative_studio.generation.types import CANCELLED_DETAIL


class GenerationError(RuntimeError):
    pass


class PluginNotFoundError(GenerationError):
    def __init__(self, plugin_id: str, available: Iterable[str] = ()) -> None:
        available_ids = list(available)
        super().__init__(f"Generation plugin not found: {plugin_id}. Available: {available_ids}")
        self.plugin_id = plugin_id
        self.available = available_ids


class DuplicatePluginError(GenerationError):
    def __init__(self, plugin_id: str) -> None:
        super().__init__(f"Generation plugin already registered: {plugin_id}")
        self.plugin_id = plugin_id


class InvalidRequestError(GenerationError, ValueError):
    pass


class InputRequiredError(GenerationError, ValueError):
    pass


class HistoryEntryNotFoundError(GenerationError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(f"History entry not found: {entry_id}")
        self.entry_id = entry_id


class InvalidTransitionError(GenerationError):
    def __init__(self, entry_id: str, current_status: str, requested_status: str) -> None:
        super().__init__(
            f"Illegal history transition for entry {entry_id}: {current_status} -> {requested_status}"
        )
        self.entry_id = entry_id
        self.current_status = current_status
        self.requested_status = requested_status


class ProviderError(GenerationError):
    """Provider-side failure, normalized to a single human-readable detail string."""

    def __init__(self, detail: str, *, plugin_id: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.plugin_id = plugin_id


class PollTimeoutError(GenerationError):
    def __init__(self, *, job_id: str, attempts: int, interval_seconds: float) -> None:
        super().__init__(
            f"Timed out waiting for job {job_id} after {attempts} status checks "
            f"(poll_interval_seconds={interval_seconds})"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.interval_seconds = interval_seconds


class RunCancelledError(GenerationError):
    def __init__(self, message: str = CANCELLED_DETAIL) -> None:
        super().__init__(message)
