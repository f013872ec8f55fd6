from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Iterator

from langfuse import Langfuse
from openai import AsyncOpenAI

from creative_studio.config import settings


logger = logging.getLogger(__name__)

RUN_TRACE_NAME = "generation.run"


class LangfuseConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class RunTrace:
    """Identity of the generation run whose observations share one Langfuse trace."""

    entry_id: str
    plugin_id: str

    def trace_attributes(self, metadata: dict[str, Any] | None = None) -> dict[str, Any]:
        return {
            "name": RUN_TRACE_NAME,
            "session_id": self.entry_id,
            "metadata": {"entry_id": self.entry_id, "plugin_id": self.plugin_id, **(metadata or {})},
            "tags": ["generation", self.plugin_id],
        }


_langfuse_client: Langfuse | None = None
_langfuse_initialized = False
# Each run task copies the context at creation, so concurrent runs never share a trace.
_current_run: ContextVar[RunTrace | None] = ContextVar("generation_run_trace", default=None)


def langfuse_enabled() -> bool:
    return bool(settings.LANGFUSE_ENABLED)


def _langfuse_runtime_environment() -> str:
    return settings.LANGFUSE_ENVIRONMENT or settings.ENVIRONMENT


def _langfuse_host() -> str:
    return settings.LANGFUSE_BASE_URL or settings.LANGFUSE_HOST


def _validate_langfuse_settings() -> None:
    if not settings.LANGFUSE_PUBLIC_KEY:
        raise LangfuseConfigError("LANGFUSE_ENABLED is true but LANGFUSE_PUBLIC_KEY is not configured.")
    if not settings.LANGFUSE_SECRET_KEY:
        raise LangfuseConfigError("LANGFUSE_ENABLED is true but LANGFUSE_SECRET_KEY is not configured.")
    if not 0.0 <= float(settings.LANGFUSE_SAMPLE_RATE) <= 1.0:
        raise LangfuseConfigError("LANGFUSE_SAMPLE_RATE must be between 0.0 and 1.0.")


def initialize_langfuse() -> None:
    """Create the process-wide Langfuse client once; a no-op when tracing is disabled."""
    global _langfuse_client
    global _langfuse_initialized

    if _langfuse_initialized:
        return

    if not langfuse_enabled():
        if bool(settings.LANGFUSE_REQUIRED):
            raise LangfuseConfigError(
                "LANGFUSE_REQUIRED is true but LANGFUSE_ENABLED is false. "
                "Set LANGFUSE_ENABLED=true and configure Langfuse credentials."
            )
        _langfuse_initialized = True
        logger.info(
            "Generation tracing disabled",
            extra={"host": _langfuse_host(), "environment": _langfuse_runtime_environment()},
        )
        return

    _validate_langfuse_settings()
    connection: dict[str, Any] = (
        {"base_url": settings.LANGFUSE_BASE_URL} if settings.LANGFUSE_BASE_URL else {"host": settings.LANGFUSE_HOST}
    )
    client = Langfuse(
        public_key=settings.LANGFUSE_PUBLIC_KEY,
        secret_key=settings.LANGFUSE_SECRET_KEY,
        tracing_enabled=True,
        environment=_langfuse_runtime_environment(),
        release=settings.LANGFUSE_RELEASE,
        sample_rate=float(settings.LANGFUSE_SAMPLE_RATE),
        timeout=int(settings.LANGFUSE_TIMEOUT_SECONDS),
        debug=bool(settings.LANGFUSE_DEBUG),
        **connection,
    )
    if bool(settings.LANGFUSE_AUTH_CHECK):
        try:
            auth_check_ok = bool(client.auth_check())
        except Exception as exc:  # noqa: BLE001
            raise LangfuseConfigError(
                "Langfuse auth check failed during initialization. "
                "Verify host/base URL and project API keys."
            ) from exc
        if not auth_check_ok:
            raise LangfuseConfigError(
                "Langfuse auth check returned false. "
                "Verify LANGFUSE_PUBLIC_KEY, LANGFUSE_SECRET_KEY, and host/base URL."
            )

    _langfuse_client = client
    _langfuse_initialized = True
    logger.info(
        "Generation tracing enabled",
        extra={"host": _langfuse_host(), "environment": _langfuse_runtime_environment()},
    )


def get_langfuse_client() -> Langfuse | None:
    initialize_langfuse()
    if not langfuse_enabled():
        return None
    if _langfuse_client is None:
        raise LangfuseConfigError("Langfuse client is not initialized.")
    return _langfuse_client


def shutdown_langfuse() -> None:
    client = get_langfuse_client()
    if client is not None:
        client.shutdown()


def get_openai_client_class() -> type[AsyncOpenAI]:
    """AsyncOpenAI, or Langfuse's drop-in wrapper when tracing is on."""
    if langfuse_enabled():
        initialize_langfuse()
        from langfuse.openai import AsyncOpenAI as LangfuseAsyncOpenAI

        return LangfuseAsyncOpenAI
    return AsyncOpenAI


def current_run_trace() -> RunTrace | None:
    return _current_run.get()


@contextmanager
def bind_run_trace(entry_id: str, plugin_id: str) -> Iterator[RunTrace]:
    """Group every span and LLM generation made inside the block under the run's trace."""
    run = RunTrace(entry_id=entry_id, plugin_id=plugin_id)
    token = _current_run.set(run)
    try:
        yield run
    finally:
        _current_run.reset(token)


@contextmanager
def _observe(client: Langfuse, observation: Any, metadata: dict[str, Any] | None) -> Iterator[Any]:
    with observation as obs:
        run = current_run_trace()
        # Outside a run (direct reasoning calls) the SDK's default trace is kept.
        if run is not None:
            client.update_current_trace(**run.trace_attributes(metadata))
        try:
            yield obs
        except Exception as exc:  # noqa: BLE001
            obs.update(level="ERROR", status_message=str(exc))
            raise


@contextmanager
def start_langfuse_span(
    *,
    name: str,
    input: Any | None = None,
    metadata: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    client = get_langfuse_client()
    if client is None:
        yield None
        return

    with _observe(client, client.start_as_current_span(name=name, input=input, metadata=metadata), metadata) as span:
        yield span


@contextmanager
def start_langfuse_generation(
    *,
    name: str,
    model: str,
    input: Any | None = None,
    metadata: dict[str, Any] | None = None,
    model_parameters: dict[str, Any] | None = None,
) -> Iterator[Any | None]:
    client = get_langfuse_client()
    if client is None:
        yield None
        return

    observation = client.start_as_current_generation(
        name=name,
        input=input,
        model=model,
        metadata=metadata,
        model_parameters=model_parameters,
    )
    with _observe(client, observation, metadata) as generation:
        yield generation
