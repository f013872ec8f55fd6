import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from creative_studio.config import settings
from creative_studio.generation.errors import (
    HistoryEntryNotFoundError,
    InputRequiredError,
    InvalidRequestError,
    PluginNotFoundError,
)
from creative_studio.generation.orchestrator import GenerationOrchestrator
from creative_studio.generation.plugins.registry import PluginRegistry, build_default_registry
from creative_studio.generation.reasoning import LLMReasoningModel, SequentialReasoningEngine
from creative_studio.observability import initialize_langfuse, shutdown_langfuse
from creative_studio.routers import generation, reasoning

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _app_lifespan(app: FastAPI) -> AsyncIterator[None]:
    initialize_langfuse()
    try:
        yield
    finally:
        await app.state.orchestrator.shutdown()
        shutdown_langfuse()


def create_app(
    *,
    registry: Optional[PluginRegistry] = None,
    orchestrator: Optional[GenerationOrchestrator] = None,
    reasoning_engine: Optional[SequentialReasoningEngine] = None,
) -> FastAPI:
    app = FastAPI(
        title="Creative Studio Generation API",
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )

    if orchestrator is None:
        orchestrator = GenerationOrchestrator(
            registry=registry if registry is not None else build_default_registry()
        )
    app.state.orchestrator = orchestrator
    app.state.reasoning_engine = reasoning_engine or SequentialReasoningEngine(LLMReasoningModel())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PluginNotFoundError)
    async def plugin_not_found_handler(_request: Request, exc: PluginNotFoundError) -> ORJSONResponse:
        return ORJSONResponse(status_code=404, content={"detail": str(exc), "available": exc.available})

    @app.exception_handler(HistoryEntryNotFoundError)
    async def history_entry_not_found_handler(_request: Request, exc: HistoryEntryNotFoundError) -> ORJSONResponse:
        return ORJSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InputRequiredError)
    @app.exception_handler(InvalidRequestError)
    async def bad_request_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        return ORJSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("Unhandled server exception", exc_info=exc)
        return ORJSONResponse(status_code=500, content={"detail": "Internal server error."})

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    app.include_router(generation.router)
    app.include_router(reasoning.router)

    return app


app = create_app()
