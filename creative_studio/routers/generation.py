from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse

from creative_studio.deps import get_orchestrator, get_registry
from creative_studio.generation.errors import HistoryEntryNotFoundError
from creative_studio.generation.history import HistoryEvent, HistoryStore
from creative_studio.generation.orchestrator import GenerationOrchestrator
from creative_studio.generation.plugins.registry import PluginRegistry
from creative_studio.schemas.generation import (
    HISTORY_ORDER,
    CancelRunOut,
    GenerationRunIn,
    PluginDetail,
    PluginSummary,
)


router = APIRouter(prefix="/generation", tags=["generation"])


def _sse(data: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(data, separators=(',', ':'))}\n\n".encode("utf-8")


def _event_payload(event: HistoryEvent) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": event.kind}
    if event.entry is not None:
        payload["entry"] = jsonable_encoder(event.entry)
    if event.progress is not None:
        payload["progress"] = event.progress
    return payload


async def stream_history_events(history: HistoryStore, *, limit: Optional[int] = None) -> AsyncIterator[bytes]:
    """
    Yield a snapshot of the history, then every change as it happens.

    Subscribing and taking the snapshot happen in the same step, so no event
    falls between them. `limit` closes the stream after that many live events.
    """
    queue: asyncio.Queue[HistoryEvent] = asyncio.Queue()
    unsubscribe = history.subscribe(queue.put_nowait)
    try:
        yield _sse({"type": "snapshot", "entries": jsonable_encoder(history.list_all())})
        sent = 0
        while limit is None or sent < limit:
            event = await queue.get()
            yield _sse(_event_payload(event))
            sent += 1
    finally:
        unsubscribe()


@router.get("/plugins")
def list_plugins(registry: PluginRegistry = Depends(get_registry)):
    return {"plugins": [PluginSummary(**plugin.summary()) for plugin in registry.list_all()]}


@router.get("/plugins/{plugin_id}")
def get_plugin(plugin_id: str, registry: PluginRegistry = Depends(get_registry)):
    plugin = registry.get(plugin_id)
    return PluginDetail(
        **plugin.summary(),
        request_schema=plugin.describe_request(),
        defaults=jsonable_encoder(plugin.get_defaults()),
    )


@router.post("/runs", status_code=status.HTTP_202_ACCEPTED)
async def create_run(
    payload: GenerationRunIn,
    response: Response,
    wait: bool = False,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    entry = await orchestrator.run(payload.plugin_id, payload.request)
    if wait:
        entry = await orchestrator.wait(entry.id)
        response.status_code = status.HTTP_200_OK
    return jsonable_encoder(entry)


@router.post("/runs/{entry_id}/cancel")
async def cancel_run(entry_id: str, orchestrator: GenerationOrchestrator = Depends(get_orchestrator)):
    if orchestrator.history.get(entry_id) is None:
        raise HistoryEntryNotFoundError(entry_id)
    cancelled = await orchestrator.cancel(entry_id)
    return CancelRunOut(entry_id=entry_id, cancelled=cancelled)


@router.get("/history")
def list_history(
    order: HISTORY_ORDER = "newest",
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    entries = orchestrator.history.list_all()
    if order == "newest":
        entries.reverse()
    return {"entries": jsonable_encoder(entries)}


@router.get("/history/stream")
def stream_history(
    limit: Optional[int] = Query(default=None, ge=1),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    return StreamingResponse(
        stream_history_events(orchestrator.history, limit=limit),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/history/{entry_id}")
def get_history_entry(entry_id: str, orchestrator: GenerationOrchestrator = Depends(get_orchestrator)):
    entry = orchestrator.history.get(entry_id)
    if entry is None:
        raise HistoryEntryNotFoundError(entry_id)
    return jsonable_encoder(entry)


@router.delete("/history", status_code=status.HTTP_204_NO_CONTENT)
def clear_history(orchestrator: GenerationOrchestrator = Depends(get_orchestrator)) -> None:
    orchestrator.history.clear()
