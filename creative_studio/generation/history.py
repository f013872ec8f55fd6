"""Process-scoped, append-only record of generation runs.

The orchestrator is the only writer. Presentation layers read through
`list_all()` and receive live updates through `subscribe()`; they never poll.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Literal, Optional

from creative_studio.generation.errors import (
    HistoryEntryNotFoundError,
    InvalidTransitionError,
)
from creative_studio.generation.types import HistoryEntry, HistoryTransition

logger = logging.getLogger(__name__)


HISTORY_EVENT_KIND = Literal["appended", "updated", "progress", "cleared"]


@dataclass(frozen=True)
class HistoryEvent:
    kind: HISTORY_EVENT_KIND
    entry: Optional[HistoryEntry] = None
    progress: Optional[float] = None


HistoryListener = Callable[[HistoryEvent], None]


class HistoryStore:
    def __init__(self) -> None:
        # dict keeps insertion order, which is submission order.
        self._entries: dict[str, HistoryEntry] = {}
        self._listeners: list[HistoryListener] = []

    def append(self, entry: HistoryEntry) -> HistoryEntry:
        if entry.status != "pending":
            raise InvalidTransitionError(entry.id, "<new>", entry.status)
        if entry.id in self._entries:
            raise InvalidTransitionError(entry.id, self._entries[entry.id].status, "pending")
        self._entries[entry.id] = entry
        logger.debug("History entry appended", extra={"entry_id": entry.id, "plugin_id": entry.plugin_id})
        self._notify(HistoryEvent(kind="appended", entry=entry))
        return entry

    def update(self, entry_id: str, transition: HistoryTransition) -> HistoryEntry:
        current = self._entries.get(entry_id)
        if current is None:
            raise HistoryEntryNotFoundError(entry_id)
        if current.is_terminal:
            raise InvalidTransitionError(entry_id, current.status, transition.status)

        updated = current.model_copy(
            update={
                "status": transition.status,
                "result": transition.result if transition.status == "success" else None,
                "error": transition.error if transition.status != "success" else None,
                "completed_at": datetime.now(timezone.utc),
            }
        )
        self._entries[entry_id] = updated
        logger.info(
            "History entry finalized",
            extra={"entry_id": entry_id, "plugin_id": updated.plugin_id, "status": updated.status},
        )
        self._notify(HistoryEvent(kind="updated", entry=updated))
        return updated

    def report_progress(self, entry_id: str, progress: float) -> None:
        """Relay a job progress fraction to listeners; the entry itself is unchanged."""
        entry = self._entries.get(entry_id)
        if entry is None or entry.is_terminal:
            return
        self._notify(HistoryEvent(kind="progress", entry=entry, progress=progress))

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        return self._entries.get(entry_id)

    def list_all(self) -> list[HistoryEntry]:
        """Entries in creation order; callers reorder for display."""
        return list(self._entries.values())

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.info("History cleared", extra={"entries_discarded": count})
        self._notify(HistoryEvent(kind="cleared"))

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def __len__(self) -> int:
        return len(self._entries)

    def _notify(self, event: HistoryEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("History listener failed", extra={"event_kind": event.kind})
