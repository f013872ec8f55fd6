from datetime import datetime, timezone

import pytest

from creative_studio.generation.errors import HistoryEntryNotFoundError, InvalidTransitionError
from creative_studio.generation.history import HistoryEvent, HistoryStore
from creative_studio.generation.types import HistoryEntry, HistoryTransition


def _entry(entry_id: str, **overrides) -> HistoryEntry:
    fields = {
        "id": entry_id,
        "plugin_id": "echo",
        "request": {"prompt": "cat"},
        "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return HistoryEntry(**fields)


def test_update_moves_pending_entry_to_success() -> None:
    store = HistoryStore()
    store.append(_entry("a"))

    updated = store.update("a", HistoryTransition.success({"url": "https://x/y.png"}))

    assert updated.status == "success"
    assert updated.result == {"url": "https://x/y.png"}
    assert updated.error is None
    assert updated.completed_at is not None
    assert updated.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert store.get("a") == updated


def test_terminal_entry_rejects_further_transitions() -> None:
    store = HistoryStore()
    store.append(_entry("a"))
    store.update("a", HistoryTransition.failure("boom"))

    with pytest.raises(InvalidTransitionError):
        store.update("a", HistoryTransition.success("late"))

    entry = store.get("a")
    assert entry.status == "error"
    assert entry.error == "boom"
    assert entry.result is None


def test_append_requires_pending_and_unique_id() -> None:
    store = HistoryStore()
    store.append(_entry("a"))

    with pytest.raises(InvalidTransitionError):
        store.append(_entry("a"))
    with pytest.raises(InvalidTransitionError):
        store.append(_entry("b", status="success"))

    assert [entry.id for entry in store.list_all()] == ["a"]


def test_update_unknown_entry_raises() -> None:
    with pytest.raises(HistoryEntryNotFoundError):
        HistoryStore().update("missing", HistoryTransition.success(None))


def test_list_all_is_in_insertion_order_and_clear_empties() -> None:
    store = HistoryStore()
    for entry_id in ("first", "second", "third"):
        store.append(_entry(entry_id))

    assert [entry.id for entry in store.list_all()] == ["first", "second", "third"]

    store.clear()

    assert store.list_all() == []
    assert len(store) == 0


def test_subscribers_receive_every_mutation() -> None:
    store = HistoryStore()
    events: list[HistoryEvent] = []
    unsubscribe = store.subscribe(events.append)

    store.append(_entry("a"))
    store.update("a", HistoryTransition.cancelled())
    store.clear()
    unsubscribe()
    store.append(_entry("b"))

    assert [event.kind for event in events] == ["appended", "updated", "cleared"]
    assert events[1].entry.status == "cancelled"
    assert events[1].entry.error == "Run cancelled before completion"


def test_failing_listener_does_not_block_others() -> None:
    store = HistoryStore()
    seen: list[str] = []

    def broken(_event: HistoryEvent) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(lambda event: seen.append(event.kind))

    store.append(_entry("a"))

    assert seen == ["appended"]
    assert store.get("a").status == "pending"


def test_progress_is_relayed_without_changing_the_entry() -> None:
    store = HistoryStore()
    events: list[HistoryEvent] = []
    store.append(_entry("a"))
    store.subscribe(events.append)

    store.report_progress("a", 0.4)
    store.update("a", HistoryTransition.success("done"))
    store.report_progress("a", 0.9)
    store.report_progress("missing", 0.5)

    assert [(event.kind, event.progress) for event in events] == [("progress", 0.4), ("updated", None)]
    assert events[0].entry.status == "pending"
    assert store.get("a").status == "success"
