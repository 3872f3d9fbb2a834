"""Command history - tests for bounded undo/redo stacks.

Tests cover:
    - record() clears redo; push_undo() does not
    - Capacity eviction marks entries non-undoable and counts them
    - snapshot() order and the absence of input/undo data
"""

import pytest

from command_core.core.command import CommandMetadata
from command_core.core.history import CommandHistory, HistoryEntry


def _entry(name: str, actor: str | None = None) -> HistoryEntry:
    return HistoryEntry(
        command=object(),
        command_type=name,
        input={"password": "Secret1!"},
        undo_data={"user_id": "u1"},
        metadata=CommandMetadata.create(actor_id=actor),
    )


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        CommandHistory(0)


def test_pop_undo_is_lifo():
    history = CommandHistory()
    first, second = _entry("a"), _entry("b")
    history.record(first)
    history.record(second)
    assert history.pop_undo() is second
    assert history.pop_undo() is first
    assert history.pop_undo() is None


def test_record_clears_redo_but_push_undo_keeps_it():
    history = CommandHistory()
    history.push_redo(_entry("r"))
    history.push_undo(_entry("a"))
    assert history.redo_size == 1

    history.record(_entry("b"))
    assert history.redo_size == 0


def test_eviction_drops_oldest_and_marks_it():
    history = CommandHistory(capacity=2)
    oldest = _entry("a")
    history.record(oldest)
    history.record(_entry("b"))
    evicted = history.record(_entry("c"))

    assert evicted is oldest
    assert oldest.undoable is False
    assert history.evicted_count == 1
    assert history.undo_size == 2
    assert history.stats() == {"undo_size": 2, "redo_size": 0, "capacity": 2, "evicted": 1}


def test_snapshot_lists_undo_then_redo_without_payloads():
    history = CommandHistory()
    history.record(_entry("a"))
    history.record(_entry("b"))
    history.push_redo(_entry("c"))

    snapshot = history.snapshot()
    assert [s["command_type"] for s in snapshot] == ["a", "b", "c"]
    assert [s["stack"] for s in snapshot] == ["undo", "undo", "redo"]
    assert all("input" not in s and "undo_data" not in s for s in snapshot)


def test_by_actor_filters_snapshot():
    history = CommandHistory()
    history.record(_entry("a", actor="u1"))
    history.record(_entry("b", actor="u2"))
    assert [s["command_type"] for s in history.by_actor("u2")] == ["b"]


def test_clear_resets_everything():
    history = CommandHistory(capacity=1)
    history.record(_entry("a"))
    history.record(_entry("b"))
    history.clear()
    assert history.stats()["evicted"] == 0
    assert history.snapshot() == []


def test_exhausted_only_after_eviction():
    history = CommandHistory(capacity=1)
    assert not history.exhausted
    history.record(_entry("a"))
    history.record(_entry("b"))
    history.pop_undo()
    assert history.exhausted
