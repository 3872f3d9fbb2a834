"""Command History - bounded undo stack plus redo stack.

Invariants:
    - Undo stack never holds more than `capacity` entries; overflow evicts the oldest,
      which is marked undoable=False and can never be undone again
    - Entries are appended in completion order (the bus records under its rewind lock)
    - record() clears the redo stack; push_undo() (used by redo) does not
    - All mutations hold one threading.Lock: no await happens while it is held

Design Decisions:
    - Only undo-capable executions are recorded: a non-undoable command has nothing
      to invert, so it never occupies a slot
    - evicted count kept so the bus can tell "nothing ever recorded" (NOT_UNDOABLE)
      from "what was recorded fell off the end" (HISTORY_EXHAUSTED)
    - One instance per CommandBus, never a module-level singleton
"""

import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from command_core.core.command import CommandMetadata

DEFAULT_CAPACITY = 100


@dataclass
class HistoryEntry:
    """One reversible execution: the command instance plus its minimal inverse data."""
    command: Any
    command_type: str
    input: Mapping[str, Any]
    undo_data: dict[str, Any]
    metadata: CommandMetadata
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    undoable: bool = True
    entry_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def summary(self, stack: str) -> dict:
        """Diagnostic view: no input, no undo data."""
        return {
            "entry_id": self.entry_id,
            "stack": stack,
            "command_type": self.command_type,
            "command_id": self.metadata.command_id,
            "correlation_id": self.metadata.correlation_id,
            "actor_id": self.metadata.actor_id,
            "timestamp": self.timestamp.isoformat(),
            "undoable": self.undoable,
        }


class CommandHistory:
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("history capacity must be >= 1")
        self.capacity = capacity
        self._undo: deque[HistoryEntry] = deque()
        self._redo: list[HistoryEntry] = []
        self._evicted = 0
        self._lock = threading.Lock()

    @property
    def evicted_count(self) -> int:
        return self._evicted

    @property
    def exhausted(self) -> bool:
        """Undo stack empty because entries were evicted, not because none ran."""
        return not self._undo and self._evicted > 0

    @property
    def undo_size(self) -> int:
        return len(self._undo)

    @property
    def redo_size(self) -> int:
        return len(self._redo)

    def record(self, entry: HistoryEntry) -> HistoryEntry | None:
        """Push a fresh execution, clear redo, return the evicted entry if any."""
        with self._lock:
            self._redo.clear()
            return self._push_undo_locked(entry)

    def push_undo(self, entry: HistoryEntry) -> HistoryEntry | None:
        """Push back onto the undo stack without touching redo (redo path, failed undo)."""
        with self._lock:
            return self._push_undo_locked(entry)

    def pop_undo(self) -> HistoryEntry | None:
        with self._lock:
            while self._undo:
                entry = self._undo.pop()
                if entry.undoable:
                    return entry
            return None

    def push_redo(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._redo.append(entry)

    def pop_redo(self) -> HistoryEntry | None:
        with self._lock:
            return self._redo.pop() if self._redo else None

    def clear_redo(self) -> None:
        with self._lock:
            self._redo.clear()

    def clear(self) -> None:
        with self._lock:
            self._undo.clear()
            self._redo.clear()
            self._evicted = 0

    def snapshot(self) -> list[dict]:
        """Undo entries oldest-first, then redo entries bottom-to-top."""
        with self._lock:
            return (
                [e.summary("undo") for e in self._undo]
                + [e.summary("redo") for e in self._redo]
            )

    def entries(self) -> list[HistoryEntry]:
        """Live entries with payloads, same order as snapshot(). In-process use only."""
        with self._lock:
            return list(self._undo) + list(self._redo)

    def by_actor(self, actor_id: str) -> list[dict]:
        return [s for s in self.snapshot() if s["actor_id"] == actor_id]

    def stats(self) -> dict:
        with self._lock:
            return {
                "undo_size": len(self._undo),
                "redo_size": len(self._redo),
                "capacity": self.capacity,
                "evicted": self._evicted,
            }

    def _push_undo_locked(self, entry: HistoryEntry) -> HistoryEntry | None:
        self._undo.append(entry)
        if len(self._undo) <= self.capacity:
            return None
        evicted = self._undo.popleft()
        evicted.undoable = False
        self._evicted += 1
        return evicted
