"""Domain Events - immutable notifications published after a command settles.

Invariants:
    - Event is frozen and its payload is a deep, read-only copy: publishers and
      subscribers can never mutate what others see
    - Every event carries the CommandMetadata of the invocation that produced it
      (correlation id links events, audit records and errors)
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

from command_core.core.command import CommandMetadata

WILDCARD = "*"

# ─── Event Types ─────────────────────────────────────────────────

COMMAND_EXECUTED = "command.executed"
COMMAND_FAILED = "command.failed"
COMMAND_UNDONE = "command.undone"
COMMAND_REDONE = "command.redone"

USER_REGISTERED = "user.registered"
USER_REGISTRATION_REVERTED = "user.registration_reverted"
USER_LOGGED_IN = "user.logged_in"
USER_LOGIN_FAILED = "user.login_failed"
PASSWORD_CHANGED = "user.password_changed"
PASSWORD_CHANGE_REVERTED = "user.password_change_reverted"


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class Event:
    type: str
    payload: Mapping[str, Any]
    metadata: CommandMetadata
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.type or self.type == WILDCARD:
            raise ValueError(f"invalid event type: {self.type!r}")
        object.__setattr__(
            self, "payload", _freeze(copy.deepcopy(_thaw(self.payload))),
        )

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "type": self.type,
            "payload": _thaw(self.payload),
            "metadata": self.metadata.to_dict(),
            "occurred_at": self.occurred_at.isoformat(),
        }
