"""Boundary Protocols - contracts between the core and its collaborators.

Invariants:
    - Core NEVER imports from infrastructure; implementations are injected
    - Repositories either return the entity or raise NotFoundError / ConflictError
    - AuditSink receives already-sanitized records; storage is its responsibility
    - AlertHook is synchronous and is invoked for Critical ErrorRecords only

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Async repository and sink methods: implementations do IO
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

from command_core.core.domain_types import AuditOutcome, UserId
from command_core.core.errors import ErrorRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UserRecord:
    id: UserId
    email: str
    name: str
    password_hash: str
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def public_view(self) -> dict:
        return {"user_id": self.id, "email": self.email, "name": self.name}


class UserRepository(Protocol):
    """Contract for user persistence - implemented by shell."""
    async def get(self, user_id: UserId) -> UserRecord: ...
    async def find_by_email(self, email: str) -> UserRecord | None: ...
    async def create(
        self, email: str, name: str, password_hash: str,
        user_id: UserId | None = None,
    ) -> UserRecord: ...
    async def update_password(self, user_id: UserId, password_hash: str) -> UserRecord: ...
    async def delete(self, user_id: UserId) -> None: ...


@dataclass(frozen=True)
class AuditRecord:
    """One sanitized entry per pipeline run."""
    command_type: str
    operation: str
    outcome: AuditOutcome
    command_id: str
    correlation_id: str
    actor_id: str | None
    sanitized_input: Mapping[str, Any]
    duration_ms: float
    error_code: str | None = None
    error_id: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "command_type": self.command_type,
            "operation": self.operation,
            "outcome": self.outcome.value,
            "command_id": self.command_id,
            "correlation_id": self.correlation_id,
            "actor_id": self.actor_id,
            "sanitized_input": dict(self.sanitized_input),
            "duration_ms": self.duration_ms,
            "error_code": self.error_code,
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditSink(Protocol):
    """Contract for audit persistence - implemented by caller."""
    async def write(self, record: AuditRecord) -> None: ...


class AlertHook(Protocol):
    """Out-of-band alerting for Critical errors - implemented by caller."""
    def __call__(self, record: ErrorRecord) -> None: ...
