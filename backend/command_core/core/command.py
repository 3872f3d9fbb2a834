"""Command Contracts - metadata, results, execution context and the Executable/Undoable protocols.

Invariants:
    - CommandResult.success is always a real bool; exactly one of data/error is set
    - A command only sees its ExecutionContext: repository, metadata, recovery runner,
      undo-data slot and the event staging area. Never the history or subscribers
    - Undo data is captured during execute() via ctx.record_undo_data(), never afterwards
    - Staged events are published by the bus after the pipeline settles, not by commands

Design Decisions:
    - Protocol over ABC for Executable/Undoable: capability is structural, a command is
      undoable iff it has undo() (ADR: Protocol over ABC)
    - BaseCommand derives validate() from a pydantic input model so field rules live in
      one declarative place; cross-field rules go in the model validators
    - redo() is optional; the bus re-executes with the recorded input when absent
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, ClassVar, Mapping, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from command_core.core.domain_types import ActorId, CommandId, CorrelationId
from command_core.core.errors import ErrorRecord, ValidationIssue


@dataclass(frozen=True)
class CommandMetadata:
    """Attached to every invocation for audit and tracing."""
    command_id: CommandId
    correlation_id: CorrelationId
    actor_id: ActorId | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def create(
        cls, actor_id: str | None = None, correlation_id: str | None = None,
        command_id: str | None = None,
    ) -> "CommandMetadata":
        return cls(
            command_id=CommandId(command_id or uuid.uuid4().hex),
            correlation_id=CorrelationId(correlation_id or uuid.uuid4().hex),
            actor_id=ActorId(actor_id) if actor_id else None,
        )

    @classmethod
    def coerce(cls, value: "CommandMetadata | Mapping[str, Any] | None") -> "CommandMetadata":
        if isinstance(value, CommandMetadata):
            return value
        value = value or {}
        return cls.create(
            actor_id=value.get("actor_id"),
            correlation_id=value.get("correlation_id"),
            command_id=value.get("command_id"),
        )

    def derive(self) -> "CommandMetadata":
        """Fresh command id, same actor and correlation (undo/redo runs)."""
        return CommandMetadata.create(
            actor_id=self.actor_id, correlation_id=self.correlation_id,
        )

    def to_dict(self) -> dict:
        return {
            "command_id": self.command_id,
            "correlation_id": self.correlation_id,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class CommandResult:
    """Outcome returned by every bus entry point."""
    success: bool
    data: Any = None
    error: ErrorRecord | None = None

    def __post_init__(self):
        if not isinstance(self.success, bool):
            raise TypeError("CommandResult.success must be a bool")
        if self.success and (self.error is not None or self.data is None):
            raise ValueError("successful result needs data and no error")
        if not self.success and (self.error is None or self.data is not None):
            raise ValueError("failed result needs an error and no data")

    @classmethod
    def ok(cls, data: Any = None) -> "CommandResult":
        return cls(success=True, data={} if data is None else data)

    @classmethod
    def fail(cls, error: ErrorRecord) -> "CommandResult":
        return cls(success=False, error=error)

    def to_response(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, **self.error.to_response()}


@dataclass(frozen=True)
class StagedEvent:
    type: str
    payload: Mapping[str, Any]
    on_failure: bool = False


class RecoveryRunner(Protocol):
    """What commands may call to protect a dependency call."""
    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        *,
        key: str | None = None,
        compensate: Callable[[], Awaitable[Any]] | None = None,
    ) -> Any: ...


@dataclass
class ExecutionContext:
    """The only window a command has onto the outside world."""
    repository: Any
    metadata: CommandMetadata
    recovery: RecoveryRunner | None = None
    input: Mapping[str, Any] = field(default_factory=dict)
    undo_data: dict[str, Any] = field(default_factory=dict)
    _staged: list[StagedEvent] = field(default_factory=list, repr=False)

    def record_undo_data(self, **data: Any) -> None:
        self.undo_data.update(data)

    def emit(
        self, event_type: str, payload: Mapping[str, Any] | None = None,
        *, on_failure: bool = False,
    ) -> None:
        """Stage a domain event. on_failure events publish only if the run fails."""
        self._staged.append(StagedEvent(event_type, dict(payload or {}), on_failure))

    def staged_events(self, succeeded: bool) -> list[StagedEvent]:
        return [e for e in self._staged if e.on_failure != succeeded]

    async def protect(
        self, operation: Callable[[], Awaitable[Any]], *, key: str | None = None,
        compensate: Callable[[], Awaitable[Any]] | None = None,
    ) -> Any:
        """Run through the recovery manager when one is wired, else call directly."""
        if self.recovery is None:
            return await operation()
        return await self.recovery.run(operation, key=key, compensate=compensate)


@runtime_checkable
class Executable(Protocol):
    command_type: ClassVar[str]

    def validate(self, input_data: Mapping[str, Any]) -> list[ValidationIssue]: ...

    async def execute(self, input_data: Mapping[str, Any], ctx: ExecutionContext) -> Any: ...


@runtime_checkable
class Undoable(Executable, Protocol):
    async def undo(self, ctx: ExecutionContext) -> Any: ...


def issues_from_pydantic(exc: ValidationError) -> list[ValidationIssue]:
    issues = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "input"
        message = err["msg"].removeprefix("Value error, ")
        issues.append(ValidationIssue(loc, message, err["type"]))
    return issues


class BaseCommand:
    """Convenience base: pydantic-driven validate() plus parse()."""

    command_type: ClassVar[str] = ""
    input_model: ClassVar[type[BaseModel] | None] = None
    # Overrides the bus-wide timeout when set
    timeout_seconds: ClassVar[float | None] = None

    def validate(self, input_data: Mapping[str, Any]) -> list[ValidationIssue]:
        if self.input_model is None:
            return []
        try:
            self.input_model.model_validate(dict(input_data))
        except ValidationError as e:
            return issues_from_pydantic(e)
        return []

    def parse(self, input_data: Mapping[str, Any]) -> BaseModel:
        return self.input_model.model_validate(dict(input_data))

    async def execute(self, input_data: Mapping[str, Any], ctx: ExecutionContext) -> Any:
        raise NotImplementedError

