"""Command Bus - top-level orchestrator for execute / undo / redo.

Invariants:
    - execute(), undo() and redo() NEVER raise: every failure comes back as
      CommandResult.fail(ErrorRecord)
    - Per invocation the sequence is strictly: pipeline (before -> core -> after or
      on_error) -> history -> alerts -> event publication -> return. Audit has run
      before the caller sees the result
    - Only successful, undo-capable executions are recorded; every successful execute
      clears the redo stack; a failed execute leaves history untouched
    - undo()/redo() are serialized by one asyncio.Lock (the rewind lock); history
      record() takes the same lock, so a new execution cannot interleave with a rewind
    - A failed undo/redo puts the entry back on the stack it came from
    - Event handler failures never alter the already-determined CommandResult
    - The registry is copied at construction: resolution is a dict lookup, no reflection

Design Decisions:
    - Explicit dict registry (command_type -> factory) over auto-discovery
    - Undo/redo run through the same middleware pipeline as execute (logging and audit
      see every state change); validation is skipped because input was validated once
    - Redo re-executes with the recorded input when a command has no redo();
      commands with redo() get a redacted copy, so history holds no secrets for them
    - One history per bus instance; per-session isolation means one bus per session
"""

import asyncio
import copy
import logging
from typing import Any, Callable, Mapping

from command_core.core.command import (
    CommandMetadata, CommandResult, ExecutionContext, Undoable,
)
from command_core.core.domain_types import CommandOperation, SubscriptionToken
from command_core.core.errors import (
    CommandCoreError, CommandTimeoutError, ErrorFactory, ErrorRecord,
    ValidationFailedError,
)
from command_core.core.events import (
    COMMAND_EXECUTED, COMMAND_FAILED, COMMAND_REDONE, COMMAND_UNDONE, Event,
)
from command_core.core.history import CommandHistory, HistoryEntry
from command_core.core.redaction import Redactor
from command_core.services.alerts import AlertDispatcher
from command_core.services.event_bus import EventBus
from command_core.services.pipeline import MiddlewarePipeline, PipelineContext
from command_core.services.recovery import RecoveryManager

logger = logging.getLogger(__name__)

CommandFactory = Callable[[], Any]

_SUCCESS_EVENT = {
    CommandOperation.EXECUTE: COMMAND_EXECUTED,
    CommandOperation.UNDO: COMMAND_UNDONE,
    CommandOperation.REDO: COMMAND_REDONE,
}


def command_type_name(command_type: Any) -> str:
    if isinstance(command_type, str):
        return command_type
    return getattr(command_type, "command_type", None) or getattr(
        command_type, "__name__", str(command_type),
    )


class CommandBus:
    def __init__(
        self,
        registry: Mapping[str, CommandFactory],
        repository: Any,
        *,
        pipeline: MiddlewarePipeline | None = None,
        event_bus: EventBus | None = None,
        history: CommandHistory | None = None,
        recovery: RecoveryManager | None = None,
        alerts: AlertDispatcher | None = None,
        redactor: Redactor | None = None,
        timeout_seconds: float | None = 30.0,
    ):
        self._registry = dict(registry)
        self._repository = repository
        self.pipeline = pipeline or MiddlewarePipeline()
        self.event_bus = event_bus or EventBus()
        self.history = history or CommandHistory()
        self._alerts = alerts or (recovery.alerts if recovery else AlertDispatcher())
        self.recovery = recovery or RecoveryManager(alerts=self._alerts)
        self._redactor = redactor or Redactor()
        self._timeout = timeout_seconds
        self._rewind_lock = asyncio.Lock()

    # ─── Introspection / subscriptions ───────────────────────────

    @property
    def command_types(self) -> list[str]:
        return sorted(self._registry)

    def get_history_snapshot(self) -> list[dict]:
        return self.history.snapshot()

    def subscribe(self, event_type: str, handler: Any) -> SubscriptionToken:
        return self.event_bus.subscribe(event_type, handler)

    def unsubscribe(self, token: SubscriptionToken) -> bool:
        return self.event_bus.unsubscribe(token)

    # ─── Bus API ─────────────────────────────────────────────────

    async def execute(
        self,
        command_type: Any,
        input_data: Mapping[str, Any] | None = None,
        metadata: CommandMetadata | Mapping[str, Any] | None = None,
    ) -> CommandResult:
        type_name = command_type_name(command_type)
        try:
            return await self._execute(type_name, input_data, metadata)
        except Exception as e:
            return self._last_resort(e, type_name, CommandOperation.EXECUTE)

    async def undo(self) -> CommandResult:
        try:
            return await self._undo()
        except Exception as e:
            return self._last_resort(e, "history", CommandOperation.UNDO)

    async def redo(self) -> CommandResult:
        try:
            return await self._redo()
        except Exception as e:
            return self._last_resort(e, "history", CommandOperation.REDO)

    # ─── Execute ─────────────────────────────────────────────────

    async def _execute(self, type_name, input_data, metadata) -> CommandResult:
        meta = CommandMetadata.coerce(metadata)
        data = dict(input_data or {})
        factory = self._registry.get(type_name)
        command = factory() if factory is not None else None
        execution = ExecutionContext(
            repository=self._repository, metadata=meta,
            recovery=self.recovery, input=copy.deepcopy(data),
        )
        ctx = PipelineContext(
            type_name, CommandOperation.EXECUTE, data, meta, command, execution,
        )

        async def core():
            if command is None:
                raise CommandCoreError.from_record(ErrorFactory.unknown_command(type_name))
            if not ctx.validated:
                issues = command.validate(data)
                ctx.validated = True
                if issues:
                    raise ValidationFailedError(issues, f"Invalid input for {type_name}")
            return await self._with_timeout(
                command.execute(data, execution), command, type_name, "execute",
            )

        result = await self.pipeline.run(ctx, core)
        if result.success:
            async with self._rewind_lock:
                if isinstance(command, Undoable):
                    self.history.record(HistoryEntry(
                        command=command,
                        command_type=type_name,
                        input=self._entry_input(command, execution.input),
                        undo_data=dict(execution.undo_data),
                        metadata=meta,
                    ))
                else:
                    self.history.clear_redo()
        await self._settle(ctx, execution, result)
        return result

    # ─── Undo / Redo ─────────────────────────────────────────────

    async def _undo(self) -> CommandResult:
        async with self._rewind_lock:
            entry = self.history.pop_undo()
            if entry is None:
                record = (
                    ErrorFactory.history_exhausted(self.history.evicted_count)
                    if self.history.exhausted
                    else ErrorFactory.not_undoable()
                )
                logger.info(f"Undo refused: {record.code.value}", extra={"error_code": record.code.value})
                return CommandResult.fail(record)

            meta = entry.metadata.derive()
            execution = ExecutionContext(
                repository=self._repository, metadata=meta, recovery=self.recovery,
                input=entry.input, undo_data=dict(entry.undo_data),
            )
            ctx = PipelineContext(
                entry.command_type, CommandOperation.UNDO, entry.input, meta,
                entry.command, execution, validated=True,
            )

            async def core():
                output = await self._with_timeout(
                    entry.command.undo(execution), entry.command,
                    entry.command_type, "undo",
                )
                return _rewind_payload(entry, output)

            result = await self.pipeline.run(ctx, core)
            if result.success:
                self.history.push_redo(entry)
            else:
                self.history.push_undo(entry)
        await self._settle(ctx, execution, result)
        return result

    async def _redo(self) -> CommandResult:
        async with self._rewind_lock:
            entry = self.history.pop_redo()
            if entry is None:
                record = ErrorFactory.not_available()
                logger.info(f"Redo refused: {record.code.value}", extra={"error_code": record.code.value})
                return CommandResult.fail(record)

            meta = entry.metadata.derive()
            redo = getattr(entry.command, "redo", None)
            execution = ExecutionContext(
                repository=self._repository, metadata=meta, recovery=self.recovery,
                input=entry.input,
                undo_data=dict(entry.undo_data) if callable(redo) else {},
            )
            ctx = PipelineContext(
                entry.command_type, CommandOperation.REDO, entry.input, meta,
                entry.command, execution, validated=True,
            )

            async def core():
                if callable(redo):
                    operation = redo(execution)
                else:
                    operation = entry.command.execute(copy.deepcopy(dict(entry.input)), execution)
                output = await self._with_timeout(
                    operation, entry.command, entry.command_type, "redo",
                )
                return _rewind_payload(entry, output)

            result = await self.pipeline.run(ctx, core)
            if result.success:
                self.history.push_undo(HistoryEntry(
                    command=entry.command,
                    command_type=entry.command_type,
                    input=entry.input,
                    undo_data=dict(execution.undo_data),
                    metadata=meta,
                ))
            else:
                self.history.push_redo(entry)
        await self._settle(ctx, execution, result)
        return result

    # ─── Helpers ─────────────────────────────────────────────────

    def _entry_input(self, command, input_data) -> Mapping[str, Any]:
        """Commands with their own redo() never read input again: keep it redacted."""
        if callable(getattr(command, "redo", None)):
            return self._redactor.redact(dict(input_data))
        return input_data

    async def _with_timeout(self, awaitable, command, type_name: str, step: str) -> Any:
        timeout = getattr(command, "timeout_seconds", None) or self._timeout
        if not timeout:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            raise CommandTimeoutError(timeout, f"{type_name}.{step}")

    async def _settle(
        self, ctx: PipelineContext, execution: ExecutionContext, result: CommandResult,
    ) -> None:
        """Alerts then events; nothing here may change the result."""
        self._alerts.notify(result.error)
        try:
            events = [
                Event(staged.type, self._redactor.redact(dict(staged.payload)), execution.metadata)
                for staged in execution.staged_events(result.success)
            ]
            events.append(self._system_event(ctx, execution.metadata, result))
            await self.event_bus.publish_many(events)
        except Exception as e:
            logger.error(
                f"Event publication failed for {ctx.command_type}: {e}",
                exc_info=True, extra=ctx.log_extra(),
            )

    def _system_event(
        self, ctx: PipelineContext, meta: CommandMetadata, result: CommandResult,
    ) -> Event:
        payload: dict[str, Any] = {
            "command_type": ctx.command_type,
            "operation": ctx.operation.value,
            "input": self._redactor.redact(dict(ctx.input)),
            "duration_ms": ctx.duration_ms,
        }
        if result.success:
            return Event(_SUCCESS_EVENT[ctx.operation], payload, meta)
        payload.update(
            error_code=result.error.code.value,
            error_id=result.error.id,
            category=result.error.category.value,
            severity=result.error.severity.value,
        )
        return Event(COMMAND_FAILED, payload, meta)

    def _last_resort(
        self, exc: Exception, type_name: str, operation: CommandOperation,
    ) -> CommandResult:
        record: ErrorRecord = ErrorFactory.wrap(
            exc, {"command_type": type_name, "operation": operation.value},
        )
        logger.error(
            f"Unhandled failure in bus {operation.value} for {type_name}: {exc}",
            exc_info=True,
            extra={"command_type": type_name, "error_id": record.id, "error_code": record.code.value},
        )
        self._alerts.notify(record)
        return CommandResult.fail(record)


def _rewind_payload(entry: HistoryEntry, output: Any) -> dict:
    payload = {
        "command_type": entry.command_type,
        "command_id": entry.metadata.command_id,
    }
    if isinstance(output, Mapping):
        payload.update(output)
    return payload
