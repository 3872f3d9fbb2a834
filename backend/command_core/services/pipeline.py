"""Middleware Pipeline - ordered before/after/on_error hooks around one command run.

Invariants:
    - Order per run: every before() in pipeline order, then the core step (command
      validate + execute), then every after() in the same order
    - Any exception (hook or core) short-circuits to every on_error() in order; a
      failing on_error hook is logged and skipped
    - run() never raises: it returns CommandResult.ok(output) or CommandResult.fail(record)
    - Pipeline order is a stable sort on `priority`: Validation (0) first, Audit (1000)
      last, everything else (100 by default) in registration order

Design Decisions:
    - Hooks are optional attributes (getattr), so a middleware implements only what it needs
    - The same pipeline serves execute, undo and redo; PipelineContext.operation tells
      middleware which one is running
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol

from command_core.core.command import CommandMetadata, CommandResult, ExecutionContext
from command_core.core.domain_types import CommandOperation
from command_core.core.errors import ErrorFactory, ErrorRecord

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100


@dataclass
class PipelineContext:
    """Shared state for one pipeline run."""
    command_type: str
    operation: CommandOperation
    input: Mapping[str, Any]
    metadata: CommandMetadata
    command: Any = None
    execution: ExecutionContext | None = None
    validated: bool = False
    audited: bool = False
    output: Any = None
    error: ErrorRecord | None = None
    started_at: float = field(default_factory=time.perf_counter)
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 3)

    def log_extra(self) -> dict:
        return {
            "command_type": self.command_type,
            "command_id": self.metadata.command_id,
            "correlation_id": self.metadata.correlation_id,
            "actor_id": self.metadata.actor_id,
        }


class Middleware(Protocol):
    """All hooks optional; priority defaults to DEFAULT_PRIORITY."""
    priority: int

    async def before(self, ctx: PipelineContext) -> None: ...
    async def after(self, ctx: PipelineContext, output: Any) -> None: ...
    async def on_error(self, ctx: PipelineContext, error: ErrorRecord) -> None: ...


class MiddlewarePipeline:
    def __init__(self, middleware: Iterable[Any] = ()):
        self._middleware: list[Any] = []
        for m in middleware:
            self.use(m)

    @property
    def middleware(self) -> tuple:
        return tuple(self._middleware)

    def use(self, middleware: Any) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        self._middleware.sort(key=lambda m: getattr(m, "priority", DEFAULT_PRIORITY))
        return self

    async def run(
        self, ctx: PipelineContext, core: Callable[[], Awaitable[Any]],
    ) -> CommandResult:
        try:
            for m in self._middleware:
                hook = getattr(m, "before", None)
                if hook is not None:
                    await hook(ctx)
            output = await core()
            ctx.output = output
            for m in self._middleware:
                hook = getattr(m, "after", None)
                if hook is not None:
                    await hook(ctx, output)
            return CommandResult.ok(output)
        except Exception as exc:
            record = ErrorFactory.wrap(exc, {
                "command_type": ctx.command_type,
                "operation": ctx.operation.value,
                **ctx.log_extra(),
            })
            ctx.error = record
            await self._run_error_hooks(ctx, record)
            return CommandResult.fail(record)

    async def _run_error_hooks(self, ctx: PipelineContext, record: ErrorRecord) -> None:
        for m in self._middleware:
            hook = getattr(m, "on_error", None)
            if hook is None:
                continue
            try:
                await hook(ctx, record)
            except Exception as e:
                logger.error(
                    f"on_error hook {type(m).__name__} failed: {e}",
                    exc_info=True,
                    extra={**ctx.log_extra(), "error_id": record.id},
                )
