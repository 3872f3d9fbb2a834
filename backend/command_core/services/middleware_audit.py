"""Audit Middleware - exactly one sanitized AuditRecord per pipeline run.

Invariants:
    - Runs last (priority 1000) so the record reflects the final outcome, including
      failures raised by other middleware after() hooks
    - Sensitive fields are redacted before the record leaves this middleware
    - Sink failures are logged; they never change the CommandResult
"""

import logging
from typing import Any

from command_core.core.domain_types import AuditOutcome
from command_core.core.errors import ErrorRecord
from command_core.core.redaction import Redactor
from command_core.core.repository_protocols import AuditRecord, AuditSink
from command_core.services.pipeline import PipelineContext

logger = logging.getLogger(__name__)


class AuditMiddleware:
    priority = 1000

    def __init__(self, sink: AuditSink, redactor: Redactor | None = None):
        self._sink = sink
        self._redactor = redactor or Redactor()

    async def after(self, ctx: PipelineContext, output: Any) -> None:
        await self._emit(ctx, AuditOutcome.SUCCESS, None)

    async def on_error(self, ctx: PipelineContext, error: ErrorRecord) -> None:
        await self._emit(ctx, AuditOutcome.FAILURE, error)

    async def _emit(
        self, ctx: PipelineContext, outcome: AuditOutcome, error: ErrorRecord | None,
    ) -> None:
        if ctx.audited:
            return
        ctx.audited = True
        record = AuditRecord(
            command_type=ctx.command_type,
            operation=ctx.operation.value,
            outcome=outcome,
            command_id=ctx.metadata.command_id,
            correlation_id=ctx.metadata.correlation_id,
            actor_id=ctx.metadata.actor_id,
            sanitized_input=self._redactor.redact(dict(ctx.input)),
            duration_ms=ctx.duration_ms,
            error_code=error.code.value if error else None,
            error_id=error.id if error else None,
        )
        try:
            await self._sink.write(record)
        except Exception as e:
            logger.error(
                f"Audit sink failed for {ctx.command_type}: {e}",
                exc_info=True, extra=ctx.log_extra(),
            )
