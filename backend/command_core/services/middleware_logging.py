"""Logging Middleware - start/finish/duration per run. Never alters control flow."""

import logging
from typing import Any

from command_core.core.domain_types import SEVERITY_RANK, ErrorSeverity
from command_core.core.errors import ErrorRecord
from command_core.services.pipeline import PipelineContext

logger = logging.getLogger(__name__)


class LoggingMiddleware:
    priority = 100

    async def before(self, ctx: PipelineContext) -> None:
        logger.debug(
            f"{ctx.operation.value} {ctx.command_type} started",
            extra=ctx.log_extra(),
        )

    async def after(self, ctx: PipelineContext, output: Any) -> None:
        logger.info(
            f"{ctx.operation.value} {ctx.command_type} succeeded in {ctx.duration_ms}ms",
            extra={**ctx.log_extra(), "duration_ms": ctx.duration_ms},
        )

    async def on_error(self, ctx: PipelineContext, error: ErrorRecord) -> None:
        serious = SEVERITY_RANK[error.severity] >= SEVERITY_RANK[ErrorSeverity.HIGH]
        log = logger.error if serious else logger.warning
        log(
            f"{ctx.operation.value} {ctx.command_type} failed in {ctx.duration_ms}ms: "
            f"{error.code.value} {error.message}",
            extra={
                **ctx.log_extra(), "duration_ms": ctx.duration_ms,
                "error_code": error.code.value, "error_id": error.id,
            },
        )
