"""Validation Middleware - runs command.validate() before execution.

Invariants:
    - Runs first (priority 0) and only for execute; undo/redo replay validated input
    - Any issue short-circuits with VALIDATION_FAILED; the command never executes
"""

from command_core.core.domain_types import CommandOperation
from command_core.core.errors import ValidationFailedError
from command_core.services.pipeline import PipelineContext


class ValidationMiddleware:
    priority = 0

    async def before(self, ctx: PipelineContext) -> None:
        if ctx.operation is not CommandOperation.EXECUTE or ctx.command is None:
            return
        issues = ctx.command.validate(ctx.input)
        ctx.validated = True
        if issues:
            raise ValidationFailedError(
                issues, f"Invalid input for {ctx.command_type}",
            )
