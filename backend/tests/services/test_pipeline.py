"""Middleware Pipeline - tests for hook ordering and failure routing.

Tests cover:
    - before -> core -> after order, sorted by priority then registration
    - A raising hook or core short-circuits to on_error hooks
    - A failing on_error hook does not stop the others
    - Validation middleware rejects bad input before the command runs
"""

from command_core.core.command import CommandMetadata
from command_core.core.domain_types import CommandOperation, ErrorCategory
from command_core.core.errors import ErrorCode, NotFoundError
from command_core.services.middleware_validation import ValidationMiddleware
from command_core.services.pipeline import MiddlewarePipeline, PipelineContext
from command_core.services.register_user_command import RegisterUserCommand


class _Recorder:
    def __init__(self, name, calls, priority=100, fail_in=None):
        self.name = name
        self.calls = calls
        self.priority = priority
        self.fail_in = fail_in

    async def before(self, ctx):
        self.calls.append(f"{self.name}.before")
        if self.fail_in == "before":
            raise RuntimeError("before failed")

    async def after(self, ctx, output):
        self.calls.append(f"{self.name}.after")

    async def on_error(self, ctx, error):
        self.calls.append(f"{self.name}.on_error")
        if self.fail_in == "on_error":
            raise RuntimeError("hook broke")


def _ctx(command=None, input_data=None, operation=CommandOperation.EXECUTE) -> PipelineContext:
    return PipelineContext(
        "test", operation, input_data or {}, CommandMetadata.create(), command,
    )


async def test_hooks_run_in_priority_order():
    calls = []
    pipeline = MiddlewarePipeline([
        _Recorder("audit", calls, priority=1000),
        _Recorder("log", calls),
        _Recorder("first", calls, priority=0),
    ])

    async def core():
        calls.append("core")
        return {"done": True}

    result = await pipeline.run(_ctx(), core)

    assert result.success
    assert result.data == {"done": True}
    assert calls == [
        "first.before", "log.before", "audit.before", "core",
        "first.after", "log.after", "audit.after",
    ]


async def test_core_failure_routes_to_on_error():
    calls = []
    pipeline = MiddlewarePipeline([_Recorder("a", calls), _Recorder("b", calls)])

    async def core():
        raise NotFoundError("User", "u1")

    ctx = _ctx()
    result = await pipeline.run(ctx, core)

    assert not result.success
    assert result.error.code is ErrorCode.RESOURCE_NOT_FOUND
    assert ctx.error is result.error
    assert calls == ["a.before", "b.before", "a.on_error", "b.on_error"]


async def test_before_failure_skips_core():
    calls = []
    pipeline = MiddlewarePipeline([_Recorder("a", calls, fail_in="before")])

    async def core():
        calls.append("core")

    result = await pipeline.run(_ctx(), core)
    assert not result.success
    assert result.error.code is ErrorCode.INTERNAL_ERROR
    assert calls == ["a.before", "a.on_error"]


async def test_failing_error_hook_does_not_stop_others():
    calls = []
    pipeline = MiddlewarePipeline([
        _Recorder("a", calls, fail_in="on_error"),
        _Recorder("b", calls),
    ])

    async def core():
        raise ValueError("bad")

    result = await pipeline.run(_ctx(), core)
    assert not result.success
    assert calls[-2:] == ["a.on_error", "b.on_error"]


async def test_validation_middleware_blocks_invalid_input():
    executed = []
    pipeline = MiddlewarePipeline([ValidationMiddleware()])
    ctx = _ctx(RegisterUserCommand(4), {"email": "nope", "password": "x"})

    async def core():
        executed.append(True)

    result = await pipeline.run(ctx, core)

    assert executed == []
    assert ctx.validated
    assert result.error.category is ErrorCategory.VALIDATION
    fields = {d["field"] for d in result.to_response()["error"]["details"]}
    assert {"email", "password"} <= fields


async def test_validation_middleware_skips_undo():
    pipeline = MiddlewarePipeline([ValidationMiddleware()])
    ctx = _ctx(RegisterUserCommand(4), {}, operation=CommandOperation.UNDO)

    async def core():
        return {"ok": True}

    result = await pipeline.run(ctx, core)
    assert result.success
    assert not ctx.validated
