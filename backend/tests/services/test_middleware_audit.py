"""Audit Middleware - tests for one sanitized record per run.

Tests cover:
    - Success and failure each produce exactly one record
    - Sensitive input never reaches the sink
    - A broken sink never changes the result
"""

from command_core.core.command import CommandMetadata
from command_core.core.domain_types import AuditOutcome, CommandOperation
from command_core.core.errors import AuthenticationError
from command_core.core.redaction import REDACTED
from command_core.infrastructure.audit_sink import InMemoryAuditSink
from command_core.services.middleware_audit import AuditMiddleware
from command_core.services.pipeline import MiddlewarePipeline, PipelineContext


def _ctx() -> PipelineContext:
    return PipelineContext(
        "login_user", CommandOperation.EXECUTE,
        {"email": "a@b.co", "password": "Secret1!"},
        CommandMetadata.create(actor_id="u1", correlation_id="c1"),
    )


async def test_success_writes_one_redacted_record():
    sink = InMemoryAuditSink()
    pipeline = MiddlewarePipeline([AuditMiddleware(sink)])

    async def core():
        return {"user_id": "u1"}

    await pipeline.run(_ctx(), core)

    [record] = sink.records
    assert record.outcome is AuditOutcome.SUCCESS
    assert record.sanitized_input == {"email": "a@b.co", "password": REDACTED}
    assert record.actor_id == "u1"
    assert record.error_code is None
    assert sink.by_correlation("c1") == [record]


async def test_failure_writes_one_record_with_error():
    sink = InMemoryAuditSink()
    pipeline = MiddlewarePipeline([AuditMiddleware(sink)])

    async def core():
        raise AuthenticationError()

    result = await pipeline.run(_ctx(), core)

    [record] = sink.records
    assert record.outcome is AuditOutcome.FAILURE
    assert record.error_code == "INVALID_CREDENTIALS"
    assert record.error_id == result.error.id
    assert "Secret1!" not in str(record.to_dict())


async def test_after_hook_failure_still_audits_once():
    sink = InMemoryAuditSink()

    class BrokenAfter:
        priority = 500

        async def after(self, ctx, output):
            raise RuntimeError("after broke")

    pipeline = MiddlewarePipeline([AuditMiddleware(sink), BrokenAfter()])

    async def core():
        return {}

    result = await pipeline.run(_ctx(), core)
    assert not result.success
    assert [r.outcome for r in sink.records] == [AuditOutcome.FAILURE]


async def test_broken_sink_does_not_change_result():
    class BrokenSink:
        async def write(self, record):
            raise ConnectionError("audit db down")

    pipeline = MiddlewarePipeline([AuditMiddleware(BrokenSink())])

    async def core():
        return {"ok": True}

    result = await pipeline.run(_ctx(), core)
    assert result.success
