"""Command contracts - tests for CommandResult, CommandMetadata and ExecutionContext."""

import pytest

from command_core.core.command import (
    BaseCommand, CommandMetadata, CommandResult, ExecutionContext, Undoable,
)
from command_core.core.errors import ErrorFactory
from command_core.schemas.auth import RegisterUserInput


def test_ok_result_defaults_to_empty_dict():
    result = CommandResult.ok()
    assert result.success is True
    assert result.data == {}
    assert result.error is None


def test_fail_result_carries_error_only():
    record = ErrorFactory.not_available()
    result = CommandResult.fail(record)
    assert result.success is False
    assert result.data is None
    assert result.to_response()["error"]["code"] == "NOT_AVAILABLE"


def test_result_rejects_inconsistent_states():
    with pytest.raises(TypeError):
        CommandResult(success=1, data={})
    with pytest.raises(ValueError):
        CommandResult(success=True, data={}, error=ErrorFactory.not_available())
    with pytest.raises(ValueError):
        CommandResult(success=False)


def test_metadata_coerce_and_derive():
    meta = CommandMetadata.coerce({"actor_id": "u1", "correlation_id": "c1"})
    assert meta.actor_id == "u1"
    assert meta.correlation_id == "c1"
    assert meta.command_id

    derived = meta.derive()
    assert derived.command_id != meta.command_id
    assert derived.correlation_id == "c1"
    assert derived.actor_id == "u1"


def test_staged_events_split_by_outcome():
    ctx = ExecutionContext(repository=None, metadata=CommandMetadata.create())
    ctx.emit("a.done", {"x": 1})
    ctx.emit("a.failed", {"x": 2}, on_failure=True)
    assert [e.type for e in ctx.staged_events(True)] == ["a.done"]
    assert [e.type for e in ctx.staged_events(False)] == ["a.failed"]


async def test_protect_without_recovery_calls_directly():
    ctx = ExecutionContext(repository=None, metadata=CommandMetadata.create())

    async def op():
        return 42

    assert await ctx.protect(op, key="anything") == 42


class _Register(BaseCommand):
    command_type = "register"
    input_model = RegisterUserInput

    async def undo(self, ctx):
        return None


class _Plain(BaseCommand):
    command_type = "plain"


def test_base_command_validate_reports_field_issues():
    issues = _Register().validate({"email": "not-an-email", "password": "weak"})
    fields = {i.field for i in issues}
    assert "email" in fields
    assert "password" in fields


def test_undoable_is_structural():
    assert isinstance(_Register(), Undoable)
    assert not isinstance(_Plain(), Undoable)
