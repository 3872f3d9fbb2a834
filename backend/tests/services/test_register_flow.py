"""RegisterUser end to end - bus, pipeline, recovery, history, audit and events together.

Tests cover:
    - register -> undo -> redo keeps the same user id
    - Validation and duplicate-email failures are terminal and audited
    - Transient repository failures are retried; persistent ones alert and
      surface without internal details
"""

from command_core.core.domain_types import AuditOutcome, ErrorCategory
from command_core.core.errors import GENERIC_USER_MESSAGE, DatabaseError, ErrorCode
from command_core.core.events import (
    COMMAND_EXECUTED, USER_REGISTERED, USER_REGISTRATION_REVERTED,
)
from command_core.core.passwords import verify_password
from command_core.core.redaction import REDACTED
from command_core.infrastructure.memory_user_repository import InMemoryUserRepository
from command_core.services.bus_factory import build_command_bus


async def test_register_undo_redo(bus, repository, strong_password, event_store):
    result = await bus.execute("register_user", {"email": "a@b.com", "password": strong_password})
    assert result.success
    assert result.data == {"user_id": "u1"}
    user = await repository.find_by_email("a@b.com")
    assert user.name == "a"
    assert verify_password(strong_password, user.password_hash)

    undone = await bus.undo()
    assert undone.success
    assert await repository.find_by_email("a@b.com") is None

    redone = await bus.redo()
    assert redone.success
    assert redone.data["user_id"] == "u1"
    restored = await repository.get("u1")
    assert restored.email == "a@b.com"
    assert restored.name == "a"
    assert verify_password(strong_password, restored.password_hash)

    types = [e.type for e in event_store.events]
    assert types.count(USER_REGISTERED) == 2
    assert USER_REGISTRATION_REVERTED in types
    assert all(strong_password not in str(e.to_dict()) for e in event_store.events)


async def test_email_is_normalized(bus, repository, strong_password):
    await bus.execute("register_user", {"email": "  Ana@Example.COM ", "password": strong_password, "name": " Ana "})
    user = await repository.find_by_email("ana@example.com")
    assert user.name == "Ana"


async def test_invalid_input_is_rejected_and_audited(bus, repository, audit_sink):
    result = await bus.execute("register_user", {"email": "bad", "password": "short"})
    assert result.error.category is ErrorCategory.VALIDATION
    assert result.error.http_status == 400
    assert len(repository) == 0

    [record] = audit_sink.records
    assert record.outcome is AuditOutcome.FAILURE
    assert record.sanitized_input["password"] == REDACTED


async def test_password_confirmation_must_match(bus, strong_password):
    result = await bus.execute("register_user", {
        "email": "a@b.com", "password": strong_password, "confirm_password": "Other1!x",
    })
    assert result.error.code is ErrorCode.VALIDATION_FAILED


async def test_duplicate_email_conflicts(bus, strong_password, sleep):
    await bus.execute("register_user", {"email": "a@b.com", "password": strong_password})
    result = await bus.execute("register_user", {"email": "A@B.com", "password": strong_password})
    assert result.error.code is ErrorCode.RESOURCE_ALREADY_EXISTS
    assert result.error.http_status == 409
    assert sleep.calls == []
    assert bus.history.undo_size == 1


async def test_audit_record_per_invocation(bus, audit_sink, strong_password):
    await bus.execute(
        "register_user", {"email": "a@b.com", "password": strong_password},
        {"actor_id": "admin", "correlation_id": "req-1"},
    )
    await bus.undo()

    records = audit_sink.by_correlation("req-1")
    assert [r.operation for r in records] == ["execute", "undo"]
    assert all(r.outcome is AuditOutcome.SUCCESS for r in records)
    assert records[0].sanitized_input == {"email": "a@b.com", "password": REDACTED}


class _FlakyRepository(InMemoryUserRepository):
    def __init__(self, failures: int, exc_factory):
        super().__init__()
        self.failures = failures
        self.attempts = 0
        self._exc_factory = exc_factory

    async def create(self, email, name, password_hash, user_id=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self._exc_factory()
        return await super().create(email, name, password_hash, user_id=user_id)


async def test_transient_repository_failure_is_retried(settings, sleep, clock, strong_password):
    repository = _FlakyRepository(2, lambda: ConnectionError("connection reset"))
    bus = build_command_bus(repository, settings=settings, sleep=sleep, clock=clock)

    result = await bus.execute("register_user", {"email": "a@b.com", "password": strong_password})

    assert result.success
    assert repository.attempts == 3
    assert len(sleep.calls) == 2


async def test_persistent_database_failure_alerts_and_hides_details(
    settings, sleep, clock, alerts, strong_password, audit_sink,
):
    repository = _FlakyRepository(100, lambda: DatabaseError("disk full", "commit"))
    bus = build_command_bus(
        repository, settings=settings, sleep=sleep, clock=clock,
        alert_hook=alerts.append, audit_sink=audit_sink,
    )
    seen = []
    bus.subscribe(COMMAND_EXECUTED, seen.append)

    result = await bus.execute("register_user", {"email": "a@b.com", "password": strong_password})

    assert not result.success
    assert result.error.category is ErrorCategory.SYSTEM
    body = result.to_response()["error"]
    assert body["message"] == GENERIC_USER_MESSAGE
    assert "disk full" not in str(body)
    assert [r.code for r in alerts] == [ErrorCode.DATABASE_ERROR]
    assert seen == []
    assert audit_sink.records[-1].outcome is AuditOutcome.FAILURE
    assert bus.history.undo_size == 0
