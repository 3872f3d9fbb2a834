"""Audit Sinks - AuditSink implementations (bounded memory, SQL table).

Invariants:
    - Sinks store what they are given; redaction already happened in AuditMiddleware
    - InMemoryAuditSink keeps the newest max_records entries
"""

from collections import deque

from command_core.core.repository_protocols import AuditRecord
from command_core.infrastructure.user_repository import SessionScope
from command_core.models.audit_record import AuditRecordRow


class InMemoryAuditSink:
    def __init__(self, max_records: int = 10_000):
        self._records: deque[AuditRecord] = deque(maxlen=max_records)

    async def write(self, record: AuditRecord) -> None:
        self._records.append(record)

    @property
    def records(self) -> list[AuditRecord]:
        return list(self._records)

    def by_correlation(self, correlation_id: str) -> list[AuditRecord]:
        return [r for r in self._records if r.correlation_id == correlation_id]

    def clear(self) -> None:
        self._records.clear()


class SqlAlchemyAuditSink:
    """Appends one audit_records row per record."""

    def __init__(self, session_scope: SessionScope):
        self._scope = session_scope

    async def write(self, record: AuditRecord) -> None:
        async with self._scope() as db:
            db.add(AuditRecordRow(
                command_type=record.command_type,
                operation=record.operation,
                outcome=record.outcome.value,
                command_id=record.command_id,
                correlation_id=record.correlation_id,
                actor_id=record.actor_id,
                sanitized_input=dict(record.sanitized_input),
                duration_ms=record.duration_ms,
                error_code=record.error_code,
                error_id=record.error_id,
                created_at=record.timestamp,
            ))
            await db.commit()
