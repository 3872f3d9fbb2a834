"""Bus Factory - wires one CommandBus from Settings and caller-supplied adapters.

Invariants:
    - One AlertDispatcher shared by the recovery manager and the bus, so a Critical
      record alerts once however many layers see it
    - Pipeline order: Validation, Logging, caller extras, Audit
    - Each call builds an independent history, event bus and breaker set
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Iterable, Mapping

from command_core.config import Settings, get_settings
from command_core.core.history import CommandHistory
from command_core.core.login_attempts import LoginAttemptTracker
from command_core.core.redaction import Redactor
from command_core.core.repository_protocols import AlertHook, AuditSink
from command_core.infrastructure.audit_sink import InMemoryAuditSink
from command_core.services.alerts import AlertDispatcher
from command_core.services.command_bus import CommandBus, CommandFactory
from command_core.services.command_registry import build_command_registry
from command_core.services.event_bus import EventBus
from command_core.services.middleware_audit import AuditMiddleware
from command_core.services.middleware_logging import LoggingMiddleware
from command_core.services.middleware_validation import ValidationMiddleware
from command_core.services.pipeline import MiddlewarePipeline
from command_core.services.recovery import RecoveryManager


def build_command_bus(
    repository: Any,
    *,
    settings: Settings | None = None,
    audit_sink: AuditSink | None = None,
    alert_hook: AlertHook | None = None,
    extra_middleware: Iterable[Any] = (),
    registry: Mapping[str, CommandFactory] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> CommandBus:
    settings = settings or get_settings()
    alerts = AlertDispatcher(alert_hook)
    recovery = RecoveryManager.from_settings(
        settings, alerts=alerts, sleep=sleep, clock=clock,
    )
    redactor = Redactor(settings.audit_sensitive_fields)
    pipeline = MiddlewarePipeline([
        ValidationMiddleware(),
        LoggingMiddleware(),
        *extra_middleware,
        AuditMiddleware(audit_sink or InMemoryAuditSink(), redactor),
    ])
    if registry is None:
        registry = build_command_registry(
            settings.password_hash_rounds,
            LoginAttemptTracker(
                settings.login_max_attempts, settings.login_window_seconds, clock=clock,
            ),
        )
    return CommandBus(
        registry,
        repository,
        pipeline=pipeline,
        event_bus=EventBus(),
        history=CommandHistory(settings.history_capacity),
        recovery=recovery,
        alerts=alerts,
        redactor=redactor,
        timeout_seconds=settings.command_timeout_seconds,
    )
