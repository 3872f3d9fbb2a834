"""Service test fixtures - in-memory repository, audit sink and a fully wired bus.

Invariants:
    - Every test gets a fresh bus, history, breaker set and repository
    - Backoff sleeps are recorded, never awaited for real
    - Password hashing uses the minimum bcrypt cost (fast, same format)
"""

import pytest

from command_core.config import Settings
from command_core.infrastructure.audit_sink import InMemoryAuditSink
from command_core.infrastructure.event_store import InMemoryEventStore
from command_core.infrastructure.memory_user_repository import InMemoryUserRepository
from command_core.services.bus_factory import build_command_bus


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        password_hash_rounds=4,
        history_capacity=10,
        command_timeout_seconds=5.0,
        login_max_attempts=3,
        breaker_failure_threshold=3,
    )


@pytest.fixture
def repository():
    return InMemoryUserRepository()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def alerts():
    return []


@pytest.fixture
def bus(repository, settings, audit_sink, alerts, sleep, clock):
    return build_command_bus(
        repository,
        settings=settings,
        audit_sink=audit_sink,
        alert_hook=alerts.append,
        sleep=sleep,
        clock=clock,
    )


@pytest.fixture
def event_store(bus):
    store = InMemoryEventStore()
    store.attach(bus.event_bus)
    return store


@pytest.fixture
def strong_password():
    return "Secret123!"
