"""API test fixtures - FastAPI app with the command bus dependency overridden.

Invariants:
    - Lifespan does not run under ASGITransport; the bus is injected via
      dependency_overrides and db_manager is patched for readiness checks
"""

import pytest
from httpx import ASGITransport, AsyncClient

import command_core.infrastructure.database as db_module
from command_core.api.routes.commands import get_command_bus
from command_core.config import Settings
from command_core.infrastructure.database import DatabaseSessionManager
from command_core.infrastructure.memory_user_repository import InMemoryUserRepository
from command_core.main import app
from command_core.services.bus_factory import build_command_bus


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def bus():
    settings = Settings(password_hash_rounds=4)
    return build_command_bus(InMemoryUserRepository(), settings=settings, sleep=_no_sleep)


@pytest.fixture
async def test_db_manager():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
async def client(bus, test_db_manager):
    app.dependency_overrides[get_command_bus] = lambda: bus
    original_manager = db_module.db_manager
    db_module.db_manager = test_db_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
