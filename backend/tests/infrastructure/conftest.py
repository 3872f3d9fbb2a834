"""Infrastructure fixtures - fresh in-memory SQLite schema per test."""

import pytest

from command_core.infrastructure.database import DatabaseSessionManager


@pytest.fixture
async def db_manager():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    await manager.create_all()
    yield manager
    await manager.close()
