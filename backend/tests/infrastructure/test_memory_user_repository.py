"""Tests for the in-memory user repository."""

import pytest

from command_core.core.errors import ConflictError, NotFoundError
from command_core.infrastructure.memory_user_repository import InMemoryUserRepository


async def test_sequential_ids_are_not_reused():
    repo = InMemoryUserRepository()
    first = await repo.create("a@b.com", "a", "h")
    await repo.delete(first.id)
    second = await repo.create("c@d.com", "c", "h")
    assert (first.id, second.id) == ("u1", "u2")


async def test_explicit_id_conflicts_when_taken():
    repo = InMemoryUserRepository()
    await repo.create("a@b.com", "a", "h", user_id="u1")
    with pytest.raises(ConflictError):
        await repo.create("x@b.com", "x", "h", user_id="u1")
    with pytest.raises(ConflictError):
        await repo.create("a@b.com", "a", "h")


async def test_update_missing_user():
    with pytest.raises(NotFoundError):
        await InMemoryUserRepository().update_password("u9", "h")
