"""In-Memory User Repository - dict-backed UserRepository for tests and single-process use.

Invariants:
    - Generated ids are sequential: u1, u2, ... (never reused, even after delete)
    - Explicit ids (redo) are honored; a taken id or email raises ConflictError
    - Records are immutable; updates replace the stored UserRecord
"""

import asyncio
import dataclasses
import itertools
from datetime import datetime, timezone

from command_core.core.domain_types import UserId
from command_core.core.errors import ConflictError, NotFoundError
from command_core.core.repository_protocols import UserRecord


class InMemoryUserRepository:
    def __init__(self):
        self._users: dict[str, UserRecord] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def get(self, user_id: UserId) -> UserRecord:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def find_by_email(self, email: str) -> UserRecord | None:
        return next((u for u in self._users.values() if u.email == email), None)

    async def create(
        self, email: str, name: str, password_hash: str,
        user_id: UserId | None = None,
    ) -> UserRecord:
        async with self._lock:
            if await self.find_by_email(email) is not None:
                raise ConflictError("User", {"email": email})
            if user_id is None:
                user_id = UserId(f"u{next(self._ids)}")
            elif user_id in self._users:
                raise ConflictError("User", {"id": user_id})
            user = UserRecord(id=user_id, email=email, name=name, password_hash=password_hash)
            self._users[user_id] = user
            return user

    async def update_password(self, user_id: UserId, password_hash: str) -> UserRecord:
        async with self._lock:
            user = await self.get(user_id)
            updated = dataclasses.replace(
                user, password_hash=password_hash, updated_at=datetime.now(timezone.utc),
            )
            self._users[user_id] = updated
            return updated

    async def delete(self, user_id: UserId) -> None:
        async with self._lock:
            if self._users.pop(user_id, None) is None:
                raise NotFoundError("User", user_id)

    def __len__(self) -> int:
        return len(self._users)
