"""SQLAlchemy User Repository - UserRepository over the users table.

Invariants:
    - One session (one transaction) per call; commit on success
    - Unique-constraint violations become ConflictError (BusinessRule, terminal);
      other SQLAlchemy failures surface as DatabaseError via DatabaseSessionManager
    - ORM rows never leave this module: callers get immutable UserRecord values
"""

import uuid
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from command_core.core.domain_types import UserId
from command_core.core.errors import ConflictError, NotFoundError
from command_core.core.repository_protocols import UserRecord
from command_core.models.user import User

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _to_record(row: User) -> UserRecord:
    return UserRecord(
        id=UserId(row.id),
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlAlchemyUserRepository:
    def __init__(self, session_scope: SessionScope):
        self._scope = session_scope

    async def get(self, user_id: UserId) -> UserRecord:
        async with self._scope() as db:
            row = await db.get(User, user_id)
            if row is None:
                raise NotFoundError("User", user_id)
            return _to_record(row)

    async def find_by_email(self, email: str) -> UserRecord | None:
        async with self._scope() as db:
            result = await db.execute(select(User).where(User.email == email))
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    async def create(
        self, email: str, name: str, password_hash: str,
        user_id: UserId | None = None,
    ) -> UserRecord:
        row = User(
            id=user_id or f"u_{uuid.uuid4().hex}",
            email=email,
            name=name,
            password_hash=password_hash,
        )
        async with self._scope() as db:
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictError("User", {"email": email})
            return _to_record(row)

    async def update_password(self, user_id: UserId, password_hash: str) -> UserRecord:
        async with self._scope() as db:
            row = await db.get(User, user_id)
            if row is None:
                raise NotFoundError("User", user_id)
            row.password_hash = password_hash
            row.updated_at = datetime.now(timezone.utc)
            await db.commit()
            return _to_record(row)

    async def delete(self, user_id: UserId) -> None:
        async with self._scope() as db:
            row = await db.get(User, user_id)
            if row is None:
                raise NotFoundError("User", user_id)
            await db.delete(row)
            await db.commit()
