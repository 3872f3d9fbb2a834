"""RegisterUser - creates a credentials user; undo deletes it, redo recreates it.

Invariants:
    - Undo data is {user_id, email, name, password_hash}, captured during execute();
      the plaintext password is never part of it
    - Redo recreates the user under the SAME id and hash from undo data alone
    - Duplicate email raises ConflictError (BusinessRule, terminal)
"""

import asyncio
import logging

from command_core.core.command import BaseCommand, ExecutionContext
from command_core.core.errors import ConflictError
from command_core.core.events import USER_REGISTERED, USER_REGISTRATION_REVERTED
from command_core.core.passwords import DEFAULT_ROUNDS, hash_password
from command_core.schemas.auth import RegisterUserInput

logger = logging.getLogger(__name__)

USERS_DEPENDENCY = "users"


class RegisterUserCommand(BaseCommand):
    command_type = "register_user"
    input_model = RegisterUserInput

    def __init__(self, hash_rounds: int = DEFAULT_ROUNDS):
        self._rounds = hash_rounds

    async def execute(self, input_data, ctx: ExecutionContext) -> dict:
        params = self.parse(input_data)
        await self._ensure_free(ctx, params.email)
        password_hash = await asyncio.to_thread(
            hash_password, params.password, self._rounds,
        )
        name = params.name or params.email.split("@", 1)[0]
        user = await self._create(ctx, params.email, name, password_hash)
        ctx.record_undo_data(
            user_id=user.id, email=user.email, name=user.name,
            password_hash=password_hash,
        )
        ctx.emit(USER_REGISTERED, user.public_view())
        return {"user_id": user.id}

    async def undo(self, ctx: ExecutionContext) -> dict:
        user_id = ctx.undo_data["user_id"]
        await ctx.protect(lambda: ctx.repository.delete(user_id), key=USERS_DEPENDENCY)
        logger.info(f"Registration of {user_id} undone", extra={"command_id": ctx.metadata.command_id})
        ctx.emit(USER_REGISTRATION_REVERTED, {"user_id": user_id})
        return {"user_id": user_id}

    async def redo(self, ctx: ExecutionContext) -> dict:
        data = ctx.undo_data
        await self._ensure_free(ctx, data["email"])
        user = await self._create(
            ctx, data["email"], data["name"], data["password_hash"],
            user_id=data["user_id"],
        )
        ctx.emit(USER_REGISTERED, user.public_view())
        return {"user_id": user.id}

    async def _ensure_free(self, ctx: ExecutionContext, email: str) -> None:
        if await ctx.repository.find_by_email(email) is not None:
            raise ConflictError("User", {"email": email})

    async def _create(
        self, ctx: ExecutionContext, email: str, name: str, password_hash: str,
        user_id=None,
    ):
        return await ctx.protect(
            lambda: ctx.repository.create(email, name, password_hash, user_id=user_id),
            key=USERS_DEPENDENCY,
        )
