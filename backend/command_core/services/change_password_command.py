"""ChangePassword - verifies the current password and swaps the hash.

Invariants:
    - previous_hash/new_hash captured before the write, so undo/redo restore exact hashes
    - An authenticated actor may only change their own password
"""

import asyncio

from command_core.core.command import BaseCommand, ExecutionContext
from command_core.core.errors import AuthenticationError, AuthorizationError
from command_core.core.events import PASSWORD_CHANGED, PASSWORD_CHANGE_REVERTED
from command_core.core.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from command_core.schemas.auth import ChangePasswordInput
from command_core.services.register_user_command import USERS_DEPENDENCY


class ChangePasswordCommand(BaseCommand):
    command_type = "change_password"
    input_model = ChangePasswordInput

    def __init__(self, hash_rounds: int = DEFAULT_ROUNDS):
        self._rounds = hash_rounds

    async def execute(self, input_data, ctx: ExecutionContext) -> dict:
        params = self.parse(input_data)
        actor = ctx.metadata.actor_id
        if actor is not None and actor != params.user_id:
            raise AuthorizationError("Cannot change another user's password")

        repo = ctx.repository
        user = await repo.get(params.user_id)
        matches = await asyncio.to_thread(
            verify_password, params.current_password, user.password_hash,
        )
        if not matches:
            raise AuthenticationError("Current password is incorrect")

        new_hash = await asyncio.to_thread(
            hash_password, params.new_password, self._rounds,
        )
        ctx.record_undo_data(
            user_id=user.id, previous_hash=user.password_hash, new_hash=new_hash,
        )
        await ctx.protect(
            lambda: repo.update_password(user.id, new_hash), key=USERS_DEPENDENCY,
        )
        ctx.emit(PASSWORD_CHANGED, {"user_id": user.id})
        return {"user_id": user.id, "changed": True}

    async def undo(self, ctx: ExecutionContext) -> dict:
        return await self._apply(ctx, ctx.undo_data["previous_hash"], PASSWORD_CHANGE_REVERTED)

    async def redo(self, ctx: ExecutionContext) -> dict:
        return await self._apply(ctx, ctx.undo_data["new_hash"], PASSWORD_CHANGED)

    async def _apply(self, ctx: ExecutionContext, password_hash: str, event_type: str) -> dict:
        user_id = ctx.undo_data["user_id"]
        await ctx.protect(
            lambda: ctx.repository.update_password(user_id, password_hash),
            key=USERS_DEPENDENCY,
        )
        ctx.emit(event_type, {"user_id": user_id})
        return {"user_id": user_id}
