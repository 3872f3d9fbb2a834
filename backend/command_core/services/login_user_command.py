"""LoginUser - credential check with per-email attempt limiting. Not undoable.

Invariants:
    - Over the limit: RATE_LIMIT_EXCEEDED before any credential check
    - Bad credentials: the failure is counted, user.login_failed is staged
      (published only because the run fails), INVALID_CREDENTIALS raised.
      Unknown email and wrong password are indistinguishable to the caller
    - Success clears the email's failure window
"""

import asyncio

from command_core.core.command import BaseCommand, ExecutionContext
from command_core.core.errors import AuthenticationError, RateLimitError
from command_core.core.events import USER_LOGGED_IN, USER_LOGIN_FAILED
from command_core.core.login_attempts import LoginAttemptTracker
from command_core.core.passwords import verify_password
from command_core.schemas.auth import LoginUserInput


class LoginUserCommand(BaseCommand):
    command_type = "login_user"
    input_model = LoginUserInput

    def __init__(self, tracker: LoginAttemptTracker):
        self._tracker = tracker

    async def execute(self, input_data, ctx: ExecutionContext) -> dict:
        params = self.parse(input_data)
        key = params.email

        wait = self._tracker.retry_after(key)
        if wait > 0:
            ctx.emit(
                USER_LOGIN_FAILED, {"email": key, "reason": "rate_limited"},
                on_failure=True,
            )
            raise RateLimitError(key, wait)

        user = await ctx.repository.find_by_email(key)
        valid = user is not None and await asyncio.to_thread(
            verify_password, params.password, user.password_hash,
        )
        if not valid:
            attempts = self._tracker.record_failure(key)
            ctx.emit(
                USER_LOGIN_FAILED,
                {"email": key, "reason": "invalid_credentials", "attempts": attempts},
                on_failure=True,
            )
            raise AuthenticationError()

        self._tracker.reset(key)
        ctx.emit(USER_LOGGED_IN, {"user_id": user.id, "email": user.email})
        return user.public_view()
