"""Command Registry - explicit command_type -> factory mapping.

Invariants:
    - Every mapping is visible here; adding a command means editing this dict
    - Factories take no arguments: collaborators (hash cost, login tracker) are bound
      once, so the login limiter is shared by every LoginUserCommand of one bus
"""

from functools import partial
from typing import Any, Callable

from command_core.core.login_attempts import LoginAttemptTracker
from command_core.core.passwords import DEFAULT_ROUNDS
from command_core.services.change_password_command import ChangePasswordCommand
from command_core.services.login_user_command import LoginUserCommand
from command_core.services.register_user_command import RegisterUserCommand


def build_command_registry(
    hash_rounds: int = DEFAULT_ROUNDS,
    login_tracker: LoginAttemptTracker | None = None,
) -> dict[str, Callable[[], Any]]:
    tracker = login_tracker or LoginAttemptTracker()
    return {
        RegisterUserCommand.command_type: partial(RegisterUserCommand, hash_rounds),
        ChangePasswordCommand.command_type: partial(ChangePasswordCommand, hash_rounds),
        LoginUserCommand.command_type: partial(LoginUserCommand, tracker),
    }
