"""LoginUser - tests for credential checks and attempt limiting."""

from command_core.core.errors import ErrorCode
from command_core.core.events import USER_LOGGED_IN, USER_LOGIN_FAILED


async def _register(bus, password):
    await bus.execute("register_user", {"email": "a@b.com", "password": password, "name": "Ana"})


async def test_successful_login_returns_public_view(bus, strong_password, event_store):
    await _register(bus, strong_password)
    result = await bus.execute("login_user", {"email": " A@B.com", "password": strong_password})

    assert result.success
    assert result.data == {"user_id": "u1", "email": "a@b.com", "name": "Ana"}
    assert event_store.by_type(USER_LOGGED_IN)[0].payload["user_id"] == "u1"


async def test_login_is_not_recorded_in_history(bus, strong_password):
    await _register(bus, strong_password)
    await bus.execute("login_user", {"email": "a@b.com", "password": strong_password})
    assert [e["command_type"] for e in bus.get_history_snapshot()] == ["register_user"]


async def test_unknown_email_and_wrong_password_look_the_same(bus, strong_password, event_store):
    await _register(bus, strong_password)
    wrong = await bus.execute("login_user", {"email": "a@b.com", "password": "nope"})
    unknown = await bus.execute("login_user", {"email": "x@b.com", "password": "nope"})

    assert wrong.error.code is unknown.error.code is ErrorCode.INVALID_CREDENTIALS
    assert wrong.to_response()["error"]["message"] == unknown.to_response()["error"]["message"]
    assert len(event_store.by_type(USER_LOGIN_FAILED)) == 2


async def test_rate_limited_after_max_attempts(bus, strong_password):
    await _register(bus, strong_password)
    for _ in range(3):
        await bus.execute("login_user", {"email": "a@b.com", "password": "nope"})

    result = await bus.execute("login_user", {"email": "a@b.com", "password": strong_password})
    assert result.error.code is ErrorCode.RATE_LIMIT_EXCEEDED
    assert result.error.http_status == 429


async def test_window_expiry_allows_login_again(bus, strong_password, clock):
    await _register(bus, strong_password)
    for _ in range(3):
        await bus.execute("login_user", {"email": "a@b.com", "password": "nope"})

    clock.advance(61)
    result = await bus.execute("login_user", {"email": "a@b.com", "password": strong_password})
    assert result.success
