"""Command Routes - HTTP tests for execute, undo, redo and history.

Tests cover:
    - Success bodies and per-code HTTP statuses
    - Validation details in the error envelope, never the raw password
    - Undo/redo round trip and history snapshot over HTTP
"""

PASSWORD = "Secret1!"


async def _register(client, email="a@b.com"):
    return await client.post(
        "/api/v1/commands/register_user",
        json={"input": {"email": email, "password": PASSWORD}},
    )


async def test_list_command_types(client):
    res = await client.get("/api/v1/commands")
    assert res.status_code == 200
    assert res.json()["command_types"] == ["change_password", "login_user", "register_user"]


async def test_register_returns_user_id(client):
    res = await _register(client)
    assert res.status_code == 200
    assert res.json() == {"success": True, "data": {"user_id": "u1"}}


async def test_validation_failure_is_400_with_details(client):
    res = await client.post(
        "/api/v1/commands/register_user",
        json={"input": {"email": "bad", "password": "weakpass1"}},
    )
    body = res.json()
    assert res.status_code == 400
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_FAILED"
    assert {d["field"] for d in body["error"]["details"]} == {"email", "password"}
    assert "weakpass1" not in res.text


async def test_unknown_command_is_404(client):
    res = await client.post("/api/v1/commands/launch_rockets", json={"input": {}})
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "UNKNOWN_COMMAND"


async def test_duplicate_is_409(client):
    await _register(client)
    res = await _register(client)
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "RESOURCE_ALREADY_EXISTS"


async def test_undo_redo_and_history(client):
    await _register(client)

    history = (await client.get("/api/v1/history")).json()
    assert history["stats"]["undo_size"] == 1
    assert history["entries"][0]["command_type"] == "register_user"

    undo = await client.post("/api/v1/history/undo")
    assert undo.status_code == 200
    assert undo.json()["data"]["user_id"] == "u1"

    redo = await client.post("/api/v1/history/redo")
    assert redo.status_code == 200

    empty_redo = await client.post("/api/v1/history/redo")
    assert empty_redo.status_code == 409
    assert empty_redo.json()["error"]["code"] == "NOT_AVAILABLE"


async def test_undo_with_empty_history_is_409(client):
    res = await client.post("/api/v1/history/undo")
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "NOT_UNDOABLE"


async def test_metadata_is_passed_through(client, bus):
    await client.post(
        "/api/v1/commands/register_user",
        json={
            "input": {"email": "a@b.com", "password": PASSWORD},
            "metadata": {"actor_id": "admin", "correlation_id": "req-9"},
        },
    )
    [entry] = bus.get_history_snapshot()
    assert entry["actor_id"] == "admin"
    assert entry["correlation_id"] == "req-9"


async def test_malformed_body_uses_validation_envelope(client):
    res = await client.post("/api/v1/commands/register_user", json={"input": "nope"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_FAILED"


async def test_login_rate_limit_is_429(client):
    await _register(client)
    for _ in range(5):
        await client.post(
            "/api/v1/commands/login_user",
            json={"input": {"email": "a@b.com", "password": "wrong"}},
        )
    res = await client.post(
        "/api/v1/commands/login_user",
        json={"input": {"email": "a@b.com", "password": PASSWORD}},
    )
    assert res.status_code == 429
