"""Health endpoints - liveness always up, readiness tied to DB and breakers."""

from command_core.core.domain_types import BreakerState


async def test_liveness(client):
    res = await client.get("/api/v1/health/")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


async def test_readiness_with_database(client):
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 200
    assert res.json()["checks"]["database"] == "healthy"


async def test_readiness_reports_open_circuit(client, bus):
    from command_core.main import app

    breaker = bus.recovery.breaker("users", failure_threshold=1)
    await breaker.record_failure()
    assert breaker.state is BreakerState.OPEN

    app.state.command_bus = bus
    try:
        res = await client.get("/api/v1/health/ready")
    finally:
        del app.state.command_bus
    assert res.status_code == 503
    assert res.json()["open_circuits"] == ["users"]
