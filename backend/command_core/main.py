"""Command Core API - FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map CommandCoreError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, command bus and event store built once on startup via lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - SQLite URLs get create_all on startup; Postgres schemas are owned by alembic
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from command_core.api.error_handlers import register_error_handlers
from command_core.api.routes import commands, health
from command_core.config import get_settings
from command_core.infrastructure.alerts import LoggingAlertHook
from command_core.infrastructure.audit_sink import SqlAlchemyAuditSink
from command_core.infrastructure.database import init_db, is_sqlite
from command_core.infrastructure.event_store import InMemoryEventStore
from command_core.infrastructure.observability import setup_logging
from command_core.infrastructure.user_repository import SqlAlchemyUserRepository
from command_core.services.bus_factory import build_command_bus

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if is_sqlite(settings.database_url):
        await manager.create_all()

    bus = build_command_bus(
        SqlAlchemyUserRepository(manager.session),
        settings=settings,
        audit_sink=SqlAlchemyAuditSink(manager.session),
        alert_hook=LoggingAlertHook(),
    )
    event_store = InMemoryEventStore()
    event_store.attach(bus.event_bus)
    app.state.command_bus = bus
    app.state.event_store = event_store
    logger.info(f"Command Core API started with {len(bus.command_types)} command types")
    yield
    logger.info("Command Core API shutting down")
    await manager.close()


app = FastAPI(
    title="Command Core API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(commands.router)

register_error_handlers(app)
