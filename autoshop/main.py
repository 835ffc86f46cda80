from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from autoshop.api.routes import ping, tickets
from autoshop.core.config import Settings, get_settings
from autoshop.core.logging import configure_logging, init_tracer, shutdown_tracer
from autoshop.tickets.identifiers import TicketIdGenerator
from autoshop.tickets.repository import InMemoryTicketRepository, SqlTicketRepository, TicketRepository
from autoshop.tickets.service import TicketService

logger = logging.getLogger(__name__)


def _to_async_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses an async driver."""

    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    if dsn.startswith("sqlite:///"):
        return "sqlite+aiosqlite:///" + dsn[len("sqlite:///") :]
    return dsn


async def build_ticket_service(settings: Settings) -> tuple[TicketService, AsyncEngine | None]:
    """Create the repository selected by ``settings`` and a seeded service on top of it."""

    engine: AsyncEngine | None = None
    repository: TicketRepository
    if settings.storage_backend == "memory":
        repository = InMemoryTicketRepository(snapshot_path=settings.ticket_snapshot_path)
    else:
        engine = create_async_engine(_to_async_dsn(settings.database_url), future=True)
        sql_repository = SqlTicketRepository(async_sessionmaker(engine, expire_on_commit=False), engine=engine)
        repository = sql_repository

    service = TicketService(
        repository,
        id_generator=TicketIdGenerator(settings.ticket_id_prefix),
        strict_transitions=settings.strict_status_transitions,
    )
    try:
        if engine is not None:
            await sql_repository.ensure_schema()
        await service.initialize()
    except Exception:
        if engine is not None:
            await engine.dispose()
        raise
    return service, engine


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app.state.logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)
    app.state.tracer_provider = tracer_provider

    engine: AsyncEngine | None = None
    try:
        app.state.ticket_service, engine = await build_ticket_service(settings)
    except Exception:
        logger.exception("Ticket storage could not be initialised; ticket routes will return 503")
        app.state.ticket_service = None
    try:
        yield
    finally:
        if engine is not None:
            await engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    return app


app = create_app()
