"""Wire settings, storage and observability into a ready ticket service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from walkin.core.config import Settings, get_settings
from walkin.core.logging import configure_logging, init_tracer, shutdown_tracer
from walkin.queue.postgres import PostgresTicketRepository
from walkin.queue.repository import InMemoryTicketRepository, TicketRepository
from walkin.queue.service import TicketService
from walkin.services.postgres import PostgresPoolProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def queue_runtime(settings: Settings | None = None) -> AsyncIterator[TicketService]:
    """Yield a :class:`TicketService` for the configured backend.

    The schema and the default queue are created on entry; the pool and the
    tracer provider are released on exit.
    """

    settings = settings or get_settings()
    configure_logging(settings)
    tracer_provider = init_tracer(settings)

    pool_provider: PostgresPoolProvider | None = None
    try:
        repository: TicketRepository
        if settings.storage_backend == "postgres":
            pool_provider = PostgresPoolProvider(
                dsn=settings.postgres_dsn,
                min_size=settings.postgres_pool_min_size,
                max_size=settings.postgres_pool_max_size,
            )
            await pool_provider.test_connection()
            logger.info("Connected to PostgreSQL (pool %d-%d)", pool_provider.min_size, pool_provider.max_size)
            repository = PostgresTicketRepository(await pool_provider.get_pool())
        else:
            repository = InMemoryTicketRepository()

        service = TicketService(repository, max_retries=settings.max_contention_retries)
        await service.ensure_schema()
        if settings.default_queue_id:
            await service.ensure_queue(settings.default_queue_id, name=settings.default_queue_name)
        logger.info("Queue runtime ready (%s backend, %s)", settings.storage_backend, settings.environment)
        yield service
    finally:
        if pool_provider is not None:
            await pool_provider.close()
        shutdown_tracer(tracer_provider)
