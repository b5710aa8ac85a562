from datetime import datetime, timezone

import pytest
import pytest_asyncio

from walkin.queue import InMemoryTicketRepository, TicketService


@pytest_asyncio.fixture
async def repository():
    repo = InMemoryTicketRepository()
    await repo.create_queue(queue_id="front", name="Front desk", created_at=datetime.now(timezone.utc))
    await repo.create_queue(queue_id="back", name="Back room", created_at=datetime.now(timezone.utc))
    return repo


@pytest.fixture
def service(repository):
    return TicketService(repository)
