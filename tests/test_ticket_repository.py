from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import asyncpg
import pytest

from walkin.queue import DuplicateTicketNumberError, Ticket, TicketStatus, UnknownQueueError
from walkin.queue.postgres import PostgresTicketRepository, schema_statements


class DummyAcquire:
    def __init__(self, connection):
        self._connection = connection

    async def __aenter__(self):
        return self._connection

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummyPool:
    def __init__(self, connection):
        self._connection = connection

    def acquire(self):
        return DummyAcquire(self._connection)


def _ticket_row(**overrides):
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid4(),
        "queue_id": "front",
        "number": 7,
        "group_size": 3,
        "status": "waiting",
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


def _ticket() -> Ticket:
    now = datetime.now(timezone.utc)
    return Ticket(
        id=uuid4(),
        queue_id="front",
        number=1,
        group_size=2,
        status=TicketStatus.WAITING,
        created_at=now,
        updated_at=now,
    )


def test_schema_statements_declare_uniqueness_and_waiting_index():
    statements = schema_statements()

    assert len(statements) == 3
    assert "CREATE TABLE IF NOT EXISTS queues" in statements[0]
    assert "CREATE TABLE IF NOT EXISTS tickets" in statements[1]
    assert "uq_tickets_queue_number" in statements[1]
    assert "REFERENCES queues (id)" in statements[1]
    assert "IF NOT EXISTS ix_tickets_waiting_by_number" in statements[2]
    assert "status = 'waiting'" in statements[2]


@pytest.mark.asyncio
async def test_ensure_schema_creates_tables():
    connection = AsyncMock()
    repository = PostgresTicketRepository(DummyPool(connection))

    await repository.ensure_schema()

    assert connection.execute.await_count == 3
    executed = [call.args[0] for call in connection.execute.await_args_list]
    assert any("CREATE TABLE IF NOT EXISTS tickets" in stmt for stmt in executed)


@pytest.mark.asyncio
@pytest.mark.parametrize(("tag", "expected"), [("UPDATE 1", True), ("UPDATE 0", False)])
async def test_advance_counter_reports_conditional_update(tag, expected):
    connection = AsyncMock()
    connection.execute = AsyncMock(return_value=tag)
    repository = PostgresTicketRepository(DummyPool(connection))

    assert await repository.advance_counter("front", 4, 5) is expected
    args = connection.execute.await_args.args
    assert "WHERE id = $1 AND last_number = $2" in args[0]
    assert args[1:] == ("front", 4, 5)


@pytest.mark.asyncio
async def test_load_counter_returns_none_for_missing_queue():
    connection = AsyncMock()
    connection.fetchval = AsyncMock(return_value=None)
    repository = PostgresTicketRepository(DummyPool(connection))

    assert await repository.load_counter("missing") is None


@pytest.mark.asyncio
async def test_insert_ticket_maps_unique_violation():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(side_effect=asyncpg.UniqueViolationError("duplicate key"))
    repository = PostgresTicketRepository(DummyPool(connection))

    with pytest.raises(DuplicateTicketNumberError):
        await repository.insert_ticket(_ticket())


@pytest.mark.asyncio
async def test_insert_ticket_maps_missing_queue():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(side_effect=asyncpg.ForeignKeyViolationError("no queue"))
    repository = PostgresTicketRepository(DummyPool(connection))

    with pytest.raises(UnknownQueueError):
        await repository.insert_ticket(_ticket())


@pytest.mark.asyncio
async def test_compare_and_set_status_returns_updated_ticket():
    row = _ticket_row(status="called")
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=row)
    repository = PostgresTicketRepository(DummyPool(connection))
    at = datetime.now(timezone.utc)

    updated = await repository.compare_and_set_status(
        row["id"], expected=TicketStatus.WAITING, new=TicketStatus.CALLED, at=at
    )

    assert updated is not None
    assert updated.status == TicketStatus.CALLED
    assert updated.number == 7
    args = connection.fetchrow.await_args.args
    assert args[1:] == (row["id"], "waiting", "called", at)


@pytest.mark.asyncio
async def test_compare_and_set_status_returns_none_when_status_moved():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=None)
    repository = PostgresTicketRepository(DummyPool(connection))

    result = await repository.compare_and_set_status(
        uuid4(), expected=TicketStatus.CALLED, new=TicketStatus.COMPLETED, at=datetime.now(timezone.utc)
    )

    assert result is None


@pytest.mark.asyncio
async def test_list_tickets_passes_status_values():
    connection = AsyncMock()
    connection.fetch = AsyncMock(return_value=[_ticket_row(number=1), _ticket_row(number=2)])
    repository = PostgresTicketRepository(DummyPool(connection))

    tickets = await repository.list_tickets("front", statuses=(TicketStatus.WAITING, TicketStatus.CALLED))

    assert [ticket.number for ticket in tickets] == [1, 2]
    args = connection.fetch.await_args.args
    assert "ORDER BY number ASC" in args[0]
    assert args[1:] == ("front", ["waiting", "called"])


@pytest.mark.asyncio
async def test_row_mapping_accepts_string_ids():
    ticket_id = uuid4()
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=_ticket_row(id=str(ticket_id)))
    repository = PostgresTicketRepository(DummyPool(connection))

    ticket = await repository.get_ticket(ticket_id)

    assert ticket is not None
    assert ticket.id == ticket_id
    assert ticket.status == TicketStatus.WAITING


@pytest.mark.asyncio
async def test_create_queue_returns_none_on_conflict():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=None)
    repository = PostgresTicketRepository(DummyPool(connection))

    assert await repository.create_queue(queue_id="front", name="Front", created_at=datetime.now(timezone.utc)) is None
