from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

import asyncpg
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from walkin.db.models import QueueTable, TicketTable

from .errors import DuplicateTicketNumberError, UnknownQueueError
from .models import Queue, Ticket
from .state import TicketStatus

logger = logging.getLogger(__name__)

_TICKET_COLUMNS = "id, queue_id, number, group_size, status, created_at, updated_at"


def schema_statements() -> list[str]:
    """Compile idempotent DDL for the queue tables from their SQLModel metadata."""

    dialect = postgresql.dialect()
    statements: list[str] = []
    for table in (QueueTable.__table__, TicketTable.__table__):
        statements.append(str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)))
        for index in sorted(table.indexes, key=lambda item: item.name or ""):
            statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)))
    return statements


class PostgresTicketRepository:
    """asyncpg-backed repository. Conditional updates make it safe across processes."""

    _INSERT_QUEUE_SQL = """
    INSERT INTO queues (id, name, last_number, created_at)
    VALUES ($1, $2, 0, $3)
    ON CONFLICT (id) DO NOTHING
    RETURNING id, name, last_number, created_at
    """

    _SELECT_QUEUE_SQL = """
    SELECT id, name, last_number, created_at
    FROM queues
    WHERE id = $1
    """

    _LIST_QUEUES_SQL = """
    SELECT id, name, last_number, created_at
    FROM queues
    ORDER BY created_at ASC
    """

    _SELECT_COUNTER_SQL = """
    SELECT last_number FROM queues WHERE id = $1
    """

    _SELECT_HIGHEST_NUMBER_SQL = """
    SELECT COALESCE(MAX(number), 0) FROM tickets WHERE queue_id = $1
    """

    _ADVANCE_COUNTER_SQL = """
    UPDATE queues
    SET last_number = $3
    WHERE id = $1 AND last_number = $2
    """

    _INSERT_TICKET_SQL = f"""
    INSERT INTO tickets ({_TICKET_COLUMNS})
    VALUES ($1, $2, $3, $4, $5, $6, $7)
    RETURNING {_TICKET_COLUMNS}
    """

    _SELECT_TICKET_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE id = $1
    """

    _FIRST_WAITING_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE queue_id = $1 AND status = 'waiting'
    ORDER BY number ASC
    LIMIT 1
    """

    _CAS_STATUS_SQL = f"""
    UPDATE tickets
    SET status = $3,
        updated_at = $4
    WHERE id = $1 AND status = $2
    RETURNING {_TICKET_COLUMNS}
    """

    _LIST_TICKETS_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE queue_id = $1 AND status = ANY($2::text[])
    ORDER BY number ASC
    """

    _COUNT_WAITING_BEFORE_SQL = """
    SELECT COUNT(*)
    FROM tickets
    WHERE queue_id = $1 AND status = 'waiting' AND number < $2
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            statements = schema_statements()
            for statement in statements:
                await connection.execute(statement)
        logger.debug("Applied %d schema statements", len(statements))

    async def create_queue(self, *, queue_id: str, name: str, created_at: datetime) -> Queue | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._INSERT_QUEUE_SQL, queue_id, name, created_at)
        return None if row is None else self._row_to_queue(row)

    async def get_queue(self, queue_id: str) -> Queue | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_QUEUE_SQL, queue_id)
        return None if row is None else self._row_to_queue(row)

    async def list_queues(self) -> list[Queue]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._LIST_QUEUES_SQL)
        return [self._row_to_queue(row) for row in rows]

    async def load_counter(self, queue_id: str) -> int | None:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._SELECT_COUNTER_SQL, queue_id)
        return None if value is None else int(value)

    async def highest_number(self, queue_id: str) -> int:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._SELECT_HIGHEST_NUMBER_SQL, queue_id)
        return int(value or 0)

    async def advance_counter(self, queue_id: str, expected: int, new: int) -> bool:
        async with self._pool.acquire() as connection:
            result = await connection.execute(self._ADVANCE_COUNTER_SQL, queue_id, expected, new)
        return _affected_rows(result) == 1

    async def insert_ticket(self, ticket: Ticket) -> Ticket:
        async with self._pool.acquire() as connection:
            try:
                row = await connection.fetchrow(
                    self._INSERT_TICKET_SQL,
                    ticket.id,
                    ticket.queue_id,
                    ticket.number,
                    ticket.group_size,
                    ticket.status.value,
                    ticket.created_at,
                    ticket.updated_at,
                )
            except asyncpg.UniqueViolationError as exc:
                raise DuplicateTicketNumberError(ticket.queue_id, ticket.number) from exc
            except asyncpg.ForeignKeyViolationError as exc:
                raise UnknownQueueError(ticket.queue_id) from exc
        if row is None:
            raise RuntimeError("Failed to insert ticket")
        return self._row_to_ticket(row)

    async def get_ticket(self, ticket_id: UUID) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        return None if row is None else self._row_to_ticket(row)

    async def first_waiting(self, queue_id: str) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._FIRST_WAITING_SQL, queue_id)
        return None if row is None else self._row_to_ticket(row)

    async def compare_and_set_status(
        self,
        ticket_id: UUID,
        *,
        expected: TicketStatus,
        new: TicketStatus,
        at: datetime,
    ) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._CAS_STATUS_SQL, ticket_id, expected.value, new.value, at)
        return None if row is None else self._row_to_ticket(row)

    async def list_tickets(self, queue_id: str, *, statuses: Iterable[TicketStatus]) -> list[Ticket]:
        values = [status.value for status in statuses]
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._LIST_TICKETS_SQL, queue_id, values)
        return [self._row_to_ticket(row) for row in rows]

    async def count_waiting_before(self, queue_id: str, number: int) -> int:
        async with self._pool.acquire() as connection:
            value = await connection.fetchval(self._COUNT_WAITING_BEFORE_SQL, queue_id, number)
        return int(value or 0)

    @staticmethod
    def _row_to_queue(row: Any) -> Queue:
        return Queue(
            id=str(row["id"]),
            name=str(row["name"]),
            last_number=int(row["last_number"]),
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_ticket(row: Any) -> Ticket:
        return Ticket(
            id=_to_uuid(row["id"]),
            queue_id=str(row["queue_id"]),
            number=int(row["number"]),
            group_size=int(row["group_size"]),
            status=TicketStatus(str(row["status"])),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _affected_rows(result: Any) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 1".
    if isinstance(result, str):
        tail = result.strip().rsplit(" ", 1)[-1]
        return int(tail) if tail.isdigit() else 0
    return int(bool(result))


def _to_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))
