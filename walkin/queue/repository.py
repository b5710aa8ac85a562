from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Protocol
from uuid import UUID

from .errors import DuplicateTicketNumberError, UnknownQueueError
from .models import Queue, Ticket
from .state import TicketStatus


class TicketRepository(Protocol):
    """Storage contract for queues and their tickets.

    Every mutating method is atomic on its own. ``advance_counter`` and
    ``compare_and_set_status`` are conditional updates: they only apply when the
    stored value still matches ``expected`` and report whether they did.
    """

    async def ensure_schema(self) -> None:
        ...

    async def create_queue(self, *, queue_id: str, name: str, created_at: datetime) -> Queue | None:
        ...

    async def get_queue(self, queue_id: str) -> Queue | None:
        ...

    async def list_queues(self) -> list[Queue]:
        ...

    async def load_counter(self, queue_id: str) -> int | None:
        ...

    async def highest_number(self, queue_id: str) -> int:
        ...

    async def advance_counter(self, queue_id: str, expected: int, new: int) -> bool:
        ...

    async def insert_ticket(self, ticket: Ticket) -> Ticket:
        ...

    async def get_ticket(self, ticket_id: UUID) -> Ticket | None:
        ...

    async def first_waiting(self, queue_id: str) -> Ticket | None:
        ...

    async def compare_and_set_status(
        self,
        ticket_id: UUID,
        *,
        expected: TicketStatus,
        new: TicketStatus,
        at: datetime,
    ) -> Ticket | None:
        ...

    async def list_tickets(self, queue_id: str, *, statuses: Iterable[TicketStatus]) -> list[Ticket]:
        ...

    async def count_waiting_before(self, queue_id: str, number: int) -> int:
        ...


class InMemoryTicketRepository:
    """Process-local repository keeping queues and tickets in dictionaries.

    None of the methods await between reading and writing state, so each one is
    atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._queues: dict[str, Queue] = {}
        self._tickets: dict[UUID, Ticket] = {}
        self._numbers: dict[tuple[str, int], UUID] = {}

    async def ensure_schema(self) -> None:
        return None

    async def create_queue(self, *, queue_id: str, name: str, created_at: datetime) -> Queue | None:
        if queue_id in self._queues:
            return None
        queue = Queue(id=queue_id, name=name, last_number=0, created_at=created_at)
        self._queues[queue_id] = queue
        return queue

    async def get_queue(self, queue_id: str) -> Queue | None:
        return self._queues.get(queue_id)

    async def list_queues(self) -> list[Queue]:
        return sorted(self._queues.values(), key=lambda queue: queue.created_at)

    async def load_counter(self, queue_id: str) -> int | None:
        queue = self._queues.get(queue_id)
        return None if queue is None else queue.last_number

    async def highest_number(self, queue_id: str) -> int:
        return max((number for (owner, number) in self._numbers if owner == queue_id), default=0)

    async def advance_counter(self, queue_id: str, expected: int, new: int) -> bool:
        queue = self._queues.get(queue_id)
        if queue is None or queue.last_number != expected:
            return False
        self._queues[queue_id] = replace(queue, last_number=new)
        return True

    async def insert_ticket(self, ticket: Ticket) -> Ticket:
        if ticket.queue_id not in self._queues:
            raise UnknownQueueError(ticket.queue_id)
        key = (ticket.queue_id, ticket.number)
        if key in self._numbers:
            raise DuplicateTicketNumberError(ticket.queue_id, ticket.number)
        self._tickets[ticket.id] = ticket
        self._numbers[key] = ticket.id
        return ticket

    async def get_ticket(self, ticket_id: UUID) -> Ticket | None:
        return self._tickets.get(ticket_id)

    async def first_waiting(self, queue_id: str) -> Ticket | None:
        waiting = self._select(queue_id, {TicketStatus.WAITING})
        return waiting[0] if waiting else None

    async def compare_and_set_status(
        self,
        ticket_id: UUID,
        *,
        expected: TicketStatus,
        new: TicketStatus,
        at: datetime,
    ) -> Ticket | None:
        ticket = self._tickets.get(ticket_id)
        if ticket is None or ticket.status != expected:
            return None
        updated = ticket.with_status(new, at)
        self._tickets[ticket_id] = updated
        return updated

    async def list_tickets(self, queue_id: str, *, statuses: Iterable[TicketStatus]) -> list[Ticket]:
        return self._select(queue_id, set(statuses))

    async def count_waiting_before(self, queue_id: str, number: int) -> int:
        return sum(1 for ticket in self._select(queue_id, {TicketStatus.WAITING}) if ticket.number < number)

    def _select(self, queue_id: str, statuses: set[TicketStatus]) -> list[Ticket]:
        tickets = [
            ticket
            for ticket in self._tickets.values()
            if ticket.queue_id == queue_id and ticket.status in statuses
        ]
        tickets.sort(key=lambda ticket: ticket.number)
        return tickets
