from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID, uuid4

from opentelemetry import trace

from .errors import (
    IllegalTransitionError,
    InvalidGroupSizeError,
    DuplicateTicketNumberError,
    QueueAlreadyExistsError,
    QueueContentionError,
    TicketNotFoundError,
    UnknownQueueError,
)
from .locks import KeyedLock
from .models import Queue, Ticket, TicketPosition
from .numbering import NumberingAuthority
from .repository import TicketRepository
from .state import TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_ACTIVE_STATUSES = (TicketStatus.WAITING, TicketStatus.CALLED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketService:
    """High level orchestration for the ticket lifecycle.

    Mutations on one queue share the queue's exclusive section with the
    numbering authority, so issuing and calling never interleave within a queue
    while different queues proceed independently.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        numbering: NumberingAuthority | None = None,
        max_retries: int = 32,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self.numbering = numbering or NumberingAuthority(repository, max_retries=max_retries)
        self._locks: KeyedLock = self.numbering.locks
        self._max_retries = max(1, max_retries)
        self._clock = clock

    async def ensure_schema(self) -> None:
        await self.repository.ensure_schema()

    async def create_queue(self, queue_id: str, *, name: str | None = None) -> Queue:
        queue = await self.repository.create_queue(
            queue_id=queue_id,
            name=name or queue_id,
            created_at=self._clock(),
        )
        if queue is None:
            raise QueueAlreadyExistsError(queue_id)
        logger.info("Created queue %s", queue_id)
        return queue

    async def ensure_queue(self, queue_id: str, *, name: str | None = None) -> Queue:
        try:
            return await self.create_queue(queue_id, name=name)
        except QueueAlreadyExistsError:
            return await self.get_queue(queue_id)

    async def get_queue(self, queue_id: str) -> Queue:
        queue = await self.repository.get_queue(queue_id)
        if queue is None:
            raise UnknownQueueError(queue_id)
        return queue

    async def list_queues(self) -> list[Queue]:
        return await self.repository.list_queues()

    async def issue(self, queue_id: str, group_size: int) -> Ticket:
        if isinstance(group_size, bool) or not isinstance(group_size, int) or group_size <= 0:
            raise InvalidGroupSizeError(group_size)

        with tracer.start_as_current_span("walkin.issue") as span:
            span.set_attribute("walkin.queue_id", queue_id)
            ticket = await self._insert_next(queue_id, group_size)
            span.set_attribute("walkin.ticket_number", ticket.number)
        logger.info("Issued ticket #%d in queue %s for %d", ticket.number, queue_id, group_size)
        return ticket

    async def _insert_next(self, queue_id: str, group_size: int) -> Ticket:
        for _ in range(self._max_retries):
            try:
                async with self.numbering.allocate(queue_id) as number:
                    now = self._clock()
                    return await self.repository.insert_ticket(
                        Ticket(
                            id=uuid4(),
                            queue_id=queue_id,
                            number=number,
                            group_size=group_size,
                            status=TicketStateMachine.initial_state(),
                            created_at=now,
                            updated_at=now,
                        )
                    )
            except DuplicateTicketNumberError as exc:
                logger.warning("Number %d of queue %s is already taken; allocating again", exc.number, queue_id)
        raise QueueContentionError(queue_id, self._max_retries)

    async def call_next(self, queue_id: str) -> Ticket | None:
        """Call the waiting ticket with the smallest number, or return ``None``."""

        with tracer.start_as_current_span("walkin.call_next") as span:
            span.set_attribute("walkin.queue_id", queue_id)
            async with self._locks.hold(queue_id):
                await self.get_queue(queue_id)
                for _ in range(self._max_retries):
                    candidate = await self.repository.first_waiting(queue_id)
                    if candidate is None:
                        logger.debug("No waiting tickets in queue %s", queue_id)
                        return None
                    called = await self.repository.compare_and_set_status(
                        candidate.id,
                        expected=TicketStatus.WAITING,
                        new=TicketStatus.CALLED,
                        at=self._clock(),
                    )
                    if called is not None:
                        span.set_attribute("walkin.ticket_number", called.number)
                        logger.info("Called ticket #%d in queue %s", called.number, queue_id)
                        return called
                    logger.debug("Ticket #%d of queue %s was taken concurrently", candidate.number, queue_id)
        raise QueueContentionError(queue_id, self._max_retries)

    async def call(self, ticket_id: UUID) -> Ticket:
        """Call a specific waiting ticket out of order."""

        return await self._transition(ticket_id, TicketStatus.CALLED)

    async def complete(self, ticket_id: UUID) -> Ticket:
        return await self._transition(ticket_id, TicketStatus.COMPLETED)

    async def get(self, ticket_id: UUID) -> Ticket:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    async def list_waiting(self, queue_id: str) -> list[Ticket]:
        await self.get_queue(queue_id)
        return await self.repository.list_tickets(queue_id, statuses=(TicketStatus.WAITING,))

    async def list_active(self, queue_id: str) -> list[Ticket]:
        """Waiting and called tickets, the board counter staff work from."""

        await self.get_queue(queue_id)
        return await self.repository.list_tickets(queue_id, statuses=_ACTIVE_STATUSES)

    async def position(self, ticket_id: UUID) -> TicketPosition:
        ticket = await self.get(ticket_id)
        ahead = await self.repository.count_waiting_before(ticket.queue_id, ticket.number)
        return TicketPosition(ticket=ticket, waiting_ahead=ahead)

    async def _transition(self, ticket_id: UUID, target: TicketStatus) -> Ticket:
        with tracer.start_as_current_span(f"walkin.{target.value}") as span:
            span.set_attribute("walkin.ticket_id", str(ticket_id))
            ticket = await self.get(ticket_id)
            async with self._locks.hold(ticket.queue_id):
                current = await self.get(ticket_id)
                TicketStateMachine.assert_transition(current.status, target)
                updated = await self.repository.compare_and_set_status(
                    ticket_id,
                    expected=current.status,
                    new=target,
                    at=self._clock(),
                )
                if updated is None:
                    # Another process moved the ticket between the read and the update.
                    latest = await self.get(ticket_id)
                    raise IllegalTransitionError(latest.status, target)
        logger.info(
            "Ticket #%d of queue %s is now %s",
            updated.number,
            updated.queue_id,
            updated.status.value,
        )
        return updated
