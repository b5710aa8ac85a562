from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from .state import TicketStatus


@dataclass(frozen=True, slots=True)
class Queue:
    """An independently numbered waiting line."""

    id: str
    name: str
    last_number: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Ticket:
    """One party's place in a queue."""

    id: UUID
    queue_id: str
    number: int
    group_size: int
    status: TicketStatus
    created_at: datetime
    updated_at: datetime

    def with_status(self, status: TicketStatus, at: datetime) -> Ticket:
        return replace(self, status=status, updated_at=at)


@dataclass(frozen=True, slots=True)
class TicketPosition:
    """A ticket together with the number of waiting tickets ahead of it."""

    ticket: Ticket
    waiting_ahead: int
