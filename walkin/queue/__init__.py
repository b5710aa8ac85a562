"""Walk-in queue domain models and services."""

from .errors import (
    DuplicateTicketNumberError,
    IllegalTransitionError,
    InvalidGroupSizeError,
    QueueAlreadyExistsError,
    QueueContentionError,
    QueueServiceError,
    TicketNotFoundError,
    UnknownQueueError,
)
from .locks import KeyedLock
from .models import Queue, Ticket, TicketPosition
from .numbering import NumberingAuthority
from .repository import InMemoryTicketRepository, TicketRepository
from .service import TicketService
from .state import TicketStateMachine, TicketStatus

__all__ = [
    "DuplicateTicketNumberError",
    "IllegalTransitionError",
    "InMemoryTicketRepository",
    "InvalidGroupSizeError",
    "KeyedLock",
    "NumberingAuthority",
    "Queue",
    "QueueAlreadyExistsError",
    "QueueContentionError",
    "QueueServiceError",
    "Ticket",
    "TicketNotFoundError",
    "TicketPosition",
    "TicketRepository",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
    "UnknownQueueError",
]
