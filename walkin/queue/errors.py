from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from .state import TicketStatus


class QueueServiceError(RuntimeError):
    """Base error for queue and ticket operations."""


class UnknownQueueError(QueueServiceError):
    """Raised when an operation references a queue that does not exist."""

    def __init__(self, queue_id: str) -> None:
        super().__init__(f"Queue {queue_id!r} does not exist")
        self.queue_id = queue_id


class QueueAlreadyExistsError(QueueServiceError):
    """Raised when creating a queue whose identifier is already taken."""

    def __init__(self, queue_id: str) -> None:
        super().__init__(f"Queue {queue_id!r} already exists")
        self.queue_id = queue_id


class InvalidGroupSizeError(QueueServiceError, ValueError):
    """Raised when a ticket is requested for a non-positive party size."""

    def __init__(self, group_size: object) -> None:
        super().__init__(f"Group size must be a positive integer, got {group_size!r}")
        self.group_size = group_size


class TicketNotFoundError(QueueServiceError):
    """Raised when a ticket could not be located."""

    def __init__(self, ticket_id: UUID) -> None:
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class IllegalTransitionError(QueueServiceError):
    """Raised when a status change is not allowed from the ticket's current state."""

    def __init__(self, current: "TicketStatus", target: "TicketStatus") -> None:
        super().__init__(f"Cannot transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


class DuplicateTicketNumberError(QueueServiceError):
    """Raised by storage when a (queue, number) pair is already taken."""

    def __init__(self, queue_id: str, number: int) -> None:
        super().__init__(f"Ticket number {number} is already allocated in queue {queue_id!r}")
        self.queue_id = queue_id
        self.number = number


class QueueContentionError(QueueServiceError):
    """Raised when a conditional update keeps losing to concurrent writers."""

    def __init__(self, queue_id: str, attempts: int) -> None:
        super().__init__(f"Gave up on queue {queue_id!r} after {attempts} conflicting updates")
        self.queue_id = queue_id
        self.attempts = attempts
