from __future__ import annotations

from enum import Enum

from .errors import IllegalTransitionError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    WAITING = "waiting"
    CALLED = "called"
    COMPLETED = "completed"


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _TRANSITIONS: dict[TicketStatus, set[TicketStatus]] = {
        TicketStatus.WAITING: {TicketStatus.CALLED},
        TicketStatus.CALLED: {TicketStatus.COMPLETED},
        TicketStatus.COMPLETED: set(),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.WAITING

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if not cls.can_transition(current, new):
            raise IllegalTransitionError(current, new)
