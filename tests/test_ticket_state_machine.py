import pytest

from walkin.queue.errors import IllegalTransitionError
from walkin.queue.state import TicketStateMachine, TicketStatus


def test_ticket_state_machine_allows_expected_transitions():
    assert TicketStateMachine.initial_state() == TicketStatus.WAITING
    assert TicketStateMachine.can_transition(TicketStatus.WAITING, TicketStatus.CALLED)
    assert TicketStateMachine.can_transition(TicketStatus.CALLED, TicketStatus.COMPLETED)


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (TicketStatus.WAITING, TicketStatus.COMPLETED),
        (TicketStatus.WAITING, TicketStatus.WAITING),
        (TicketStatus.CALLED, TicketStatus.CALLED),
        (TicketStatus.CALLED, TicketStatus.WAITING),
        (TicketStatus.COMPLETED, TicketStatus.WAITING),
        (TicketStatus.COMPLETED, TicketStatus.CALLED),
        (TicketStatus.COMPLETED, TicketStatus.COMPLETED),
    ],
)
def test_ticket_state_machine_blocks_invalid_transitions(current, new):
    assert not TicketStateMachine.can_transition(current, new)
    with pytest.raises(IllegalTransitionError) as excinfo:
        TicketStateMachine.assert_transition(current, new)
    assert excinfo.value.current == current
    assert excinfo.value.target == new
