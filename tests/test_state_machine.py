"""Order status transitions"""

import pytest

from goalmania.api.v1.orders.state_machine import OrderStateMachine
from goalmania.core.exceptions import InvalidTransitionException
from goalmania.models import OrderStatus

machine = OrderStateMachine()


@pytest.mark.parametrize("current, target", [
    (OrderStatus.PENDING, OrderStatus.PAID),
    (OrderStatus.PAID, OrderStatus.PROCESSING),
    (OrderStatus.PAID, OrderStatus.SHIPPED),
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
])
def test_allowed_transitions(current, target):
    assert machine.can_transition(current, target)


@pytest.mark.parametrize("current, target", [
    (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    (OrderStatus.DELIVERED, OrderStatus.PROCESSING),
    (OrderStatus.CANCELLED, OrderStatus.PENDING),
    (OrderStatus.PAID, OrderStatus.CANCELLED),
])
def test_rejected_transitions(current, target):
    with pytest.raises(InvalidTransitionException):
        machine.ensure_transition(current, target)


def test_terminal_and_cancellable_states():
    assert machine.is_terminal_state(OrderStatus.DELIVERED)
    assert machine.is_terminal_state("cancelled")
    assert machine.is_cancellable(OrderStatus.PENDING)
    assert machine.is_cancellable(OrderStatus.PROCESSING)
    assert not machine.is_cancellable(OrderStatus.SHIPPED)
    assert machine.get_valid_transitions(OrderStatus.PAID) == [OrderStatus.PROCESSING, OrderStatus.SHIPPED]
