"""
Order state machine for managing order status transitions
"""

from typing import Dict, List, Set

from goalmania.core.exceptions import InvalidTransitionException
from goalmania.models.order import OrderStatus


class OrderStateMachine:
    """
    Valid order status transitions

    ``refunded`` is a flag on the order, not a status, so it does not
    appear here.
    """

    def __init__(self):
        self.transitions: Dict[OrderStatus, Set[OrderStatus]] = {
            OrderStatus.PENDING: {
                OrderStatus.PAID,
                OrderStatus.PROCESSING,
                OrderStatus.CANCELLED
            },
            OrderStatus.PAID: {
                OrderStatus.PROCESSING,
                OrderStatus.SHIPPED
            },
            OrderStatus.PROCESSING: {
                OrderStatus.SHIPPED,
                OrderStatus.CANCELLED
            },
            OrderStatus.SHIPPED: {
                OrderStatus.DELIVERED
            },
            OrderStatus.DELIVERED: set(),
            OrderStatus.CANCELLED: set()
        }

    def can_transition(
        self,
        current_status: OrderStatus,
        new_status: OrderStatus
    ) -> bool:
        """
        Check if transition is valid

        Args:
            current_status: Current order status
            new_status: Desired new status

        Returns:
            True if transition is allowed
        """
        valid_transitions = self.transitions.get(OrderStatus(current_status), set())
        return OrderStatus(new_status) in valid_transitions

    def ensure_transition(self, current_status: OrderStatus, new_status: OrderStatus) -> None:
        """Raise InvalidTransitionException unless the transition is allowed"""
        if not self.can_transition(current_status, new_status):
            raise InvalidTransitionException(OrderStatus(current_status).value, OrderStatus(new_status).value)

    def get_valid_transitions(
        self,
        current_status: OrderStatus
    ) -> List[OrderStatus]:
        return sorted(self.transitions.get(OrderStatus(current_status), set()), key=lambda s: s.value)

    def is_terminal_state(self, status: OrderStatus) -> bool:
        return len(self.transitions.get(OrderStatus(status), set())) == 0

    def is_cancellable(self, status: OrderStatus) -> bool:
        """Only pending and processing orders can be cancelled"""
        return OrderStatus.CANCELLED in self.transitions.get(OrderStatus(status), set())
