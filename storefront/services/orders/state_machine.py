"""Order state machine with transition validation and side effects.

The transition table lives in ``enums``; the aggregate enforces it in
``Order.transition_to``. This class adds the side effects that accompany
some transitions and the logging around them.
"""

from datetime import datetime
from typing import Callable, Dict, Optional, Set

from storefront.core.logging import get_logger
from storefront.database.models.order import Order, OrderStatusHistory
from storefront.services.orders.enums import (
    OrderStatus,
    PaymentStatus,
    get_allowed_order_transitions,
)
from storefront.services.orders.errors import InvalidTransitionError

logger = get_logger(__name__)


class OrderStateMachine:
    """Applies status transitions to orders.

    Side effects run after the status and history have been updated and
    within the same unit of work, so they are persisted together.
    """

    def __init__(self) -> None:
        self._side_effects: Dict[OrderStatus, Callable[[Order], None]] = {
            OrderStatus.REFUNDED: self._effect_refunded,
        }

    def get_allowed_transitions(self, order: Order) -> Set[OrderStatus]:
        return get_allowed_order_transitions(order.status)

    def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        note: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> OrderStatusHistory:
        """Transition ``order`` and run side effects for the target status.

        Args:
            order: Order to transition
            target_status: Desired status
            note: Optional history note
            at: Optional transition timestamp

        Returns:
            The history entry appended by the transition

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        current_status = order.status
        try:
            entry = order.transition_to(target_status, note=note, at=at)
        except InvalidTransitionError:
            logger.warning(
                "Rejected order status transition",
                order_id=str(order.id),
                transition=f"{current_status.value}->{target_status.value}",
                allowed=sorted(s.value for s in self.get_allowed_transitions(order)),
            )
            raise

        side_effect = self._side_effects.get(target_status)
        if side_effect is not None:
            side_effect(order)

        logger.info(
            "State transition applied",
            order_id=str(order.id),
            transition=f"{current_status.value}->{target_status.value}",
        )
        return entry

    def _effect_refunded(self, order: Order) -> None:
        """A refunded order's captured payment is marked refunded."""
        if order.payment_status == PaymentStatus.PAID:
            order.update_payment(PaymentStatus.REFUNDED)


def get_order_state_machine() -> OrderStateMachine:
    return OrderStateMachine()
