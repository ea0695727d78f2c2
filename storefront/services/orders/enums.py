"""Order, payment and address enums with the status transition tables.

Order lifecycle:
- PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED, moving forward
  only; intermediate steps may be skipped.
- CANCELLED and REFUNDED are reachable from every non-terminal state.
- DELIVERED, CANCELLED and REFUNDED are terminal.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentProvider(str, Enum):
    """Payment provider chosen at checkout."""

    STRIPE = "stripe"
    SSLCOMMERZ = "sslcommerz"
    COD = "cod"


class PaymentStatus(str, Enum):
    """Payment status.

    Valid transitions:
    - PENDING -> PAID, FAILED
    - PAID -> REFUNDED
    - FAILED, REFUNDED -> (terminal state)
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Currency(str, Enum):
    """Supported order currencies. USD is primary, BDT secondary."""

    USD = "USD"
    BDT = "BDT"


class AddressKind(str, Enum):
    HOME = "home"
    OFFICE = "office"
    OTHER = "other"


# Happy path, in order. Position defines "forward".
FULFILLMENT_PATH: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

TERMINAL_ORDER_STATUSES: frozenset = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)


def _build_order_transitions() -> Dict[OrderStatus, Set[OrderStatus]]:
    transitions: Dict[OrderStatus, Set[OrderStatus]] = {}
    for index, status in enumerate(FULFILLMENT_PATH):
        if status in TERMINAL_ORDER_STATUSES:
            transitions[status] = set()
            continue
        transitions[status] = set(FULFILLMENT_PATH[index + 1:]) | {
            OrderStatus.CANCELLED,
            OrderStatus.REFUNDED,
        }
    transitions[OrderStatus.CANCELLED] = set()
    transitions[OrderStatus.REFUNDED] = set()
    return transitions


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = _build_order_transitions()

PAYMENT_STATUS_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}


def validate_order_status_transition(
    current: OrderStatus, target: OrderStatus
) -> bool:
    """Check whether an order may move from ``current`` to ``target``.

    Args:
        current: Current order status
        target: Requested order status

    Returns:
        True if the transition is allowed
    """
    return target in ORDER_STATUS_TRANSITIONS.get(current, set())


def validate_payment_status_transition(
    current: PaymentStatus, target: PaymentStatus
) -> bool:
    return target in PAYMENT_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Statuses reachable from ``current`` in one transition."""
    return set(ORDER_STATUS_TRANSITIONS.get(current, set()))
