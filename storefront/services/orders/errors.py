"""
Exceptions raised by the order pipeline.

Every error carries an ``http_status`` so the API layer can render it
without knowing each subclass, plus free-form ``context`` for logging.
"""

from decimal import Decimal
from typing import Any


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    http_status: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def details(self) -> dict[str, Any]:
        """Client-safe error details (JSON serializable)."""
        return {
            key: str(value) if not isinstance(value, (int, bool, type(None))) else value
            for key, value in self.context.items()
        }


class OrderValidationError(OrderServiceError):
    """Malformed or missing checkout input."""

    http_status = 400


class EmptyOrderError(OrderValidationError):
    def __init__(self, **context: Any):
        super().__init__("Order must contain at least one item", **context)


class CurrencyMismatchError(OrderValidationError):
    """Cart mixes products priced in different currencies."""


class AddressNotFoundError(OrderValidationError):
    def __init__(self, address_id: Any, **context: Any):
        super().__init__("Shipping address not found", address_id=address_id, **context)


class CustomerNotFoundError(OrderValidationError):
    def __init__(self, user_id: Any, **context: Any):
        super().__init__("Customer account not found", user_id=user_id, **context)


class ItemUnavailableError(OrderServiceError):
    """Product is missing or inactive."""

    http_status = 400

    def __init__(self, product_id: Any, **context: Any):
        super().__init__(
            f"Product {product_id} is not available",
            product_id=product_id,
            **context,
        )
        self.product_id = product_id


class InsufficientStockError(OrderServiceError):
    """Requested quantity exceeds available stock."""

    http_status = 400

    def __init__(self, product_id: Any, requested: int, available: int, **context: Any):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}",
            product_id=product_id,
            requested=requested,
            available=available,
            **context,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class CouponError(OrderServiceError):
    """Base class for coupons that cannot be applied."""

    http_status = 400


class CouponNotFoundError(CouponError):
    def __init__(self, code: str, **context: Any):
        super().__init__("Coupon not found", code=code, **context)


class CouponExpiredError(CouponError):
    def __init__(self, code: str, **context: Any):
        super().__init__("Coupon is not valid at this time", code=code, **context)


class CouponExhaustedError(CouponError):
    def __init__(self, code: str, **context: Any):
        super().__init__("Coupon usage limit reached", code=code, **context)


class MinSubtotalNotMetError(CouponError):
    def __init__(self, code: str, required: Decimal, **context: Any):
        super().__init__(
            f"Minimum order subtotal of {required} required for this coupon",
            code=code,
            required=required,
            **context,
        )
        self.required = required


class InvalidTransitionError(OrderServiceError):
    """Requested status change is not allowed from the current status."""

    http_status = 400

    def __init__(self, current: Any, target: Any, **context: Any):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Cannot transition order from {current_value} to {target_value}",
            current_status=current_value,
            target_status=target_value,
            **context,
        )
        self.current = current
        self.target = target


class OrderAccessDeniedError(OrderServiceError):
    http_status = 403

    def __init__(self, **context: Any):
        super().__init__("Access denied", **context)


class OrderNotFoundError(OrderServiceError):
    http_status = 404

    def __init__(self, **context: Any):
        super().__init__("Order not found", **context)


class PersistenceConflictError(OrderServiceError):
    """Unique constraint or concurrent update conflict while saving."""

    http_status = 409


class OrderNumberConflictError(PersistenceConflictError):
    """Generated order number already exists. Retried internally."""

    def __init__(self, order_number: str, **context: Any):
        super().__init__(
            "Order number already exists",
            order_number=order_number,
            **context,
        )
        self.order_number = order_number


class OrderProcessingError(OrderServiceError):
    """Unexpected failure while processing an order."""

    http_status = 500
