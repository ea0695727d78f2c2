"""
Checkout orchestration.

Both entry points run the same pipeline: price the line items, apply an
optional coupon, compute totals, build the order and persist it together
with its stock and coupon side effects in one transaction. Every check
happens before the commit, so a failed checkout leaves nothing behind.
After the commit the notification emails are enqueued as background tasks;
what happens to them afterwards does not affect the checkout result.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError

from storefront.core.logging import get_logger, log_performance
from storefront.core.money import ZERO
from storefront.database.base import utcnow
from storefront.database.models.order import GuestContact, Order
from storefront.database.models.user import UserAddress
from storefront.services.coupons.validator import AppliedCoupon, CouponValidator
from storefront.services.customers.repository import CustomerContact
from storefront.services.notifications.service import OrderNotification
from storefront.services.orders.enums import PaymentProvider
from storefront.services.orders.errors import (
    AddressNotFoundError,
    CustomerNotFoundError,
    OrderNumberConflictError,
    OrderProcessingError,
    OrderServiceError,
    PersistenceConflictError,
)
from storefront.services.orders.order_number import generate_order_number
from storefront.services.orders.pricing import LineItem, PricingEngine

logger = get_logger(__name__)


class OrderWriter(Protocol):
    async def add_order(self, order: Order) -> Order:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


class CustomerDirectory(Protocol):
    async def get_address(
        self, user_id: uuid.UUID, address_id: uuid.UUID
    ) -> Optional[UserAddress]:
        ...

    async def get_contact(self, user_id: uuid.UUID) -> Optional[CustomerContact]:
        ...


class NotificationQueue(Protocol):
    def dispatch(self, notification: OrderNotification) -> bool:
        ...


@dataclass(frozen=True)
class CheckoutResult:
    order_id: uuid.UUID
    order_number: str
    order: Order


class CheckoutService:
    """
    Places orders for guests and registered users.

    Attributes:
        pricing: Pricing engine
        coupons: Coupon validator
        orders: Order persistence
        customers: Address book and contact lookups
        notifications: Post-commit notification queue
        max_order_number_attempts: Order numbers tried before giving up
    """

    def __init__(
        self,
        pricing: PricingEngine,
        coupons: CouponValidator,
        orders: OrderWriter,
        customers: CustomerDirectory,
        notifications: Optional[NotificationQueue] = None,
        max_order_number_attempts: int = 5,
        order_number_factory: Callable[[datetime], str] = generate_order_number,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.pricing = pricing
        self.coupons = coupons
        self.orders = orders
        self.customers = customers
        self.notifications = notifications
        self.max_order_number_attempts = max(1, max_order_number_attempts)
        self.order_number_factory = order_number_factory
        self.clock = clock

    async def checkout_as_guest(
        self,
        contact: GuestContact,
        address: dict[str, Any],
        items: Sequence[LineItem],
        coupon_code: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Place a cash-on-delivery order for a customer without an account.

        Args:
            contact: Guest name, email and phone
            address: Shipping address fields
            items: Requested line items
            coupon_code: Optional coupon code
            notes: Optional customer notes

        Returns:
            CheckoutResult for the committed order

        Raises:
            OrderServiceError: Any pricing, coupon or persistence failure
        """
        contact = GuestContact(
            name=contact.name.strip(),
            email=contact.email.strip().lower(),
            phone=contact.phone.strip(),
        )
        with log_performance(logger, "checkout_as_guest", item_count=len(items)):
            order = await self._place_order(
                items=items,
                address=address,
                payment_provider=PaymentProvider.COD,
                guest=contact,
                coupon_code=coupon_code,
                notes=notes,
            )

        self._notify(order, contact.name, contact.email, contact.phone)
        return CheckoutResult(order_id=order.id, order_number=order.order_number, order=order)

    async def checkout_as_user(
        self,
        user_id: uuid.UUID,
        address_id: uuid.UUID,
        items: Sequence[LineItem],
        payment_provider: PaymentProvider,
        coupon_code: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Place an order for a registered user.

        The shipping address is copied from the user's address book.

        Args:
            user_id: Ordering user
            address_id: Saved address to ship to
            items: Requested line items
            payment_provider: Payment provider chosen by the user
            coupon_code: Optional coupon code
            notes: Optional customer notes

        Returns:
            CheckoutResult for the committed order

        Raises:
            CustomerNotFoundError: If the user does not exist or is inactive
            AddressNotFoundError: If the address is not in the user's book
            OrderServiceError: Any pricing, coupon or persistence failure
        """
        contact = await self.customers.get_contact(user_id)
        if contact is None:
            raise CustomerNotFoundError(user_id)
        saved_address = await self.customers.get_address(user_id, address_id)
        if saved_address is None:
            raise AddressNotFoundError(address_id, user_id=user_id)

        with log_performance(
            logger, "checkout_as_user", user_id=str(user_id), item_count=len(items)
        ):
            order = await self._place_order(
                items=items,
                address=saved_address.to_snapshot(),
                payment_provider=payment_provider,
                user_id=user_id,
                coupon_code=coupon_code,
                notes=notes,
            )

        self._notify(order, contact.name, contact.email, contact.phone)
        return CheckoutResult(order_id=order.id, order_number=order.order_number, order=order)

    async def _place_order(
        self,
        *,
        items: Sequence[LineItem],
        address: dict[str, Any],
        payment_provider: PaymentProvider,
        user_id: Optional[uuid.UUID] = None,
        guest: Optional[GuestContact] = None,
        coupon_code: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        cart = await self.pricing.price_line_items(items)

        applied: Optional[AppliedCoupon] = None
        if coupon_code and coupon_code.strip():
            applied = await self.coupons.apply_coupon(coupon_code, cart.subtotal)

        totals = self.pricing.price_order(
            cart.subtotal, applied.discount_amount if applied else ZERO
        )

        try:
            order = await self._persist_with_unique_number(
                build=lambda number, now: Order.create(
                    items=[quoted.to_order_item() for quoted in cart.items],
                    subtotal=totals.subtotal,
                    discount_total=totals.discount_total,
                    shipping_fee=totals.shipping_fee,
                    grand_total=totals.grand_total,
                    currency=cart.currency,
                    address=address,
                    payment_provider=payment_provider,
                    user_id=user_id,
                    guest=guest,
                    notes=notes,
                    coupon_id=applied.coupon_id if applied else None,
                    coupon_code=applied.code if applied else None,
                    order_number=number,
                    now=now,
                )
            )
            await self.orders.commit()
        except OrderServiceError:
            await self.orders.rollback()
            raise
        except SQLAlchemyError as e:
            await self.orders.rollback()
            logger.error("Checkout failed with database error", error=str(e))
            raise OrderProcessingError("Order could not be saved") from e

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            is_guest=order.is_guest,
            grand_total=str(order.grand_total),
            currency=order.currency.value,
            coupon_code=order.coupon_code,
        )
        return order

    async def _persist_with_unique_number(
        self, build: Callable[[str, datetime], Order]
    ) -> Order:
        """Insert an order, drawing a fresh order number on each collision."""
        for attempt in range(1, self.max_order_number_attempts + 1):
            now = self.clock()
            order = build(self.order_number_factory(now), now)
            try:
                return await self.orders.add_order(order)
            except OrderNumberConflictError as e:
                logger.warning(
                    "Order number taken, regenerating",
                    order_number=e.order_number,
                    attempt=attempt,
                    max_attempts=self.max_order_number_attempts,
                )

        raise PersistenceConflictError(
            "Could not allocate a unique order number",
            attempts=self.max_order_number_attempts,
        )

    def _notify(
        self, order: Order, name: str, email: str, phone: Optional[str]
    ) -> None:
        if self.notifications is None:
            return
        try:
            notification = OrderNotification.from_order(order, name, email, phone)
            self.notifications.dispatch(notification)
        except Exception as e:
            logger.error(
                "Failed to enqueue order notification",
                order_number=order.order_number,
                error=str(e),
                error_type=type(e).__name__,
            )
