"""
Order read paths and administrative updates.

Ownership is checked here; whether the caller is allowed to act as an
administrator is decided by the API layer. A missing ``requesting_user_id``
means the caller is trusted.
"""

import math
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.services.orders.enums import OrderStatus, PaymentStatus
from storefront.services.orders.errors import (
    OrderAccessDeniedError,
    OrderNotFoundError,
    OrderValidationError,
)
from storefront.services.orders.repository import digits_only
from storefront.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class OrderStore(Protocol):
    async def get_by_id(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Order]:
        ...

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        ...

    async def list_for_user(
        self, user_id: uuid.UUID, offset: int = 0, limit: int = 10
    ) -> tuple[Sequence[Order], int]:
        ...

    async def list_for_guest(self, email: str, phone: str) -> Sequence[Order]:
        ...

    async def save(self, order: Order) -> Order:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int
    pages: int


@dataclass(frozen=True)
class OrderPage:
    orders: Sequence[Order]
    pagination: Pagination


class OrderQueryService:
    """Fetches orders with access control and applies admin updates."""

    def __init__(
        self,
        orders: OrderStore,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.orders = orders
        self.state_machine = state_machine or OrderStateMachine()

    async def get_by_id(
        self, order_id: uuid.UUID, requesting_user_id: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Fetch an order by id.

        Args:
            order_id: Order identifier
            requesting_user_id: Registered user asking; None for admin access

        Returns:
            The order

        Raises:
            OrderNotFoundError: If no order has this id
            OrderAccessDeniedError: If the order belongs to someone else
        """
        order = await self.orders.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        self._check_access(order, requesting_user_id)
        return order

    async def get_by_order_number(
        self, order_number: str, requesting_user_id: Optional[uuid.UUID] = None
    ) -> Order:
        order = await self.orders.get_by_order_number(order_number)
        if order is None:
            raise OrderNotFoundError(order_number=order_number)
        self._check_access(order, requesting_user_id)
        return order

    @staticmethod
    def _check_access(order: Order, requesting_user_id: Optional[uuid.UUID]) -> None:
        if requesting_user_id is None:
            return
        if order.user_id != requesting_user_id:
            logger.warning(
                "Order access denied",
                order_id=str(order.id),
                requesting_user_id=str(requesting_user_id),
            )
            raise OrderAccessDeniedError(order_id=order.id)

    async def list_for_user(
        self, user_id: uuid.UUID, page: int = 1, page_size: int = 10
    ) -> OrderPage:
        """
        A page of the user's orders, newest first.

        Args:
            user_id: Order owner
            page: 1-based page number
            page_size: Orders per page, at most 100

        Raises:
            OrderValidationError: If page or page_size is out of range
        """
        if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
            raise OrderValidationError(
                "Invalid pagination parameters", page=page, limit=page_size
            )
        orders, total = await self.orders.list_for_user(
            user_id, offset=(page - 1) * page_size, limit=page_size
        )
        return OrderPage(
            orders=orders,
            pagination=Pagination(
                page=page,
                limit=page_size,
                total=total,
                pages=math.ceil(total / page_size) if total else 0,
            ),
        )

    async def list_for_guest(self, email: str, phone: str) -> Sequence[Order]:
        """
        Guest orders matching the email or the phone number, newest first.

        Raises:
            OrderValidationError: If either credential is blank
        """
        email = (email or "").strip().lower()
        phone = (phone or "").strip()
        if not email or not digits_only(phone):
            raise OrderValidationError("Email and phone are required")
        orders = await self.orders.list_for_guest(email, phone)
        logger.info("Guest orders listed", count=len(orders))
        return orders

    async def update_status(
        self, order_id: uuid.UUID, new_status: OrderStatus, note: Optional[str] = None
    ) -> Order:
        """
        Move an order to ``new_status``. Callers must be administrators.

        Raises:
            OrderNotFoundError: If no order has this id
            InvalidTransitionError: If the transition is not allowed
            PersistenceConflictError: If a concurrent update wrote first
        """
        try:
            order = await self._get_locked(order_id)
            self.state_machine.apply_transition(order, new_status, note=note)
            await self.orders.save(order)
            await self.orders.commit()
        except Exception:
            await self.orders.rollback()
            raise
        return order

    async def update_payment(
        self,
        order_id: uuid.UUID,
        status: PaymentStatus,
        transaction_id: Optional[str] = None,
        intent_id: Optional[str] = None,
    ) -> Order:
        """
        Record a payment status reported by a payment provider.

        Raises:
            OrderNotFoundError: If no order has this id
            InvalidTransitionError: If the payment status cannot change this way
            PersistenceConflictError: If a concurrent update wrote first
        """
        try:
            order = await self._get_locked(order_id)
            order.update_payment(status, transaction_id=transaction_id, intent_id=intent_id)
            await self.orders.save(order)
            await self.orders.commit()
        except Exception:
            await self.orders.rollback()
            raise
        return order

    async def _get_locked(self, order_id: uuid.UUID) -> Order:
        # Row lock serializes concurrent admin updates of one order.
        order = await self.orders.get_by_id(order_id, for_update=True)
        if order is None:
            raise OrderNotFoundError(order_id=order_id)
        return order
