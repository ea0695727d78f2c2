"""
Order persistence.

``add_order`` is the single write path for new orders. Inside one
savepoint it decrements stock and redeems the coupon with conditional
updates, then inserts the order. If any condition no longer holds the
savepoint is rolled back and nothing from the attempt remains.
"""

import uuid
from collections import defaultdict
from typing import Optional, Sequence

from sqlalchemy import desc, func, or_, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.coupon import Coupon
from storefront.database.models.order import Order
from storefront.database.models.product import Product
from storefront.services.orders.errors import (
    CouponExhaustedError,
    InsufficientStockError,
    ItemUnavailableError,
    OrderNumberConflictError,
    OrderProcessingError,
    PersistenceConflictError,
)

logger = get_logger(__name__)


def digits_only(value: str) -> str:
    return "".join(ch for ch in value if ch.isdigit())


# SQLSTATEs for deadlock_detected and serialization_failure.
TRANSIENT_CONFLICT_CODES = frozenset({"40P01", "40001"})


def is_transient_conflict(error: DBAPIError) -> bool:
    """True when PostgreSQL aborted the transaction because of a concurrent one."""
    code = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
    return code in TRANSIENT_CONFLICT_CODES


class OrderRepository:
    """
    Repository for order data access operations.

    The repository flushes but never commits on its own; callers decide
    the transaction boundary with ``commit``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_order(self, order: Order) -> Order:
        """
        Persist a new order together with its stock and coupon side effects.

        Args:
            order: Transient order built by ``Order.create``

        Returns:
            The flushed order

        Raises:
            ItemUnavailableError: If a product became inactive or was removed
            InsufficientStockError: If stock no longer covers an item
            CouponExhaustedError: If the coupon reached its usage limit
            OrderNumberConflictError: If the order number is already taken
            PersistenceConflictError: On any other integrity violation
        """
        try:
            async with self.session.begin_nested():
                await self._decrement_stock(order)
                if order.coupon_id is not None:
                    await self._redeem_coupon(order)
                self.session.add(order)
                await self.session.flush()
        except IntegrityError as e:
            message = str(e.orig) if e.orig is not None else str(e)
            if "order_number" in message:
                logger.warning(
                    "Order number collision",
                    order_number=order.order_number,
                )
                raise OrderNumberConflictError(order.order_number) from e
            logger.error(
                "Order insert violated an integrity constraint",
                order_number=order.order_number,
                error=message,
            )
            raise PersistenceConflictError(
                "Order could not be saved due to a conflicting update",
                order_number=order.order_number,
            ) from e
        except DBAPIError as e:
            if not is_transient_conflict(e):
                raise
            logger.warning(
                "Order insert aborted by a concurrent transaction",
                order_number=order.order_number,
                error=str(e.orig),
            )
            raise PersistenceConflictError(
                "Order could not be saved due to a concurrent update",
                order_number=order.order_number,
            ) from e

        logger.info(
            "Order persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(order.items),
        )
        return order

    async def _decrement_stock(self, order: Order) -> None:
        quantities: dict[uuid.UUID, int] = defaultdict(int)
        for item in order.items:
            quantities[item.product_id] += item.quantity

        # Rows are locked in id order so concurrent carts cannot deadlock.
        for product_id, quantity in sorted(quantities.items()):
            result = await self.session.execute(
                update(Product)
                .where(
                    Product.id == product_id,
                    Product.is_active.is_(True),
                    Product.stock >= quantity,
                )
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                continue

            current = await self.session.execute(
                select(Product.stock, Product.is_active).where(Product.id == product_id)
            )
            row = current.one_or_none()
            if row is None or not row.is_active:
                raise ItemUnavailableError(product_id)
            logger.warning(
                "Stock changed between quote and commit",
                product_id=str(product_id),
                requested=quantity,
                available=row.stock,
            )
            raise InsufficientStockError(product_id, quantity, row.stock)

    async def _redeem_coupon(self, order: Order) -> None:
        result = await self.session.execute(
            update(Coupon)
            .where(
                Coupon.id == order.coupon_id,
                Coupon.is_active.is_(True),
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Coupon exhausted between validation and commit",
                coupon_id=str(order.coupon_id),
            )
            raise CouponExhaustedError(order.coupon_code or "")

    async def get_by_id(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Order]:
        """
        Fetch an order by id.

        Args:
            order_id: Order identifier
            for_update: Lock the order row until the transaction ends

        Returns:
            The order, or None
        """
        return await self._fetch_one(
            Order.id == order_id, for_update=for_update, order_id=str(order_id)
        )

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return await self._fetch_one(
            Order.order_number == order_number.strip().upper(),
            order_number=order_number,
        )

    async def _fetch_one(
        self, condition, for_update: bool = False, **log_context
    ) -> Optional[Order]:
        stmt = select(Order).where(condition)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", error=str(e), **log_context)
            raise OrderProcessingError("Failed to fetch order", **log_context) from e

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[Sequence[Order], int]:
        """
        Orders of a registered user, newest first.

        Returns:
            Tuple of (orders on the requested page, total order count)
        """
        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Order).where(Order.user_id == user_id)
            )
            result = await self.session.execute(
                select(Order)
                .where(Order.user_id == user_id)
                .order_by(desc(Order.created_at), desc(Order.order_number))
                .offset(offset)
                .limit(limit)
            )
            return result.scalars().all(), int(total or 0)
        except SQLAlchemyError as e:
            logger.error("Failed to list user orders", user_id=str(user_id), error=str(e))
            raise OrderProcessingError("Failed to list orders", user_id=str(user_id)) from e

    async def list_for_guest(self, email: str, phone: str) -> Sequence[Order]:
        """
        Guest orders matching either the email or the phone number.

        Email is compared case-insensitively, phone by its digits.
        """
        phone_digits = digits_only(phone)
        conditions = [func.lower(Order.guest_email) == email.strip().lower()]
        if phone_digits:
            conditions.append(
                func.regexp_replace(Order.guest_phone, "[^0-9]", "", "g") == phone_digits
            )
        try:
            result = await self.session.execute(
                select(Order)
                .where(Order.is_guest.is_(True), or_(*conditions))
                .order_by(desc(Order.created_at), desc(Order.order_number))
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list guest orders", error=str(e))
            raise OrderProcessingError("Failed to list orders") from e

    async def save(self, order: Order) -> Order:
        """
        Flush pending changes to an existing order.

        Raises:
            PersistenceConflictError: If a concurrent update wrote first
        """
        self.session.add(order)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "Order update conflicted with a concurrent write",
                order_id=str(order.id),
                error=str(e.orig) if e.orig is not None else str(e),
            )
            raise PersistenceConflictError(
                "Order was modified concurrently", order_id=order.id
            ) from e
        except DBAPIError as e:
            if not is_transient_conflict(e):
                raise
            raise PersistenceConflictError(
                "Order was modified concurrently", order_id=order.id
            ) from e
        return order

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
