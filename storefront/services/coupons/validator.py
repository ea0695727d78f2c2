"""
Coupon validation and discount calculation.

Validation is read-only. A coupon's ``used_count`` changes only when an
order using it is persisted, inside the same transaction as the order.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Protocol

from storefront.core.logging import get_logger
from storefront.core.money import ZERO, to_money
from storefront.database.base import utcnow
from storefront.database.models.coupon import Coupon, DiscountKind, normalize_code
from storefront.services.orders.errors import (
    CouponExhaustedError,
    CouponExpiredError,
    CouponNotFoundError,
    MinSubtotalNotMetError,
)

logger = get_logger(__name__)

HUNDRED = Decimal("100")


class CouponLookup(Protocol):
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        ...


@dataclass(frozen=True)
class AppliedCoupon:
    """A coupon that passed validation and the discount it grants."""

    coupon_id: uuid.UUID
    code: str
    discount_amount: Decimal


def calculate_discount(
    kind: DiscountKind,
    value: Decimal,
    subtotal: Decimal,
    max_discount: Optional[Decimal] = None,
) -> Decimal:
    """
    Discount granted on ``subtotal``.

    Flat coupons grant ``min(value, subtotal)``. Percent coupons grant
    ``subtotal * value / 100``, capped at ``max_discount`` when set. The
    result never exceeds the subtotal and is never negative.

    Args:
        kind: Discount kind
        value: Flat amount or percentage
        subtotal: Order subtotal
        max_discount: Optional cap for percent coupons

    Returns:
        Discount amount rounded to cents
    """
    subtotal = to_money(subtotal)
    if kind is DiscountKind.FLAT:
        discount = to_money(value)
    else:
        discount = to_money(subtotal * Decimal(value) / HUNDRED)
        if max_discount is not None:
            discount = min(discount, to_money(max_discount))
    return max(min(discount, subtotal), ZERO)


class CouponValidator:
    """
    Checks a coupon code against a subtotal.

    Attributes:
        coupons: Coupon lookup port
        clock: Callable returning the current aware datetime
    """

    def __init__(
        self,
        coupons: CouponLookup,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.coupons = coupons
        self.clock = clock

    async def apply_coupon(self, code: str, subtotal: Decimal) -> AppliedCoupon:
        """
        Validate ``code`` for an order with ``subtotal`` and compute its discount.

        Args:
            code: Coupon code, any case
            subtotal: Order subtotal

        Returns:
            AppliedCoupon with the discount amount

        Raises:
            CouponNotFoundError: If no active coupon has this code
            CouponExpiredError: If now is outside the validity window
            CouponExhaustedError: If the usage limit has been reached
            MinSubtotalNotMetError: If the subtotal is below the minimum
        """
        normalized = normalize_code(code or "")
        coupon = await self.coupons.get_by_code(normalized) if normalized else None

        if coupon is None or not coupon.is_active:
            logger.warning("Coupon rejected", code=normalized, reason="not_found")
            raise CouponNotFoundError(normalized)

        now = self.clock()
        if not coupon.is_within_validity(now):
            logger.warning(
                "Coupon rejected",
                code=normalized,
                reason="expired",
                valid_from=coupon.valid_from.isoformat(),
                valid_until=coupon.valid_until.isoformat(),
            )
            raise CouponExpiredError(normalized)

        if coupon.is_exhausted:
            logger.warning(
                "Coupon rejected",
                code=normalized,
                reason="exhausted",
                used_count=coupon.used_count,
                usage_limit=coupon.usage_limit,
            )
            raise CouponExhaustedError(normalized)

        subtotal = to_money(subtotal)
        if coupon.min_subtotal is not None and subtotal < coupon.min_subtotal:
            logger.warning(
                "Coupon rejected",
                code=normalized,
                reason="min_subtotal",
                subtotal=str(subtotal),
                required=str(coupon.min_subtotal),
            )
            raise MinSubtotalNotMetError(normalized, to_money(coupon.min_subtotal))

        discount = calculate_discount(
            coupon.discount_kind, coupon.value, subtotal, coupon.max_discount
        )
        logger.info(
            "Coupon applied",
            code=normalized,
            coupon_id=str(coupon.id),
            discount=str(discount),
        )
        return AppliedCoupon(coupon_id=coupon.id, code=coupon.code, discount_amount=discount)
