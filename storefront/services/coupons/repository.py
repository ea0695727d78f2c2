"""Coupon lookups."""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.coupon import Coupon, normalize_code

logger = get_logger(__name__)


class CouponRepository:
    """Read access to coupons. Redemption happens in ``OrderRepository``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        """
        Find a coupon by code, ignoring case and surrounding whitespace.

        Args:
            code: Coupon code as entered by the customer

        Returns:
            Coupon if one matches, None otherwise
        """
        normalized = normalize_code(code)
        if not normalized:
            return None

        result = await self.session.execute(
            select(Coupon).where(func.upper(Coupon.code) == normalized)
        )
        coupon = result.scalar_one_or_none()
        logger.debug("Coupon lookup", code=normalized, found=coupon is not None)
        return coupon
