"""
Coupon model for order discounts.

Coupons are created and edited by administrators. The checkout pipeline
reads them and increments ``used_count`` once per committed order; they
are deactivated rather than deleted.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from storefront.database.base import BaseModel, enum_type


class DiscountKind(str, Enum):
    """How a coupon's ``value`` is interpreted."""

    FLAT = "flat"
    PERCENT = "percent"


def normalize_code(code: str) -> str:
    """Canonical (upper-case, trimmed) form of a coupon code."""
    return code.strip().upper()


class Coupon(BaseModel):
    """
    Discount coupon.

    Attributes:
        code: Unique code, stored upper-case and matched case-insensitively
        discount_kind: flat amount or percentage of the subtotal
        value: Amount (flat) or percentage 0-100 (percent)
        min_subtotal: Subtotal required before the coupon applies
        max_discount: Cap on the discount for percent coupons
        valid_from: Start of the validity window (inclusive)
        valid_until: End of the validity window (inclusive)
        usage_limit: Maximum redemptions, NULL for unlimited
        used_count: Redemptions so far
        is_active: Inactive coupons are treated as missing
    """

    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("value >= 0", name="ck_coupons_value_non_negative"),
        CheckConstraint(
            "discount_kind <> 'percent' OR value <= 100",
            name="ck_coupons_percent_max_100",
        ),
        CheckConstraint(
            "min_subtotal IS NULL OR min_subtotal >= 0",
            name="ck_coupons_min_subtotal_non_negative",
        ),
        CheckConstraint(
            "max_discount IS NULL OR max_discount >= 0",
            name="ck_coupons_max_discount_non_negative",
        ),
        CheckConstraint(
            "usage_limit IS NULL OR usage_limit >= 0",
            name="ck_coupons_usage_limit_non_negative",
        ),
        CheckConstraint("used_count >= 0", name="ck_coupons_used_count_non_negative"),
        CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit",
            name="ck_coupons_used_count_within_limit",
        ),
        CheckConstraint("valid_until >= valid_from", name="ck_coupons_valid_range"),
        CheckConstraint("code = upper(code)", name="ck_coupons_code_upper"),
        Index("ix_coupons_active_valid", "is_active", "valid_from", "valid_until"),
        {"comment": "Discount coupons redeemable at checkout"},
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    discount_kind: Mapped[DiscountKind] = mapped_column(
        enum_type(DiscountKind, "discount_kind"),
        nullable=False,
    )
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    min_subtotal: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    max_discount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @validates("code")
    def _normalize_code(self, key: str, code: str) -> str:
        return normalize_code(code)

    def is_within_validity(self, now: datetime) -> bool:
        return self.valid_from <= now <= self.valid_until

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit


# Codes are unique regardless of case.
Index("uq_coupons_code_upper", func.upper(Coupon.code), unique=True)
