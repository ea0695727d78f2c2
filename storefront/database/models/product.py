"""
Product catalog table.

The order pipeline only reads products and decrements ``stock``; catalog
maintenance lives elsewhere.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.config import get_settings
from storefront.database.base import BaseModel, enum_type
from storefront.services.orders.enums import Currency


def default_currency() -> Currency:
    """Currency of products stored without an explicit one."""
    return Currency(get_settings().default_currency)


class Product(BaseModel):
    """
    Sellable product.

    Attributes:
        name: Display name copied into order items
        price: Unit price in ``currency``
        currency: Currency the product is priced in
        thumbnail: Image URL copied into order items
        stock: Units on hand, never negative
        is_active: Inactive products cannot be ordered
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        Index("ix_products_is_active", "is_active"),
        {"comment": "Catalog products available for ordering"},
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[Currency] = mapped_column(
        enum_type(Currency, "currency"),
        nullable=False,
        default=default_currency,
    )
    thumbnail: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
