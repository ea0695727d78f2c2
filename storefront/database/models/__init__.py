"""
Database models package.

Importing this package registers every table with ``Base.metadata`` so
Alembic and relationship resolution see the full schema.
"""

from storefront.database.base import Base, BaseModel
from storefront.database.models.coupon import Coupon, DiscountKind
from storefront.database.models.order import (
    GuestContact,
    Order,
    OrderItem,
    OrderStatusHistory,
    PaymentInfo,
)
from storefront.database.models.product import Product
from storefront.database.models.user import User, UserAddress, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "Coupon",
    "DiscountKind",
    "GuestContact",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "PaymentInfo",
    "Product",
    "User",
    "UserAddress",
    "UserRole",
]
