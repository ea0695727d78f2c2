"""
Read-only product lookups used by the order pipeline.

Checkout depends on the ``CatalogReader`` protocol rather than on the
products table so that pricing can be exercised without a database.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.product import Product
from storefront.services.orders.enums import Currency

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    """Product state as seen at quote time."""

    id: uuid.UUID
    name: str
    unit_price: Decimal
    currency: Currency
    thumbnail: Optional[str]
    stock: int
    is_active: bool

    @property
    def is_available(self) -> bool:
        return self.is_active


class CatalogReader(Protocol):
    """Port for product lookups."""

    async def get_product(self, product_id: uuid.UUID) -> Optional[ProductSnapshot]:
        """Return the product, or None if it does not exist."""
        ...


class SqlCatalogReader:
    """CatalogReader backed by the ``products`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: uuid.UUID) -> Optional[ProductSnapshot]:
        result = await self.session.execute(select(Product).where(Product.id == product_id))
        product = result.scalar_one_or_none()
        if product is None:
            logger.debug("Product not found", product_id=str(product_id))
            return None

        return ProductSnapshot(
            id=product.id,
            name=product.name,
            unit_price=product.price,
            currency=product.currency,
            thumbnail=product.thumbnail,
            stock=product.stock,
            is_active=product.is_active,
        )
