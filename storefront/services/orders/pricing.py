"""
Order pricing: item quotes, shipping and totals.

The engine validates requested line items against the catalog, snapshots
their prices and computes the order totals. All amounts are Decimals with
two places; discounts never push a total below zero.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from storefront.core.config import ShippingPolicy
from storefront.core.logging import get_logger
from storefront.core.money import ZERO, to_money
from storefront.database.models.order import OrderItem
from storefront.services.catalog.reader import CatalogReader, ProductSnapshot
from storefront.services.orders.enums import Currency
from storefront.services.orders.errors import (
    CurrencyMismatchError,
    EmptyOrderError,
    InsufficientStockError,
    ItemUnavailableError,
    OrderValidationError,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class LineItem:
    """A requested product and quantity, before validation."""

    product_id: uuid.UUID
    quantity: int
    variant: Optional[str] = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise OrderValidationError(
                "Quantity must be at least 1",
                product_id=self.product_id,
                quantity=self.quantity,
            )


@dataclass(frozen=True)
class QuotedItem:
    """A line item priced from a catalog snapshot."""

    product_id: uuid.UUID
    name: str
    thumbnail: Optional[str]
    unit_price: Decimal
    currency: Currency
    quantity: int
    variant: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            name=self.name,
            thumbnail=self.thumbnail,
            variant=self.variant,
            unit_price=self.unit_price,
            currency=self.currency,
            quantity=self.quantity,
            line_total=self.line_total,
        )


@dataclass(frozen=True)
class PricedCart:
    items: tuple[QuotedItem, ...]
    subtotal: Decimal
    currency: Currency


@dataclass(frozen=True)
class OrderTotals:
    """Amounts captured on an order. ``grand_total`` is never negative."""

    subtotal: Decimal
    discount_total: Decimal
    shipping_fee: Decimal
    grand_total: Decimal


class PricingEngine:
    """
    Prices carts against live catalog data.

    Stock checks here are advisory; the repository re-checks stock with a
    conditional decrement when the order is persisted.
    """

    def __init__(
        self,
        catalog: CatalogReader,
        shipping_policy: ShippingPolicy,
    ):
        """
        Initialize pricing engine.

        Args:
            catalog: Product lookup port
            shipping_policy: Free-shipping threshold and flat fee
        """
        self.catalog = catalog
        self.shipping_policy = shipping_policy

    async def price_line_items(self, requests: Iterable[LineItem]) -> PricedCart:
        """
        Validate line items and snapshot their prices.

        Items are checked in request order and the first failure aborts
        pricing. Repeated lines for one product are checked against stock
        using their combined quantity.

        Args:
            requests: Requested products and quantities

        Returns:
            PricedCart with one QuotedItem per request

        Raises:
            EmptyOrderError: If no line items were requested
            ItemUnavailableError: If a product is missing or inactive
            InsufficientStockError: If stock does not cover the quantity
            CurrencyMismatchError: If products use different currencies
        """
        requests = list(requests)
        if not requests:
            raise EmptyOrderError()

        products: dict[uuid.UUID, ProductSnapshot] = {}
        requested: dict[uuid.UUID, int] = defaultdict(int)
        quoted: list[QuotedItem] = []
        currency: Optional[Currency] = None

        for request in requests:
            product = products.get(request.product_id)
            if product is None:
                product = await self.catalog.get_product(request.product_id)
                if product is None or not product.is_available:
                    logger.warning(
                        "Line item product unavailable",
                        product_id=str(request.product_id),
                        found=product is not None,
                    )
                    raise ItemUnavailableError(request.product_id)
                products[request.product_id] = product

            requested[request.product_id] += request.quantity
            if product.stock < requested[request.product_id]:
                logger.warning(
                    "Insufficient stock for line item",
                    product_id=str(product.id),
                    requested=requested[request.product_id],
                    available=product.stock,
                )
                raise InsufficientStockError(
                    product.id, requested[request.product_id], product.stock
                )

            if currency is None:
                currency = product.currency
            elif product.currency != currency:
                raise CurrencyMismatchError(
                    "All items in an order must share one currency",
                    product_id=product.id,
                    expected=currency.value,
                    found=product.currency.value,
                )

            quoted.append(
                QuotedItem(
                    product_id=product.id,
                    name=product.name,
                    thumbnail=product.thumbnail,
                    unit_price=to_money(product.unit_price),
                    currency=product.currency,
                    quantity=request.quantity,
                    variant=request.variant,
                )
            )

        subtotal = sum((item.line_total for item in quoted), ZERO)
        logger.debug(
            "Line items priced",
            item_count=len(quoted),
            subtotal=str(subtotal),
            currency=currency.value,
        )
        return PricedCart(items=tuple(quoted), subtotal=subtotal, currency=currency)

    def compute_shipping_fee(self, subtotal: Decimal) -> Decimal:
        """Free at or above the threshold, flat fee below it."""
        if to_money(subtotal) >= self.shipping_policy.free_shipping_threshold:
            return ZERO
        return to_money(self.shipping_policy.flat_shipping_fee)

    @staticmethod
    def compute_grand_total(
        subtotal: Decimal, discount_total: Decimal, shipping_fee: Decimal
    ) -> Decimal:
        """``subtotal - discount_total + shipping_fee``, clamped at zero."""
        total = to_money(subtotal) - to_money(discount_total) + to_money(shipping_fee)
        return max(total, ZERO)

    def price_order(self, subtotal: Decimal, discount: Decimal = ZERO) -> OrderTotals:
        """
        Compute all order amounts from a subtotal and a proposed discount.

        The discount is clamped to ``[0, subtotal]`` so the stored amounts
        always satisfy ``grand_total == subtotal - discount_total + shipping_fee``.

        Args:
            subtotal: Cart subtotal
            discount: Discount offered by a coupon

        Returns:
            OrderTotals
        """
        subtotal = to_money(subtotal)
        discount_total = min(max(to_money(discount), ZERO), subtotal)
        shipping_fee = self.compute_shipping_fee(subtotal)
        return OrderTotals(
            subtotal=subtotal,
            discount_total=discount_total,
            shipping_fee=shipping_fee,
            grand_total=self.compute_grand_total(subtotal, discount_total, shipping_fee),
        )
