"""
Tests for PricingEngine.

Covers line item validation against the catalog, price snapshots, the
shipping rule and the totals identity.
"""

import uuid
from dataclasses import replace
from decimal import Decimal

import pytest

from storefront.core.config import ShippingPolicy
from storefront.services.orders.enums import Currency
from storefront.services.orders.errors import (
    CurrencyMismatchError,
    EmptyOrderError,
    InsufficientStockError,
    ItemUnavailableError,
    OrderValidationError,
)
from storefront.services.orders.pricing import LineItem, PricingEngine, QuotedItem


# ============================================================================
# Line Item Pricing Tests
# ============================================================================


class TestPriceLineItems:
    """Test validation and price snapshots of requested items."""

    @pytest.mark.asyncio
    async def test_subtotal_is_sum_of_line_totals(self, catalog, pricing_engine):
        """Two units at 20.00 plus one at 7.50 give 47.50."""
        mug = catalog.add("20.00", name="Mug", thumbnail="mug.png")
        pen = catalog.add("7.50", name="Pen")

        cart = await pricing_engine.price_line_items(
            [LineItem(mug.id, 2), LineItem(pen.id, 1)]
        )

        assert cart.subtotal == Decimal("47.50")
        assert cart.currency == Currency.USD
        assert [item.line_total for item in cart.items] == [
            Decimal("40.00"),
            Decimal("7.50"),
        ]
        assert cart.items[0].name == "Mug"
        assert cart.items[0].thumbnail == "mug.png"

    @pytest.mark.asyncio
    async def test_empty_cart_rejected(self, pricing_engine):
        with pytest.raises(EmptyOrderError):
            await pricing_engine.price_line_items([])

    @pytest.mark.asyncio
    async def test_unknown_product_is_unavailable(self, pricing_engine):
        missing = uuid.uuid4()

        with pytest.raises(ItemUnavailableError) as exc_info:
            await pricing_engine.price_line_items([LineItem(missing, 1)])

        assert exc_info.value.product_id == missing

    @pytest.mark.asyncio
    async def test_inactive_product_is_unavailable(self, catalog, pricing_engine):
        retired = catalog.add("10.00", is_active=False)

        with pytest.raises(ItemUnavailableError):
            await pricing_engine.price_line_items([LineItem(retired.id, 1)])

    @pytest.mark.asyncio
    async def test_out_of_stock_product_fails(self, catalog, pricing_engine):
        sold_out = catalog.add("10.00", stock=0)

        with pytest.raises(InsufficientStockError) as exc_info:
            await pricing_engine.price_line_items([LineItem(sold_out.id, 1)])

        assert exc_info.value.requested == 1
        assert exc_info.value.available == 0

    @pytest.mark.asyncio
    async def test_repeated_lines_checked_against_combined_quantity(
        self, catalog, pricing_engine
    ):
        """Three units split over two lines exceed a stock of two."""
        product = catalog.add("10.00", stock=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            await pricing_engine.price_line_items(
                [LineItem(product.id, 2), LineItem(product.id, 1)]
            )

        assert exc_info.value.requested == 3

    @pytest.mark.asyncio
    async def test_first_failing_item_aborts_pricing(self, catalog, pricing_engine):
        available = catalog.add("10.00")
        missing = uuid.uuid4()
        later = catalog.add("5.00")

        with pytest.raises(ItemUnavailableError):
            await pricing_engine.price_line_items(
                [LineItem(available.id, 1), LineItem(missing, 1), LineItem(later.id, 1)]
            )

        assert catalog.lookups == 2

    @pytest.mark.asyncio
    async def test_mixed_currencies_rejected(self, catalog, pricing_engine):
        usd = catalog.add("10.00", currency=Currency.USD)
        bdt = catalog.add("900.00", currency=Currency.BDT)

        with pytest.raises(CurrencyMismatchError):
            await pricing_engine.price_line_items([LineItem(usd.id, 1), LineItem(bdt.id, 1)])

    @pytest.mark.asyncio
    async def test_snapshot_does_not_follow_catalog_changes(self, catalog, pricing_engine):
        product = catalog.add("20.00", name="Lamp")
        cart = await pricing_engine.price_line_items([LineItem(product.id, 1)])

        catalog.products[product.id] = replace(
            product, name="Renamed lamp", unit_price=Decimal("35.00")
        )

        assert cart.items[0].unit_price == Decimal("20.00")
        assert cart.items[0].name == "Lamp"


class TestLineItem:
    def test_zero_quantity_rejected(self):
        with pytest.raises(OrderValidationError):
            LineItem(uuid.uuid4(), 0)

    def test_quoted_item_converts_to_order_item(self):
        quoted = QuotedItem(
            product_id=uuid.uuid4(),
            name="Mug",
            thumbnail=None,
            unit_price=Decimal("3.33"),
            currency=Currency.USD,
            quantity=3,
        )

        item = quoted.to_order_item()

        assert item.line_total == Decimal("9.99")
        assert item.quantity == 3
        assert item.product_id == quoted.product_id
        assert item.variant is None

    @pytest.mark.asyncio
    async def test_variant_carried_into_order_item(self, catalog, pricing_engine):
        product = catalog.add("12.00", name="Shirt")

        cart = await pricing_engine.price_line_items(
            [LineItem(product.id, 1, variant="M"), LineItem(product.id, 1, variant="L")]
        )

        assert [item.to_order_item().variant for item in cart.items] == ["M", "L"]
        assert cart.subtotal == Decimal("24.00")


# ============================================================================
# Totals Tests
# ============================================================================


class TestOrderTotals:
    """Test shipping and grand total computation."""

    @pytest.mark.asyncio
    async def test_below_threshold_pays_flat_fee(self, catalog, pricing_engine):
        """Two units at 20 ship for 5 and total 45."""
        product = catalog.add("20.00")
        cart = await pricing_engine.price_line_items([LineItem(product.id, 2)])

        totals = pricing_engine.price_order(cart.subtotal)

        assert totals.subtotal == Decimal("40.00")
        assert totals.discount_total == Decimal("0.00")
        assert totals.shipping_fee == Decimal("5.00")
        assert totals.grand_total == Decimal("45.00")

    @pytest.mark.parametrize(
        "subtotal,expected_fee",
        [
            ("49.99", "5.00"),
            ("50.00", "0.00"),
            ("120.00", "0.00"),
            ("0.00", "5.00"),
        ],
    )
    def test_shipping_threshold_is_inclusive(self, pricing_engine, subtotal, expected_fee):
        assert pricing_engine.compute_shipping_fee(Decimal(subtotal)) == Decimal(expected_fee)

    def test_discount_clamped_to_subtotal(self, pricing_engine):
        totals = pricing_engine.price_order(Decimal("8.00"), Decimal("10.00"))

        assert totals.discount_total == Decimal("8.00")
        assert totals.grand_total == Decimal("5.00")

    def test_negative_discount_ignored(self, pricing_engine):
        totals = pricing_engine.price_order(Decimal("60.00"), Decimal("-5.00"))

        assert totals.discount_total == Decimal("0.00")
        assert totals.grand_total == Decimal("60.00")

    def test_grand_total_never_negative(self):
        assert PricingEngine.compute_grand_total(
            Decimal("10.00"), Decimal("25.00"), Decimal("0.00")
        ) == Decimal("0.00")

    def test_totals_identity_holds(self, pricing_engine):
        totals = pricing_engine.price_order(Decimal("33.33"), Decimal("3.33"))

        assert totals.grand_total == (
            totals.subtotal - totals.discount_total + totals.shipping_fee
        )

    def test_custom_shipping_policy(self, catalog):
        engine = PricingEngine(
            catalog,
            ShippingPolicy(
                free_shipping_threshold=Decimal("1000.00"),
                flat_shipping_fee=Decimal("60.00"),
            ),
        )

        assert engine.compute_shipping_fee(Decimal("999.99")) == Decimal("60.00")
        assert engine.compute_shipping_fee(Decimal("1000.00")) == Decimal("0.00")
