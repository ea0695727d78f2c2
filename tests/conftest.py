"""
Pytest configuration and shared test fixtures.

The order pipeline talks to its collaborators through small ports, so most
tests run against the in-memory fakes defined here instead of a database.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

import pytest

from storefront.core.config import ShippingPolicy
from storefront.database.models.coupon import Coupon, DiscountKind, normalize_code
from storefront.database.models.order import Order
from storefront.database.models.user import UserAddress
from storefront.services.catalog.reader import ProductSnapshot
from storefront.services.coupons.validator import CouponValidator
from storefront.services.customers.repository import CustomerContact
from storefront.services.notifications.service import OrderNotification
from storefront.services.orders.checkout import CheckoutService
from storefront.services.orders.enums import AddressKind, Currency
from storefront.services.orders.errors import (
    CouponExhaustedError,
    InsufficientStockError,
    ItemUnavailableError,
    OrderNumberConflictError,
)
from storefront.services.orders.pricing import PricingEngine
from storefront.services.orders.repository import digits_only

FIXED_NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# In-memory Fakes
# ============================================================================


class FakeCatalog:
    """CatalogReader over a dict of product snapshots."""

    def __init__(self) -> None:
        self.products: dict[uuid.UUID, ProductSnapshot] = {}
        self.lookups = 0

    def add(
        self,
        price: str,
        stock: int = 10,
        name: str = "Widget",
        currency: Currency = Currency.USD,
        is_active: bool = True,
        thumbnail: Optional[str] = None,
    ) -> ProductSnapshot:
        product = ProductSnapshot(
            id=uuid.uuid4(),
            name=name,
            unit_price=Decimal(price),
            currency=currency,
            thumbnail=thumbnail,
            stock=stock,
            is_active=is_active,
        )
        self.products[product.id] = product
        return product

    async def get_product(self, product_id: uuid.UUID) -> Optional[ProductSnapshot]:
        self.lookups += 1
        return self.products.get(product_id)


class FakeCouponRepository:
    def __init__(self) -> None:
        self.coupons: dict[str, Coupon] = {}

    def add(
        self,
        code: str,
        kind: DiscountKind,
        value: str,
        min_subtotal: Optional[str] = None,
        max_discount: Optional[str] = None,
        usage_limit: Optional[int] = None,
        used_count: int = 0,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        is_active: bool = True,
    ) -> Coupon:
        coupon = Coupon(
            id=uuid.uuid4(),
            code=normalize_code(code),
            discount_kind=kind,
            value=Decimal(value),
            min_subtotal=Decimal(min_subtotal) if min_subtotal is not None else None,
            max_discount=Decimal(max_discount) if max_discount is not None else None,
            valid_from=valid_from or FIXED_NOW - timedelta(days=30),
            valid_until=valid_until or FIXED_NOW + timedelta(days=30),
            usage_limit=usage_limit,
            used_count=used_count,
            is_active=is_active,
        )
        self.coupons[coupon.code] = coupon
        return coupon

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        return self.coupons.get(normalize_code(code))


class FakeOrderRepository:
    """
    Order store mirroring the database guarantees the checkout relies on.

    ``add_order`` checks the order number for uniqueness and applies the
    stock and coupon side effects atomically; nothing is visible to readers
    until ``commit``.
    """

    def __init__(self, catalog: FakeCatalog, coupons: FakeCouponRepository) -> None:
        self.catalog = catalog
        self.coupons = coupons
        self.orders: dict[uuid.UUID, Order] = {}
        self.taken_numbers: set[str] = set()
        self._pending: list[tuple[Order, dict[uuid.UUID, int], Optional[str]]] = []
        self.commits = 0
        self.rollbacks = 0
        self.saves = 0
        self.add_attempts = 0
        self.locked: list[uuid.UUID] = []
        self.save_error: Optional[Exception] = None

    async def add_order(self, order: Order) -> Order:
        self.add_attempts += 1
        if order.order_number in self.taken_numbers:
            raise OrderNumberConflictError(order.order_number)

        needed: dict[uuid.UUID, int] = {}
        for item in order.items:
            needed[item.product_id] = needed.get(item.product_id, 0) + item.quantity
        for product_id, quantity in needed.items():
            product = self.catalog.products.get(product_id)
            if product is None or not product.is_active:
                raise ItemUnavailableError(product_id)
            if product.stock < quantity:
                raise InsufficientStockError(product_id, quantity, product.stock)

        coupon_code = None
        if order.coupon_code:
            coupon = self.coupons.coupons.get(order.coupon_code)
            if coupon is None or coupon.is_exhausted:
                raise CouponExhaustedError(order.coupon_code)
            coupon_code = coupon.code

        for product_id, quantity in needed.items():
            product = self.catalog.products[product_id]
            self.catalog.products[product_id] = replace(product, stock=product.stock - quantity)
        if coupon_code:
            self.coupons.coupons[coupon_code].used_count += 1

        self.taken_numbers.add(order.order_number)
        self._pending.append((order, needed, coupon_code))
        return order

    async def commit(self) -> None:
        for order, _, _ in self._pending:
            self.orders[order.id] = order
        self._pending.clear()
        self.commits += 1

    async def rollback(self) -> None:
        for order, needed, coupon_code in self._pending:
            for product_id, quantity in needed.items():
                product = self.catalog.products[product_id]
                self.catalog.products[product_id] = replace(
                    product, stock=product.stock + quantity
                )
            if coupon_code:
                self.coupons.coupons[coupon_code].used_count -= 1
            self.taken_numbers.discard(order.order_number)
        self._pending.clear()
        self.rollbacks += 1

    async def save(self, order: Order) -> Order:
        self.saves += 1
        if self.save_error is not None:
            raise self.save_error
        return order

    async def get_by_id(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Order]:
        if for_update:
            self.locked.append(order_id)
        return self.orders.get(order_id)

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        wanted = order_number.strip().upper()
        for order in self.orders.values():
            if order.order_number == wanted:
                return order
        return None

    async def list_for_user(
        self, user_id: uuid.UUID, offset: int = 0, limit: int = 10
    ) -> tuple[Sequence[Order], int]:
        owned = sorted(
            (o for o in self.orders.values() if o.user_id == user_id),
            key=lambda o: o.created_at,
            reverse=True,
        )
        return owned[offset:offset + limit], len(owned)

    async def list_for_guest(self, email: str, phone: str) -> Sequence[Order]:
        email = email.strip().lower()
        phone = digits_only(phone)
        matches = [
            o
            for o in self.orders.values()
            if o.is_guest
            and ((o.guest_email or "").lower() == email or digits_only(o.guest_phone or "") == phone)
        ]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)


class FakeCustomerDirectory:
    def __init__(self) -> None:
        self.contacts: dict[uuid.UUID, CustomerContact] = {}
        self.addresses: dict[uuid.UUID, UserAddress] = {}

    def add_user(self, name: str = "Rahim Uddin", email: str = "rahim@example.com") -> CustomerContact:
        contact = CustomerContact(
            user_id=uuid.uuid4(), name=name, email=email, phone="01711000000"
        )
        self.contacts[contact.user_id] = contact
        return contact

    def add_address(self, user_id: uuid.UUID, kind: AddressKind = AddressKind.HOME) -> UserAddress:
        address = UserAddress(
            id=uuid.uuid4(),
            user_id=user_id,
            kind=kind,
            name="Rahim Uddin",
            phone="01711000000",
            address="12 Lake Road",
            city="Dhaka",
            state="Dhaka",
            postal_code="1207",
            country="Bangladesh",
            is_default=True,
        )
        self.addresses[address.id] = address
        return address

    async def get_address(
        self, user_id: uuid.UUID, address_id: uuid.UUID
    ) -> Optional[UserAddress]:
        address = self.addresses.get(address_id)
        if address is None or address.user_id != user_id:
            return None
        return address

    async def get_contact(self, user_id: uuid.UUID) -> Optional[CustomerContact]:
        return self.contacts.get(user_id)


class RecordingNotificationQueue:
    """NotificationQueue that records what checkout handed over."""

    def __init__(self) -> None:
        self.dispatched: list[OrderNotification] = []

    def dispatch(self, notification: OrderNotification) -> bool:
        self.dispatched.append(notification)
        return True


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def now() -> datetime:
    """Clock value used by the coupon validator and checkout fixtures."""
    return FIXED_NOW


@pytest.fixture
def shipping_policy() -> ShippingPolicy:
    return ShippingPolicy(
        free_shipping_threshold=Decimal("50.00"), flat_shipping_fee=Decimal("5.00")
    )


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def coupon_repo() -> FakeCouponRepository:
    return FakeCouponRepository()


@pytest.fixture
def order_repo(catalog: FakeCatalog, coupon_repo: FakeCouponRepository) -> FakeOrderRepository:
    return FakeOrderRepository(catalog, coupon_repo)


@pytest.fixture
def customers() -> FakeCustomerDirectory:
    return FakeCustomerDirectory()


@pytest.fixture
def notification_queue() -> RecordingNotificationQueue:
    return RecordingNotificationQueue()


@pytest.fixture
def pricing_engine(catalog: FakeCatalog, shipping_policy: ShippingPolicy) -> PricingEngine:
    return PricingEngine(catalog, shipping_policy)


@pytest.fixture
def coupon_validator(coupon_repo: FakeCouponRepository) -> CouponValidator:
    return CouponValidator(coupon_repo, clock=lambda: FIXED_NOW)


@pytest.fixture
def checkout_service(
    pricing_engine: PricingEngine,
    coupon_validator: CouponValidator,
    order_repo: FakeOrderRepository,
    customers: FakeCustomerDirectory,
    notification_queue: RecordingNotificationQueue,
) -> CheckoutService:
    return CheckoutService(
        pricing=pricing_engine,
        coupons=coupon_validator,
        orders=order_repo,
        customers=customers,
        notifications=notification_queue,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def guest_address() -> dict[str, Any]:
    return {
        "kind": "home",
        "name": "Jane Doe",
        "phone": "5551234567",
        "address": "221 Baker Street",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "USA",
        "is_default": False,
    }
