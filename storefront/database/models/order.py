"""
Order aggregate: orders, their item snapshots and status history.

An order is created once, at checkout commit, in ``pending`` status with a
single history entry. Afterwards it changes only through ``transition_to``
(one history entry per call) and ``update_payment``. Items, the shipping
address and the guest contact are point-in-time copies that later catalog
or address-book edits never touch.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.core.logging import get_logger
from storefront.core.money import ZERO, to_money
from storefront.database.base import Base, BaseModel, UUIDMixin, enum_type, utcnow
from storefront.services.orders.enums import (
    Currency,
    OrderStatus,
    PaymentProvider,
    PaymentStatus,
    validate_order_status_transition,
    validate_payment_status_transition,
)
from storefront.services.orders.errors import (
    EmptyOrderError,
    InvalidTransitionError,
    OrderValidationError,
)
from storefront.services.orders.order_number import generate_order_number

logger = get_logger(__name__)

ORDER_CREATED_NOTE = "Order created"


@dataclass(frozen=True)
class GuestContact:
    """Contact details of a customer checking out without an account."""

    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class PaymentInfo:
    provider: PaymentProvider
    status: PaymentStatus
    transaction_id: Optional[str] = None
    intent_id: Optional[str] = None


class OrderItem(Base, UUIDMixin):
    """
    Price snapshot of one product line inside an order.

    Attributes:
        order_id: Owning order
        position: Zero-based index preserving cart order
        product_id: Catalog product the line was priced from
        name: Product name at checkout time
        thumbnail: Product image at checkout time
        unit_price: Unit price at checkout time
        currency: Currency of ``unit_price``
        quantity: Units ordered, at least 1
        line_total: ``unit_price * quantity``
    """

    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_non_negative"),
        CheckConstraint(
            "line_total = unit_price * quantity",
            name="ck_order_items_line_total",
        ),
        Index("ix_order_items_order_id", "order_id"),
        {"comment": "Immutable price snapshots of ordered products"},
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    thumbnail: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    variant: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[Currency] = mapped_column(enum_type(Currency, "currency"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")


class OrderStatusHistory(Base, UUIDMixin):
    """Append-only record of one status change."""

    __tablename__ = "order_status_history"
    __table_args__ = (
        Index("ix_order_status_history_order_seq", "order_id", "sequence", unique=True),
        {"comment": "Status transitions of orders, oldest first"},
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_status"), nullable=False
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    order: Mapped["Order"] = relationship("Order", back_populates="history")


class Order(BaseModel):
    """
    A placed order.

    Exactly one of ``user_id`` (registered customer) or the guest contact
    columns (``is_guest=True``) identifies the customer. All amounts share
    ``currency`` and satisfy
    ``grand_total == subtotal - discount_total + shipping_fee >= 0``.

    Attributes:
        order_number: Human-facing ``YYMMDD-XXXXXX`` identifier, unique
        user_id: Ordering user, NULL for guest orders
        is_guest: Whether the order was placed without an account
        guest_name: Guest contact name
        guest_email: Guest contact email (lower-case)
        guest_phone: Guest contact phone
        subtotal: Sum of item line totals
        discount_total: Coupon discount captured at checkout
        shipping_fee: Shipping charged
        grand_total: Amount payable
        currency: Order currency
        address: Shipping address snapshot
        status: Current lifecycle status
        payment_provider: stripe, sslcommerz or cod
        payment_status: pending, paid, failed or refunded
        payment_transaction_id: Provider transaction reference
        payment_intent_id: Provider payment intent reference
        coupon_id: Applied coupon, for audit
        coupon_code: Code of the applied coupon at checkout
        notes: Free text from the customer or an administrator
        items: Item snapshots in cart order
        history: Status history, oldest first
    """

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("discount_total >= 0", name="ck_orders_discount_non_negative"),
        CheckConstraint("shipping_fee >= 0", name="ck_orders_shipping_non_negative"),
        CheckConstraint("grand_total >= 0", name="ck_orders_grand_total_non_negative"),
        CheckConstraint(
            "grand_total = subtotal - discount_total + shipping_fee",
            name="ck_orders_grand_total_formula",
        ),
        CheckConstraint(
            "(is_guest AND user_id IS NULL AND guest_email IS NOT NULL) OR "
            "(NOT is_guest AND user_id IS NOT NULL)",
            name="ck_orders_customer_exclusive",
        ),
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_guest_email", "guest_email"),
        Index("ix_orders_guest_phone", "guest_phone"),
        Index("ix_orders_status", "status"),
        {"comment": "Customer orders"},
    )

    order_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
    )
    is_guest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=ZERO
    )
    shipping_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[Currency] = mapped_column(
        enum_type(Currency, "currency"), nullable=False, default=Currency.USD
    )

    address: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
    )

    payment_provider: Mapped[PaymentProvider] = mapped_column(
        enum_type(PaymentProvider, "payment_provider"), nullable=False
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    coupon_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
    )
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[list[OrderItem]] = relationship(
        OrderItem,
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by=OrderItem.position,
    )
    history: Mapped[list[OrderStatusHistory]] = relationship(
        OrderStatusHistory,
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by=OrderStatusHistory.sequence,
    )

    @classmethod
    def create(
        cls,
        *,
        items: Sequence[OrderItem],
        subtotal: Decimal,
        discount_total: Decimal,
        shipping_fee: Decimal,
        grand_total: Decimal,
        currency: Currency,
        address: dict[str, Any],
        payment_provider: PaymentProvider,
        user_id: Optional[uuid.UUID] = None,
        guest: Optional[GuestContact] = None,
        notes: Optional[str] = None,
        coupon_id: Optional[uuid.UUID] = None,
        coupon_code: Optional[str] = None,
        order_number: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Order":
        """
        Build a new pending order with its initial history entry.

        Args:
            items: Priced item snapshots, at least one
            subtotal: Sum of item line totals
            discount_total: Discount applied
            shipping_fee: Shipping charged
            grand_total: Amount payable
            currency: Currency shared by all amounts
            address: Shipping address snapshot
            payment_provider: Payment provider chosen at checkout
            user_id: Registered customer (mutually exclusive with ``guest``)
            guest: Guest contact (mutually exclusive with ``user_id``)
            notes: Optional free text
            coupon_id: Applied coupon
            coupon_code: Applied coupon code
            order_number: Explicit order number (generated when omitted)
            now: Creation timestamp (defaults to current UTC time)

        Returns:
            Transient Order, not yet added to a session

        Raises:
            EmptyOrderError: If ``items`` is empty
            OrderValidationError: If the customer or amounts are inconsistent
        """
        if not items:
            raise EmptyOrderError()
        if (user_id is None) == (guest is None):
            raise OrderValidationError(
                "Order requires exactly one of a user or a guest contact"
            )

        subtotal = to_money(subtotal)
        discount_total = to_money(discount_total)
        shipping_fee = to_money(shipping_fee)
        grand_total = to_money(grand_total)

        if sum((item.line_total for item in items), ZERO) != subtotal:
            raise OrderValidationError(
                "Subtotal does not match item totals", subtotal=subtotal
            )
        if grand_total < 0 or grand_total != subtotal - discount_total + shipping_fee:
            raise OrderValidationError(
                "Grand total is inconsistent with subtotal, discount and shipping",
                subtotal=subtotal,
                discount_total=discount_total,
                shipping_fee=shipping_fee,
                grand_total=grand_total,
            )

        created = now or utcnow()
        order = cls(
            id=uuid.uuid4(),
            order_number=order_number or generate_order_number(created),
            user_id=user_id,
            is_guest=guest is not None,
            guest_name=guest.name if guest else None,
            guest_email=guest.email if guest else None,
            guest_phone=guest.phone if guest else None,
            subtotal=subtotal,
            discount_total=discount_total,
            shipping_fee=shipping_fee,
            grand_total=grand_total,
            currency=currency,
            address=dict(address),
            status=OrderStatus.PENDING,
            payment_provider=payment_provider,
            payment_status=PaymentStatus.PENDING,
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            notes=notes,
            created_at=created,
            updated_at=created,
        )
        for position, item in enumerate(items):
            item.position = position
            order.items.append(item)
        order.history.append(
            OrderStatusHistory(
                sequence=0,
                status=OrderStatus.PENDING,
                note=ORDER_CREATED_NOTE,
                at=created,
            )
        )
        return order

    @property
    def guest(self) -> Optional[GuestContact]:
        if not self.is_guest:
            return None
        return GuestContact(
            name=self.guest_name or "",
            email=self.guest_email or "",
            phone=self.guest_phone or "",
        )

    @property
    def payment(self) -> PaymentInfo:
        return PaymentInfo(
            provider=self.payment_provider,
            status=self.payment_status,
            transaction_id=self.payment_transaction_id,
            intent_id=self.payment_intent_id,
        )

    def transition_to(
        self,
        new_status: OrderStatus,
        note: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> OrderStatusHistory:
        """
        Move the order to ``new_status`` and record it in the history.

        Args:
            new_status: Target status
            note: History note (defaults to "Order status updated to <status>")
            at: Transition timestamp (defaults to current UTC time)

        Returns:
            The appended history entry

        Raises:
            InvalidTransitionError: If the move is not allowed from the
                current status
        """
        current = self.status
        if not validate_order_status_transition(current, new_status):
            raise InvalidTransitionError(
                current, new_status, order_id=self.id, order_number=self.order_number
            )

        moment = at or utcnow()
        entry = OrderStatusHistory(
            sequence=len(self.history),
            status=new_status,
            note=note or f"Order status updated to {new_status.value}",
            at=moment,
        )
        self.history.append(entry)
        self.status = new_status
        self.updated_at = moment

        logger.info(
            "Order status changed",
            order_id=str(self.id),
            order_number=self.order_number,
            from_status=current.value,
            to_status=new_status.value,
        )
        return entry

    def update_payment(
        self,
        status: PaymentStatus,
        transaction_id: Optional[str] = None,
        intent_id: Optional[str] = None,
    ) -> None:
        """
        Record a payment status change reported by the payment provider.

        Raises:
            InvalidTransitionError: If the payment status cannot move to
                ``status``
        """
        current = self.payment_status
        if not validate_payment_status_transition(current, status):
            raise InvalidTransitionError(
                current,
                status,
                order_id=self.id,
                field="payment_status",
            )
        self.payment_status = status
        if transaction_id is not None:
            self.payment_transaction_id = transaction_id
        if intent_id is not None:
            self.payment_intent_id = intent_id
        self.updated_at = utcnow()

        logger.info(
            "Order payment status changed",
            order_id=str(self.id),
            from_status=current.value,
            to_status=status.value,
        )
