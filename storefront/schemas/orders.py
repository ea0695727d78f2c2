"""
Order Pydantic schemas for API request/response validation.

Monetary amounts are Decimals and serialize to JSON strings so that no
precision is lost on the way to the client.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.database.models.order import Order
from storefront.services.orders.enums import (
    AddressKind,
    Currency,
    OrderStatus,
    PaymentProvider,
    PaymentStatus,
)


def _normalize_email(v: str) -> str:
    if "@" not in v or "." not in v.split("@")[-1]:
        raise ValueError("Invalid email format")
    return v.lower()


def _normalize_phone(v: str) -> str:
    digits = "".join(filter(str.isdigit, v))
    if len(digits) < 10:
        raise ValueError("Phone number must contain at least 10 digits")
    return digits


class LineItemRequest(BaseModel):
    product_id: UUID = Field(..., description="Product to order")
    quantity: int = Field(..., ge=1, le=1000, description="Units requested")
    variant: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Chosen variant such as size or color",
    )


class GuestContactRequest(BaseModel):
    """Contact details of a guest customer."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    phone: str = Field(..., min_length=10, max_length=32)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_format(cls, v: str) -> str:
        return _normalize_phone(v)


class ShippingAddressRequest(BaseModel):
    """Shipping address entered at guest checkout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    kind: AddressKind = Field(default=AddressKind.HOME)
    name: str = Field(..., min_length=2, max_length=255)
    phone: str = Field(..., min_length=10, max_length=32)
    address: str = Field(..., min_length=5, max_length=500)
    city: str = Field(..., min_length=2, max_length=120)
    state: str = Field(..., min_length=2, max_length=120)
    postal_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field(..., min_length=2, max_length=120)
    is_default: bool = False

    @field_validator("phone")
    @classmethod
    def validate_phone_format(cls, v: str) -> str:
        return _normalize_phone(v)

    def to_snapshot(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class GuestCheckoutRequest(BaseModel):
    """Body of ``POST /orders/guest-cod``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    guest: GuestContactRequest
    shipping_address: ShippingAddressRequest
    items: list[LineItemRequest] = Field(..., min_length=1)
    coupon_code: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)


class UserCheckoutRequest(BaseModel):
    """Body of ``POST /orders``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    address_id: UUID = Field(..., description="Saved address to ship to")
    items: list[LineItemRequest] = Field(..., min_length=1)
    payment_provider: PaymentProvider = Field(default=PaymentProvider.COD)
    coupon_code: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=500)


class PaymentUpdateRequest(BaseModel):
    status: PaymentStatus
    transaction_id: Optional[str] = Field(None, max_length=255)
    intent_id: Optional[str] = Field(None, max_length=255)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: UUID
    name: str
    thumbnail: Optional[str] = None
    variant: Optional[str] = None
    unit_price: Decimal
    currency: Currency
    quantity: int
    line_total: Decimal


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    note: Optional[str] = None
    at: datetime


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider: PaymentProvider
    status: PaymentStatus
    transaction_id: Optional[str] = None
    intent_id: Optional[str] = None


class GuestContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    email: str
    phone: str


class OrderResponse(BaseModel):
    """Full order representation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    user_id: Optional[UUID] = None
    is_guest: bool
    guest: Optional[GuestContactResponse] = None
    items: list[OrderItemResponse]
    subtotal: Decimal
    discount_total: Decimal
    shipping_fee: Decimal
    grand_total: Decimal
    currency: Currency
    address: dict[str, Any]
    status: OrderStatus
    payment: PaymentResponse
    history: list[StatusHistoryResponse]
    coupon_code: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls.model_validate(order)


class CheckoutResponse(BaseModel):
    order_id: UUID
    order_number: str
    status: OrderStatus
    grand_total: Decimal
    currency: Currency
