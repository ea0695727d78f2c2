"""
Customer accounts and their saved shipping addresses.

Credentials and token issuance are handled by the identity service; this
module only stores what checkout needs: contact details and the address
book registered users pick from.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import BaseModel, enum_type
from storefront.services.orders.enums import AddressKind


class UserRole(str, enum.Enum):
    """User role for access control."""

    CUSTOMER = "customer"
    ADMIN = "admin"


class User(BaseModel):
    """
    Registered customer or administrator.

    Attributes:
        email: Contact email, unique
        name: Display name used in notifications
        phone: Contact phone number
        role: customer or admin
        is_active: Deactivated accounts cannot check out
        addresses: Saved shipping addresses
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("length(email) >= 3", name="ck_users_email_min_length"),
        Index("ix_users_role_active", "role", "is_active"),
        {"comment": "Registered storefront customers"},
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "user_role"),
        nullable=False,
        default=UserRole.CUSTOMER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    addresses: Mapped[list["UserAddress"]] = relationship(
        "UserAddress",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class UserAddress(BaseModel):
    """
    Saved postal address.

    Copied by value into an order at checkout; later edits here never
    change placed orders.
    """

    __tablename__ = "user_addresses"
    __table_args__ = (
        Index("ix_user_addresses_user_id", "user_id"),
        {"comment": "Address book entries of registered users"},
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[AddressKind] = mapped_column(
        enum_type(AddressKind, "address_kind"),
        nullable=False,
        default=AddressKind.HOME,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(120), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(120), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user: Mapped["User"] = relationship("User", back_populates="addresses")

    def to_snapshot(self) -> dict[str, object]:
        """Address fields as stored inside an order."""
        return {
            "kind": self.kind.value,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "is_default": bool(self.is_default),
        }
