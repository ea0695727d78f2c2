"""Lookups into registered customers and their address books."""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.user import User, UserAddress

logger = get_logger(__name__)


@dataclass(frozen=True)
class CustomerContact:
    """Who to notify about a registered user's order."""

    user_id: uuid.UUID
    name: str
    email: str
    phone: Optional[str] = None


class CustomerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_address(
        self, user_id: uuid.UUID, address_id: uuid.UUID
    ) -> Optional[UserAddress]:
        """
        Fetch a saved address that belongs to ``user_id``.

        Returns:
            The address, or None if it does not exist or belongs to
            another user
        """
        result = await self.session.execute(
            select(UserAddress).where(
                UserAddress.id == address_id,
                UserAddress.user_id == user_id,
            )
        )
        address = result.scalar_one_or_none()
        if address is None:
            logger.debug(
                "Address not found for user",
                user_id=str(user_id),
                address_id=str(address_id),
            )
        return address

    async def get_contact(self, user_id: uuid.UUID) -> Optional[CustomerContact]:
        result = await self.session.execute(
            select(User).where(User.id == user_id, User.is_active.is_(True))
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return CustomerContact(
            user_id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
        )
