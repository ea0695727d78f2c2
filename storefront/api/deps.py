"""
FastAPI dependencies for authentication, authorization and service wiring.

Bearer tokens are issued by the account service; this API only verifies
them. The ``sub`` claim carries the user id and the user's role is read
from the database so that a demotion takes effect immediately.
"""

from dataclasses import dataclass
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.logging import get_logger, set_user_id
from storefront.database.connection import get_db
from storefront.database.models.user import User, UserRole
from storefront.services.catalog.reader import SqlCatalogReader
from storefront.services.coupons.repository import CouponRepository
from storefront.services.coupons.validator import CouponValidator
from storefront.services.customers.repository import CustomerRepository
from storefront.services.notifications.tasks import CeleryNotificationQueue
from storefront.services.orders.checkout import CheckoutService
from storefront.services.orders.pricing import PricingEngine
from storefront.services.orders.queries import OrderQueryService
from storefront.services.orders.repository import OrderRepository

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    user_id: UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_principal(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DatabaseSession,
) -> Principal:
    """
    Validate the bearer token and resolve the calling user.

    Args:
        credentials: HTTP Bearer token from Authorization header
        db: Database session

    Returns:
        Principal: Authenticated user id and role

    Raises:
        HTTPException: 401 if the token is missing or invalid, or the user
            no longer exists or is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    settings = get_settings()
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning(
            "Authentication failed: JWT validation error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise credentials_exception

    subject = payload.get("sub")
    try:
        user_id = UUID(str(subject))
    except ValueError:
        logger.warning("Authentication failed: Invalid subject", subject=subject)
        raise credentials_exception

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning("Authentication failed: Unknown or inactive user", user_id=str(user_id))
        raise credentials_exception

    set_user_id(str(user.id))
    return Principal(user_id=user.id, role=user.role)


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def require_admin(principal: CurrentPrincipal) -> Principal:
    """
    Restrict an endpoint to administrators.

    Raises:
        HTTPException: 403 if the caller is not an administrator
    """
    if not principal.is_admin:
        logger.warning(
            "Access denied: Insufficient permissions",
            user_id=str(principal.user_id),
            user_role=principal.role.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return principal


CurrentAdmin = Annotated[Principal, Depends(require_admin)]


def get_checkout_service(db: DatabaseSession) -> CheckoutService:
    """Assemble a checkout service bound to the request's session."""
    settings = get_settings()
    return CheckoutService(
        pricing=PricingEngine(SqlCatalogReader(db), settings.shipping_policy),
        coupons=CouponValidator(CouponRepository(db)),
        orders=OrderRepository(db),
        customers=CustomerRepository(db),
        notifications=CeleryNotificationQueue(),
        max_order_number_attempts=settings.order_number_max_attempts,
    )


def get_order_query_service(db: DatabaseSession) -> OrderQueryService:
    return OrderQueryService(OrderRepository(db))


CheckoutServiceDep = Annotated[CheckoutService, Depends(get_checkout_service)]
OrderQueryServiceDep = Annotated[OrderQueryService, Depends(get_order_query_service)]
