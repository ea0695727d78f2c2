"""
Order API endpoints.

Checkout for guests and registered users, order lookups and the
administrative status and payment updates. Service errors propagate to the
application's exception handlers, which map them onto the error envelope.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from storefront.api.deps import (
    CheckoutServiceDep,
    CurrentAdmin,
    CurrentPrincipal,
    OrderQueryServiceDep,
)
from storefront.core.logging import get_logger
from storefront.database.models.order import GuestContact
from storefront.schemas.common import ApiResponse, PaginationMeta
from storefront.schemas.orders import (
    CheckoutResponse,
    GuestCheckoutRequest,
    OrderResponse,
    OrderStatusUpdateRequest,
    PaymentUpdateRequest,
    UserCheckoutRequest,
)
from storefront.services.orders.checkout import CheckoutResult
from storefront.services.orders.pricing import LineItem

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _checkout_response(result: CheckoutResult) -> CheckoutResponse:
    return CheckoutResponse(
        order_id=result.order_id,
        order_number=result.order_number,
        status=result.order.status,
        grand_total=result.order.grand_total,
        currency=result.order.currency,
    )


@router.post(
    "/guest-cod",
    response_model=ApiResponse[CheckoutResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Place a cash-on-delivery order as a guest",
)
async def create_guest_order(
    request: GuestCheckoutRequest,
    checkout: CheckoutServiceDep,
) -> ApiResponse[CheckoutResponse]:
    logger.info("Guest checkout requested", item_count=len(request.items))

    result = await checkout.checkout_as_guest(
        contact=GuestContact(
            name=request.guest.name,
            email=request.guest.email,
            phone=request.guest.phone,
        ),
        address=request.shipping_address.to_snapshot(),
        items=[
            LineItem(item.product_id, item.quantity, item.variant)
            for item in request.items
        ],
        coupon_code=request.coupon_code,
        notes=request.notes,
    )
    return ApiResponse(message="Order placed successfully", data=_checkout_response(result))


@router.post(
    "",
    response_model=ApiResponse[CheckoutResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Place an order as the authenticated user",
)
async def create_order(
    request: UserCheckoutRequest,
    principal: CurrentPrincipal,
    checkout: CheckoutServiceDep,
) -> ApiResponse[CheckoutResponse]:
    """
    Place an order shipped to one of the caller's saved addresses.

    Args:
        request: Address, line items, payment provider and optional coupon
        principal: Authenticated caller
        checkout: Checkout service

    Returns:
        Envelope with the new order's id, number and total
    """
    logger.info(
        "User checkout requested",
        user_id=str(principal.user_id),
        item_count=len(request.items),
        payment_provider=request.payment_provider.value,
    )

    result = await checkout.checkout_as_user(
        user_id=principal.user_id,
        address_id=request.address_id,
        items=[
            LineItem(item.product_id, item.quantity, item.variant)
            for item in request.items
        ],
        payment_provider=request.payment_provider,
        coupon_code=request.coupon_code,
        notes=request.notes,
    )
    return ApiResponse(message="Order placed successfully", data=_checkout_response(result))


@router.get(
    "",
    response_model=ApiResponse[list[OrderResponse]],
    summary="List the authenticated user's orders",
)
async def list_orders(
    principal: CurrentPrincipal,
    queries: OrderQueryServiceDep,
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, le=100, description="Orders per page"),
) -> ApiResponse[list[OrderResponse]]:
    result = await queries.list_for_user(principal.user_id, page=page, page_size=limit)
    return ApiResponse(
        message="Orders retrieved successfully",
        data=[OrderResponse.from_order(order) for order in result.orders],
        pagination=PaginationMeta(
            page=result.pagination.page,
            limit=result.pagination.limit,
            total=result.pagination.total,
            pages=result.pagination.pages,
        ),
    )


@router.get(
    "/guest",
    response_model=ApiResponse[list[OrderResponse]],
    summary="Look up guest orders by email or phone",
)
async def list_guest_orders(
    queries: OrderQueryServiceDep,
    email: Optional[str] = Query(None, max_length=255),
    phone: Optional[str] = Query(None, max_length=32),
) -> ApiResponse[list[OrderResponse]]:
    """
    Guest orders placed with the given email or phone, newest first.

    Both parameters are required; a missing one is answered with 400.
    """
    orders = await queries.list_for_guest(email or "", phone or "")
    return ApiResponse(
        message="Orders retrieved successfully",
        data=[OrderResponse.from_order(order) for order in orders],
    )


@router.get(
    "/by-number/{order_number}",
    response_model=ApiResponse[OrderResponse],
    summary="Get an order by its order number",
)
async def get_order_by_number(
    order_number: str,
    principal: CurrentPrincipal,
    queries: OrderQueryServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await queries.get_by_order_number(
        order_number,
        requesting_user_id=None if principal.is_admin else principal.user_id,
    )
    return ApiResponse(message="Order retrieved successfully", data=OrderResponse.from_order(order))


@router.get(
    "/{order_id}",
    response_model=ApiResponse[OrderResponse],
    summary="Get an order by id",
)
async def get_order(
    order_id: UUID,
    principal: CurrentPrincipal,
    queries: OrderQueryServiceDep,
) -> ApiResponse[OrderResponse]:
    # Administrators may read any order.
    order = await queries.get_by_id(
        order_id,
        requesting_user_id=None if principal.is_admin else principal.user_id,
    )
    return ApiResponse(message="Order retrieved successfully", data=OrderResponse.from_order(order))


@router.patch(
    "/{order_id}/status",
    response_model=ApiResponse[OrderResponse],
    summary="Move an order to a new status (admin)",
)
async def update_order_status(
    order_id: UUID,
    request: OrderStatusUpdateRequest,
    admin: CurrentAdmin,
    queries: OrderQueryServiceDep,
) -> ApiResponse[OrderResponse]:
    """
    Apply an administrative status transition.

    Args:
        order_id: Order to update
        request: Target status and optional note
        admin: Authenticated administrator
        queries: Order query service

    Returns:
        Envelope with the updated order and its history
    """
    order = await queries.update_status(order_id, request.status, note=request.note)
    logger.info(
        "Order status updated",
        order_id=str(order_id),
        status=request.status.value,
        admin_id=str(admin.user_id),
    )
    return ApiResponse(
        message="Order status updated successfully",
        data=OrderResponse.from_order(order),
    )


@router.patch(
    "/{order_id}/payment",
    response_model=ApiResponse[OrderResponse],
    summary="Record a payment status update (admin)",
)
async def update_order_payment(
    order_id: UUID,
    request: PaymentUpdateRequest,
    admin: CurrentAdmin,
    queries: OrderQueryServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await queries.update_payment(
        order_id,
        request.status,
        transaction_id=request.transaction_id,
        intent_id=request.intent_id,
    )
    logger.info(
        "Order payment updated",
        order_id=str(order_id),
        payment_status=request.status.value,
        admin_id=str(admin.user_id),
    )
    return ApiResponse(
        message="Payment status updated successfully",
        data=OrderResponse.from_order(order),
    )
