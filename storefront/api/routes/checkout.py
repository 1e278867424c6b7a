"""Checkout and order API routes."""

import logging
from typing import Any

from fastapi import APIRouter, status

from storefront.api.deps import CurrentUser
from storefront.schemas.checkout import (
    CheckoutSessionCreate,
    CheckoutSessionResponse,
    CheckoutSuccessRequest,
    OrderCreateRequest,
    OrderResponse,
    PaymentConfirmationResponse,
)
from storefront.schemas.common import success_response
from storefront.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post(
    "/session",
    status_code=status.HTTP_201_CREATED,
    summary="Create Stripe Checkout Session",
    description="Prices the cart from the catalogue and opens a Stripe Checkout Session for a pending order.",
)
async def create_checkout_session(data: CheckoutSessionCreate, user: CurrentUser) -> dict[str, Any]:
    """Create a Stripe Checkout Session.

    Client-submitted prices are ignored. The frontend should redirect to
    the returned url.

    Raises:
        NotFoundError: 404 if a cart product does not exist.
    """
    service = CheckoutService()
    result = await service.create_checkout_session(
        user=user,
        items=data.items,
        order_id=data.order_id,
        shipping=data.shipping,
    )
    await service.attach_session_to_order(
        order_id=data.order_id,
        user_id=str(user.user_id),
        session_id=result["session_id"],
        items=result["items"],
        shipping_cost=data.shipping.price if data.shipping else 0,
        amount_total=result["amount_total"],
    )
    return success_response(CheckoutSessionResponse(session_id=result["session_id"], url=result["url"]))


@router.post(
    "/success",
    summary="Confirm payment",
    description="Verifies a completed Stripe Checkout Session and marks the caller's order as paid.",
)
async def confirm_checkout(data: CheckoutSuccessRequest, user: CurrentUser) -> dict[str, Any]:
    """Confirm payment of a checkout session. Safe to call repeatedly."""
    result = await CheckoutService().confirm_payment(data.session_id, user)
    return success_response(PaymentConfirmationResponse(**result))


# Orders router - mounted separately at /orders
orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Creates a pending order priced from the catalogue.",
)
async def create_order(data: OrderCreateRequest, user: CurrentUser) -> dict[str, Any]:
    order = await CheckoutService().create_order(
        user=user,
        items=data.items,
        shipping_address=data.shipping_address.model_dump(exclude_none=True),
        shipping_cost=data.shipping_cost,
    )
    return success_response(OrderResponse.model_validate(order))


@orders_router.get(
    "",
    summary="List my orders",
    description="Returns all orders of the authenticated user, newest first.",
)
async def list_orders(user: CurrentUser) -> dict[str, Any]:
    orders = await CheckoutService().get_orders_for_user(str(user.user_id))
    return success_response([OrderResponse.model_validate(order) for order in orders])


@orders_router.get(
    "/{order_id}",
    summary="Get order by ID",
    description="Returns a single order. Only accessible by the order owner.",
)
async def get_order(order_id: str, user: CurrentUser) -> dict[str, Any]:
    """Get a single order by ID.

    Raises:
        NotFoundError: 404 if order not found.
        AuthorizationError: 403 if the order belongs to someone else.
    """
    order = await CheckoutService().get_order_for_user(order_id, user)
    return success_response(OrderResponse.model_validate(order))
