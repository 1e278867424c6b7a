"""Webhook API routes for Stripe and CJ Dropshipping."""

import logging
import time
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Request, status

from storefront.schemas.common import success_response
from storefront.services.checkout_service import CheckoutService
from storefront.services.webhook_service import CJWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives and processes Stripe webhook events. Requires valid signature.",
)
async def stripe_webhook(request: Request) -> dict[str, Any]:
    """Handle Stripe webhook events.

    Handles checkout.session.completed; other event types are acknowledged.

    Raises:
        InvalidInputError: 400 if the signature is missing or invalid.
    """
    payload = await request.body()
    service = CheckoutService()
    event = service.verify_webhook_signature(payload, request.headers.get("stripe-signature"))

    event_type = event.get("type", "")
    logger.info("Stripe webhook received: %s (id=%s)", event_type, event.get("id"))

    if event_type == "checkout.session.completed":
        result = await service.handle_checkout_completed(event)
    else:
        logger.info("Unhandled Stripe event type: %s", event_type)
        result = {"received": True}

    return success_response(result)


async def _acknowledge(
    request: Request,
    kind: str,
    handle: Callable[[CJWebhookService, Any], Awaitable[dict[str, Any]]],
) -> dict[str, Any]:
    """Run a CJ webhook handler and always return a success envelope."""
    start = time.perf_counter()
    try:
        body = await request.json()
    except ValueError:
        body = None

    logger.info("CJ %s webhook received: %s", kind, body)
    try:
        data = await handle(CJWebhookService(), body)
    except Exception as e:
        logger.error("CJ %s webhook failed: %s", kind, str(e), exc_info=True)
        data = {
            "message": "Webhook processing failed (acknowledged)",
            "error": str(e),
            "processingTime": int((time.perf_counter() - start) * 1000),
        }
    return success_response(data)


@router.post(
    "/cj/product",
    status_code=status.HTTP_200_OK,
    summary="CJ product update webhook",
    description="Applies CJ product changes. Always answers 200 so CJ does not retry.",
)
async def cj_product_webhook(request: Request) -> dict[str, Any]:
    return await _acknowledge(request, "product", lambda service, body: service.handle_product_update(body))


@router.post(
    "/cj/stock",
    status_code=status.HTTP_200_OK,
    summary="CJ stock update webhook",
    description="Applies CJ stock changes. Always answers 200 so CJ does not retry.",
)
async def cj_stock_webhook(request: Request) -> dict[str, Any]:
    return await _acknowledge(request, "stock", lambda service, body: service.handle_stock_update(body))


@router.post(
    "/cj/order",
    status_code=status.HTTP_200_OK,
    summary="CJ order status webhook",
    description="Applies CJ order status changes. Always answers 200 so CJ does not retry.",
)
async def cj_order_webhook(request: Request) -> dict[str, Any]:
    return await _acknowledge(request, "order", lambda service, body: service.handle_order_status(body))


@router.post(
    "/cj/logistics",
    status_code=status.HTTP_200_OK,
    summary="CJ logistics webhook",
    description="Applies CJ tracking updates. Always answers 200 so CJ does not retry.",
)
async def cj_logistics_webhook(request: Request) -> dict[str, Any]:
    return await _acknowledge(request, "logistics", lambda service, body: service.handle_logistics_update(body))
