"""Shipping quote API routes."""

from typing import Any

from fastapi import APIRouter

from storefront.schemas.common import success_response
from storefront.schemas.shipping import ShippingQuoteRequest
from storefront.services.shipping_service import ShippingService

router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.post(
    "/quote",
    summary="Quote shipping options",
    description="Prices Standard and Express shipping for a cart with CJ, or returns estimated options.",
)
async def quote_shipping(data: ShippingQuoteRequest) -> dict[str, Any]:
    """Quote shipping for a cart.

    The options use the field names the checkout session accepts as its
    `shipping` selection.

    Raises:
        TooManyRequestsError: 429 if CJ rate limits the freight calculation.
    """
    quote = await ShippingService().quote(data.items, data.country, data.postal_code)
    return success_response(quote.model_dump(by_alias=True))
