"""Fulfillment provider catalogue routes (admin)."""

import logging
from typing import Any

from fastapi import APIRouter, Query

from storefront.api.deps import AdminUser
from storefront.api.middleware.error_handler import (
    InternalError,
    TooManyRequestsError,
    ValidationError,
)
from storefront.core.cj_dropshipping import (
    CJDropshippingClient,
    FulfillmentError,
    FulfillmentRateLimitError,
)
from storefront.schemas.common import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fulfillment", tags=["fulfillment"])


@router.get(
    "/products",
    summary="Search CJ products",
    description="Searches the CJ catalogue. Each result carries a resolved warehouseId.",
)
async def search_products(
    admin: AdminUser,
    keyword: str | None = Query(default=None),
    category_id: str | None = Query(default=None, alias="categoryId"),
    page: int = Query(default=1, ge=1),
    size: int = Query(default=20, ge=1, le=100),
    start_sell_price: float | None = Query(default=None, alias="startSellPrice", ge=0),
    end_sell_price: float | None = Query(default=None, alias="endSellPrice", ge=0),
    country_code: str | None = Query(default=None, alias="countryCode", min_length=2, max_length=2),
) -> dict[str, Any]:
    """Search the CJ catalogue.

    Raises:
        ValidationError: 422 if the price range is inverted.
        TooManyRequestsError: 429 if CJ rate limits the call.
        InternalError: 500 on any other CJ failure.
    """
    if start_sell_price is not None and end_sell_price is not None and start_sell_price > end_sell_price:
        raise ValidationError(
            "Invalid price range",
            details={"startSellPrice": ["must not exceed endSellPrice"]},
        )

    try:
        data = await CJDropshippingClient().search_products(
            keyword=keyword,
            category_id=category_id,
            page=page,
            size=size,
            start_sell_price=start_sell_price,
            end_sell_price=end_sell_price,
            country_code=country_code,
        )
    except FulfillmentRateLimitError as e:
        raise TooManyRequestsError(f"Fulfillment provider rate limit: {e.message}") from e
    except FulfillmentError as e:
        logger.error("CJ product search failed: %s", e.message)
        raise InternalError(f"Product search failed: {e.message}") from e

    return success_response(data)
