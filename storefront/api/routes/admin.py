"""Admin API routes."""

import logging
from typing import Any

from fastapi import APIRouter

from storefront.api.deps import AdminUser
from storefront.schemas.common import success_response
from storefront.schemas.fulfillment import RetryFulfillmentRequest
from storefront.services.fulfillment_service import FulfillmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/orders/retry-fulfillment",
    summary="Retry fulfillment order",
    description="Creates the CJ order for a paid order that has none yet.",
)
async def retry_fulfillment(data: RetryFulfillmentRequest, admin: AdminUser) -> dict[str, Any]:
    """Create the missing CJ order of a paid order.

    Raises:
        NotFoundError: 404 if the order does not exist.
        InvalidInputError: 400 if the order is unpaid or already has a CJ order.
        TooManyRequestsError: 429 if CJ rate limits the call.
        InternalError: 500 if CJ rejects the order; the error is stored on the order.
    """
    logger.info("Admin %s retrying fulfillment for order %s", admin.user_id, data.order_id)
    result = await FulfillmentService().create_fulfillment_order(data.order_id)
    return success_response({
        "message": "Fulfillment order created",
        "orderId": data.order_id,
        "cjOrderId": result.cj_order_id,
        "cjOrderNumber": result.cj_order_number,
        "orderAmount": result.order_amount,
    })
