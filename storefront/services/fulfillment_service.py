"""Fulfillment order reconciliation.

Creates the CJ order for a paid local order. This is the only path that
creates downstream orders, whether triggered by the Stripe webhook or by
an admin retry, and it is safe to call repeatedly.
"""

import logging
import re
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError
from supabase import Client

from storefront.api.middleware.error_handler import (
    InternalError,
    InvalidInputError,
    NotFoundError,
    TooManyRequestsError,
)
from storefront.core.cj_dropshipping import (
    CJDropshippingClient,
    FulfillmentError,
    FulfillmentRateLimitError,
)
from storefront.core.config import Settings, get_settings
from storefront.core.supabase import get_supabase_client
from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.schemas.fulfillment import (
    FulfillmentAddress,
    FulfillmentLineItem,
    FulfillmentOrderRequest,
    FulfillmentOrderResult,
)

logger = logging.getLogger(__name__)

# Order item names carry the selected color as "<product name> - <color>"
COLOR_SUFFIX = re.compile(r"\s-\s(.+)$")


def resolve_variant_id(item: OrderItem, product: Product | None) -> str:
    """Map an order line to the CJ variant id to ship.

    Precedence: the color variant named in the item, the product's default
    CJ variant, then the local product id. The last one is a known
    degradation: CJ rejects unknown ids and the error lands on the order.
    """
    product = product or {}
    match = COLOR_SUFFIX.search(item.get("name") or "")
    if match:
        color = match.group(1).strip()
        for variant in product.get("color_variants") or []:
            if variant.get("color") == color and variant.get("cj_vid"):
                logger.info("Color %r resolved to CJ variant %s", color, variant["cj_vid"])
                return str(variant["cj_vid"])
        logger.warning("Color %r has no CJ variant id on product %s", color, product.get("id"))

    vid = (product.get("cj_data") or {}).get("vid")
    if vid:
        return str(vid)

    fallback = str(item.get("product_id") or product.get("id") or "")
    logger.warning(
        "No CJ variant for item %r, falling back to local product id %s",
        item.get("name"),
        fallback,
    )
    return fallback


class FulfillmentService:
    """Service for creating and retrying CJ orders."""

    def __init__(
        self,
        client: Client | None = None,
        cj_client: CJDropshippingClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.client = client or get_supabase_client()
        self.settings = settings or get_settings()
        self.cj_client = cj_client or CJDropshippingClient(settings=self.settings)

    async def get_order(self, order_id: str) -> Order | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def _get_products(self, product_ids: list[str]) -> dict[str, Product]:
        if not product_ids:
            return {}
        response = (
            self.client.table("products")
            .select("id, name, cj_data, color_variants")
            .in_("id", product_ids)
            .execute()
        )
        return {str(p["id"]): p for p in response.data or []}

    def build_fulfillment_request(
        self,
        order: Order,
        products: dict[str, Product],
    ) -> FulfillmentOrderRequest:
        """Build the CJ order for a local order.

        No warehouse is set so CJ selects one itself.

        Raises:
            pydantic.ValidationError: If the order has no items or a malformed address.
        """
        address = {k: v for k, v in (order.get("shipping_address") or {}).items() if v is not None}
        items = [
            FulfillmentLineItem(
                vid=resolve_variant_id(item, products.get(str(item.get("product_id")))),
                quantity=int(item.get("quantity") or 1),
            )
            for item in order.get("items") or []
        ]
        customer = order.get("customer_email") or "customer"
        return FulfillmentOrderRequest(
            order_number=str(order["id"]),
            shipping_address=FulfillmentAddress.model_validate(address),
            items=items,
            shipment_type=1,
            remark=f"{self.settings.store_name} order from {customer}",
            email=order.get("customer_email") or "",
        )

    async def create_fulfillment_order(self, order_id: str) -> FulfillmentOrderResult:
        """Create the CJ order for a paid local order, at most once.

        Args:
            order_id: Local order id.

        Returns:
            FulfillmentOrderResult: The CJ order id, number and amount.

        Raises:
            NotFoundError: Order does not exist.
            InvalidInputError: Order not paid, or CJ order already created.
            TooManyRequestsError: CJ rate limit hit.
            InternalError: CJ call failed; the message is stored on the order.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")

        if order.get("payment_status") != "paid":
            raise InvalidInputError("Order is not paid yet")

        if order.get("cj_order_id"):
            raise InvalidInputError(
                "Fulfillment order already created",
                details={"cj_order_id": order["cj_order_id"]},
            )

        product_ids = list({str(item.get("product_id")) for item in order.get("items") or [] if item.get("product_id")})
        products = await self._get_products(product_ids)

        try:
            request = self.build_fulfillment_request(order, products)
        except PydanticValidationError as e:
            message = f"Order cannot be sent to fulfillment: {e.error_count()} invalid field(s)"
            await self._record_fulfillment_error(order_id, message)
            raise InternalError(message) from e

        try:
            created = await self.cj_client.create_order(request)
        except FulfillmentRateLimitError as e:
            await self._record_fulfillment_error(order_id, e.message)
            raise TooManyRequestsError(f"Fulfillment provider rate limit: {e.message}") from e
        except FulfillmentError as e:
            logger.error("CJ order creation failed for %s: %s", order_id, e.message)
            await self._record_fulfillment_error(order_id, e.message)
            raise InternalError(f"Fulfillment order creation failed: {e.message}") from e
        except Exception as e:
            logger.error("Unexpected error creating CJ order for %s: %s", order_id, str(e), exc_info=True)
            await self._record_fulfillment_error(order_id, str(e))
            raise InternalError(f"Fulfillment order creation failed: {e}") from e

        if not await self._record_fulfillment_order(order_id, created.order_id, created.order_number):
            # Another caller recorded a CJ order between our check and our write
            logger.error(
                "Order %s already had a CJ order when recording %s",
                order_id,
                created.order_id,
            )
            raise InvalidInputError(
                "Fulfillment order already created",
                details={"cj_order_id": created.order_id},
            )

        logger.info("CJ order %s recorded for order %s", created.order_id, order_id)
        return FulfillmentOrderResult(
            cj_order_id=created.order_id,
            cj_order_number=created.order_number,
            order_amount=created.order_amount,
        )

    async def _record_fulfillment_order(
        self,
        order_id: str,
        cj_order_id: str,
        cj_order_number: str | None,
    ) -> bool:
        """Write the CJ order onto the local order only if none is set yet.

        Returns:
            bool: False if another CJ order id was already recorded.
        """
        response = (
            self.client.table("orders")
            .update({
                "cj_order_id": cj_order_id,
                "cj_order_number": cj_order_number,
                "cj_order_error": None,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", str(order_id))
            .is_("cj_order_id", "null")
            .execute()
        )
        return bool(response.data)

    async def _record_fulfillment_error(self, order_id: str, message: str) -> None:
        try:
            self.client.table("orders").update({
                "cj_order_error": message,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }).eq("id", str(order_id)).execute()
        except Exception as e:
            logger.error("Could not record fulfillment error on order %s: %s", order_id, str(e))
