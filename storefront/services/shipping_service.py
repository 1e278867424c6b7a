"""Shipping quote business logic service."""

import logging

from supabase import Client

from storefront.api.middleware.error_handler import TooManyRequestsError
from storefront.core.cj_dropshipping import (
    CJDropshippingClient,
    FulfillmentError,
    FulfillmentRateLimitError,
)
from storefront.core.supabase import get_supabase_client
from storefront.models.product import Product
from storefront.schemas.checkout import CartItem
from storefront.schemas.fulfillment import CJFreightOption, FulfillmentLineItem
from storefront.schemas.shipping import ShippingOption, ShippingQuoteResponse
from storefront.services.fulfillment_service import resolve_variant_id
from storefront.services.shipping_quote_cache import ShippingQuoteCache, get_shipping_quote_cache

logger = logging.getLogger(__name__)

# Offered when the provider cannot price the cart
ESTIMATED_OPTIONS = [
    ShippingOption(id="standard", name="Standard", logistic_name="CJ Logistics", price=0, delivery_time="12-20"),
    ShippingOption(id="express", name="Express", logistic_name="CJ Express", price=15.99, delivery_time="7-12"),
]


def _to_option(option_id: str, name: str, freight: CJFreightOption) -> ShippingOption:
    return ShippingOption(
        id=option_id,
        name=name,
        logistic_name=freight.logistic_name,
        price=freight.logistic_price,
        delivery_time=freight.logistic_aging,
        taxes_fee=freight.taxes_fee or 0,
        clearance_fee=freight.clearance_operation_fee or 0,
        total_fee=freight.total_postage_fee or freight.logistic_price,
    )


def select_shipping_options(options: list[CJFreightOption]) -> list[ShippingOption]:
    """Reduce the provider's options to a Standard and an Express choice.

    Standard is the cheapest option. Express is the one with the shortest
    maximum delivery time; when that is the cheapest one too, the next
    cheapest option is offered instead. Options without a delivery time
    sort last.
    """
    if not options:
        return []

    by_price = sorted(options, key=lambda o: o.logistic_price)
    by_speed = sorted(options, key=lambda o: o.max_days if o.max_days is not None else 999)

    cheapest = by_price[0]
    selected = [_to_option("standard", "Standard", cheapest)]

    fastest = by_speed[0]
    if fastest is not cheapest:
        selected.append(_to_option("express", "Express", fastest))
    elif len(by_price) > 1:
        selected.append(_to_option("express", "Express", by_price[1]))
    return selected


def estimated_quote(message: str) -> ShippingQuoteResponse:
    return ShippingQuoteResponse(
        shipping_options=ESTIMATED_OPTIONS,
        default_shipping=ESTIMATED_OPTIONS[0],
        is_estimate=True,
        message=message,
    )


class ShippingService:
    """Service for freight quotes on a cart."""

    def __init__(
        self,
        client: Client | None = None,
        cj_client: CJDropshippingClient | None = None,
        cache: ShippingQuoteCache | None = None,
    ) -> None:
        self.client = client or get_supabase_client()
        self.cj_client = cj_client or CJDropshippingClient()
        self.cache = cache or get_shipping_quote_cache()

    async def _get_products(self, product_ids: list[str]) -> dict[str, Product]:
        response = (
            self.client.table("products")
            .select("id, name, cj_data, color_variants")
            .in_("id", product_ids)
            .execute()
        )
        return {str(p["id"]): p for p in response.data or []}

    def build_freight_lines(self, items: list[CartItem], products: dict[str, Product]) -> list[FulfillmentLineItem]:
        """Map cart lines to CJ variants.

        Lines whose product is unknown or has no CJ variant are left out.
        """
        lines = []
        for item in items:
            product = products.get(item.product_id)
            if not product:
                logger.warning("Shipping quote: product not found: %s", item.product_id)
                continue

            vid = resolve_variant_id(
                {"product_id": item.product_id, "name": item.name or product.get("name") or ""},
                product,
            )
            if not vid or vid == item.product_id:
                logger.warning("Shipping quote: product %s has no CJ variant", item.product_id)
                continue
            lines.append(FulfillmentLineItem(vid=vid, quantity=item.quantity))
        return lines

    async def quote(
        self,
        items: list[CartItem],
        country: str,
        postal_code: str | None = None,
    ) -> ShippingQuoteResponse:
        """Quote shipping options for a cart.

        Falls back to estimated options when no line maps to a CJ variant
        or the provider fails. Results priced by the provider are cached.

        Raises:
            TooManyRequestsError: The provider's freight quota is exhausted.
        """
        country = country.upper()
        key = self.cache.make_key(country, postal_code, [(item.product_id, item.quantity) for item in items])
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        products = await self._get_products(list(dict.fromkeys(item.product_id for item in items)))
        lines = self.build_freight_lines(items, products)
        if not lines:
            return estimated_quote("No products with CJ variants, using estimated shipping")

        try:
            freight = await self.cj_client.calculate_freight(country, lines, zip_code=postal_code)
        except FulfillmentRateLimitError as e:
            raise TooManyRequestsError(f"Fulfillment provider rate limit: {e.message}") from e
        except FulfillmentError as e:
            logger.warning("CJ freight calculation failed, using estimate: %s", e.message)
            return estimated_quote("Shipping could not be calculated, using estimated shipping")

        options = select_shipping_options(freight)
        if not options:
            return estimated_quote("No shipping options returned, using estimated shipping")

        result = ShippingQuoteResponse(shipping_options=options, default_shipping=options[0])
        self.cache.set(key, result)
        return result
