"""CJ Dropshipping API client.

Single authenticated gateway to the fulfillment provider: token lifecycle,
product search, freight quotes, order creation and order lookups. Every
response is checked against `CJEnvelope` before use; anything that is not
a well-formed object is a protocol violation rather than a business error.
"""

import logging
import time
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from storefront.core.config import Settings, get_settings
from storefront.core.token_cache import TokenCacheStore
from storefront.schemas.fulfillment import (
    CJCreatedOrder,
    CJEnvelope,
    CJFreightOption,
    CJTokenData,
    FulfillmentLineItem,
    FulfillmentOrderRequest,
)

logger = logging.getLogger(__name__)

ACCESS_TOKEN_SERVICE = "cj_access_token"
REFRESH_TOKEN_SERVICE = "cj_refresh_token"

# Used when the provider does not report an expiry date
ACCESS_TOKEN_LIFETIME_SECONDS = 23 * 60 * 60
REFRESH_TOKEN_LIFETIME_SECONDS = 180 * 24 * 60 * 60

RATE_LIMIT_MARKERS = ("too many requests", "qps limit")

# Transport retry configuration
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 0.5
MAX_WAIT_SECONDS = 4


class FulfillmentError(Exception):
    """Base error for fulfillment provider calls."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class FulfillmentAPIError(FulfillmentError):
    """The provider answered with a non-success code."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class FulfillmentRateLimitError(FulfillmentAPIError):
    """The provider rejected the call because of its request quota."""


class FulfillmentProtocolError(FulfillmentError):
    """The provider answered with something that is not a valid response object."""


def is_rate_limit_message(message: str | None) -> bool:
    """Check whether a provider message signals a rate limit."""
    lowered = (message or "").lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def resolve_warehouse_id(product: dict[str, Any]) -> str | None:
    """Pick the warehouse of a search result.

    Precedence: `warehouseId`, then `storageId`, then the id of the first
    `storageList` entry.
    """
    warehouse_id = product.get("warehouseId") or product.get("storageId")
    if warehouse_id:
        return str(warehouse_id)

    storage_list = product.get("storageList")
    if isinstance(storage_list, list) and storage_list:
        first = storage_list[0]
        if isinstance(first, dict) and first.get("id"):
            return str(first["id"])
    return None


def enrich_search_results(data: dict[str, Any]) -> dict[str, Any]:
    """Add a resolved `warehouseId` to every product of a search page."""
    content = data.get("content")
    if not isinstance(content, list):
        return data

    enriched_content = []
    for block in content:
        if isinstance(block, dict) and isinstance(block.get("productList"), list):
            block = {
                **block,
                "productList": [
                    {
                        **product,
                        "warehouseId": resolve_warehouse_id(product),
                        "storageList": product.get("storageList") or [],
                    }
                    for product in block["productList"]
                    if isinstance(product, dict)
                ],
            }
        enriched_content.append(block)

    return {**data, "content": enriched_content}


def _expiry_from(value: str | None, default_lifetime: int, now: float) -> int:
    """Convert a provider expiry date to epoch seconds."""
    if value:
        try:
            return int(datetime.fromisoformat(value).timestamp())
        except (TypeError, ValueError):
            logger.debug("Unparseable CJ expiry date %r, using default lifetime", value)
    return int(now) + default_lifetime


class CJDropshippingClient:
    """Client for the CJ Dropshipping REST API."""

    def __init__(
        self,
        token_store: TokenCacheStore | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token_store: Persisted token cache (defaults to the Supabase-backed store).
            settings: Application settings.
            transport: Optional httpx transport, used by tests.
        """
        self.settings = settings or get_settings()
        self.api_key = self.settings.cj_api_key
        self.base_url = self.settings.cj_api_url.rstrip("/")
        self.timeout = self.settings.cj_request_timeout_seconds
        self.token_store = token_store or TokenCacheStore()
        self._transport = transport
        if not self.api_key:
            logger.warning("CJ_API_KEY not set; CJ operations will fail until configured")

    # Token lifecycle

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing or re-authenticating as needed.

        Order of preference: cached access token, refresh-token exchange,
        full authentication with the API key. The refresh path is cheaper
        in terms of the provider's authentication quota.

        Raises:
            FulfillmentError: If no token can be obtained.
        """
        if not self.api_key:
            logger.error("CJ_API_KEY is not configured")
            raise FulfillmentError("CJ_API_KEY not configured")

        cached = await self.token_store.get_valid_token(ACCESS_TOKEN_SERVICE)
        if cached:
            return cached

        refresh_token = await self.token_store.get_valid_token(REFRESH_TOKEN_SERVICE)
        if refresh_token:
            try:
                return await self._refresh_access_token(refresh_token)
            except FulfillmentError as e:
                logger.warning("CJ token refresh failed, re-authenticating: %s", e.message)

        return await self._authenticate()

    async def _authenticate(self) -> str:
        logger.info("Fetching new CJ access token")
        data = await self._request(
            "POST",
            "/authentication/getAccessToken",
            operation="getAccessToken",
            json={"apiKey": self.api_key},
            authenticated=False,
        )
        return await self._store_tokens(data)

    async def _refresh_access_token(self, refresh_token: str) -> str:
        logger.info("Refreshing CJ access token")
        data = await self._request(
            "POST",
            "/authentication/refreshAccessToken",
            operation="refreshAccessToken",
            json={"refreshToken": refresh_token},
            authenticated=False,
        )
        return await self._store_tokens(data)

    async def _store_tokens(self, data: Any) -> str:
        try:
            tokens = CJTokenData.model_validate(data)
        except PydanticValidationError as e:
            raise FulfillmentProtocolError(f"Malformed CJ token response: {e.error_count()} error(s)") from e

        now = time.time()
        await self.token_store.store(
            ACCESS_TOKEN_SERVICE,
            tokens.access_token,
            _expiry_from(tokens.access_token_expiry_date, ACCESS_TOKEN_LIFETIME_SECONDS, now),
        )
        if tokens.refresh_token:
            await self.token_store.store(
                REFRESH_TOKEN_SERVICE,
                tokens.refresh_token,
                _expiry_from(tokens.refresh_token_expiry_date, REFRESH_TOKEN_LIFETIME_SECONDS, now),
            )
        return tokens.access_token

    # HTTP plumbing

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            return await client.request(method, path, headers=headers, params=params, json=json)

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        authenticated: bool = True,
    ) -> Any:
        """Call the API and return the envelope's `data` member.

        Raises:
            FulfillmentRateLimitError: Provider quota exceeded.
            FulfillmentAPIError: Provider returned a non-200 code.
            FulfillmentProtocolError: Response is not a valid envelope.
            FulfillmentError: Network failure.
        """
        headers = {"Content-Type": "application/json"}
        if authenticated:
            headers["CJ-Access-Token"] = await self.get_access_token()

        try:
            response = await self._send(method, path, headers, params=params, json=json)
        except httpx.HTTPError as e:
            logger.error("CJ API %s transport error: %s", operation, str(e))
            raise FulfillmentError(f"CJ {operation} request failed: {e}") from e

        if response.status_code == 429:
            logger.warning("CJ API rate limit hit for %s", operation)
            raise FulfillmentRateLimitError("Too Many Requests", code=429)

        try:
            body = response.json()
        except ValueError as e:
            raise FulfillmentProtocolError(
                f"CJ {operation} returned a non-JSON response (HTTP {response.status_code})"
            ) from e

        if not isinstance(body, dict):
            raise FulfillmentProtocolError(f"CJ {operation} returned a non-object response")

        try:
            envelope = CJEnvelope.model_validate(body)
        except PydanticValidationError as e:
            raise FulfillmentProtocolError(f"CJ {operation} returned a malformed response") from e

        if envelope.code != 200:
            message = envelope.message or f"CJ {operation} failed"
            if is_rate_limit_message(message):
                logger.warning("CJ API rate limit hit for %s: %s", operation, message)
                raise FulfillmentRateLimitError(message, code=envelope.code)
            logger.error("CJ API %s error %s: %s", operation, envelope.code, message)
            raise FulfillmentAPIError(message, code=envelope.code)

        return envelope.data

    # Operations

    async def search_products(
        self,
        keyword: str | None = None,
        category_id: str | None = None,
        page: int = 1,
        size: int = 20,
        start_sell_price: float | None = None,
        end_sell_price: float | None = None,
        country_code: str | None = None,
    ) -> dict[str, Any]:
        """Search the provider catalogue.

        Each product of the returned page carries a resolved `warehouseId`
        (see `resolve_warehouse_id`).

        Args:
            keyword: Free-text search.
            category_id: Provider category id.
            page: 1-based page number.
            size: Page size, clamped to the provider's 10..100 range.
            start_sell_price: Lower bound of the price range.
            end_sell_price: Upper bound of the price range.
            country_code: Only products stocked in this country.

        Returns:
            dict: The provider's search page.
        """
        params: dict[str, Any] = {
            "page": max(1, page),
            "size": max(10, min(100, size)),
        }
        if keyword:
            params["keyWord"] = keyword
        if category_id:
            params["categoryId"] = category_id
        if start_sell_price is not None:
            params["startSellPrice"] = start_sell_price
        if end_sell_price is not None:
            params["endSellPrice"] = end_sell_price
        if country_code:
            params["countryCode"] = country_code

        data = await self._request("GET", "/product/listV2", operation="searchProducts", params=params)
        if data is None:
            return {"content": []}
        if not isinstance(data, dict):
            raise FulfillmentProtocolError("CJ searchProducts returned a non-object payload")
        return enrich_search_results(data)

    async def calculate_freight(
        self,
        end_country_code: str,
        products: list[FulfillmentLineItem],
        zip_code: str | None = None,
        start_country_code: str | None = None,
    ) -> list[CJFreightOption]:
        """Quote the logistics options for shipping variants to a country.

        Args:
            end_country_code: Destination country (ISO 3166-1 alpha-2).
            products: Variant ids and quantities to ship.
            zip_code: Destination postal code, if known.
            start_country_code: Origin country; defaults to the configured one.

        Returns:
            list[CJFreightOption]: Options as priced by the provider.

        Raises:
            FulfillmentRateLimitError: Provider quota exceeded (1 call/second).
            FulfillmentProtocolError: If the payload is not a list of options.
        """
        payload: dict[str, Any] = {
            "startCountryCode": start_country_code or self.settings.cj_from_country_code,
            "endCountryCode": end_country_code,
            "products": [{"vid": item.vid, "quantity": item.quantity} for item in products],
        }
        if zip_code:
            payload["zip"] = zip_code

        data = await self._request("POST", "/logistic/freightCalculate", operation="calculateFreight", json=payload)
        if data is None:
            return []
        if not isinstance(data, list):
            raise FulfillmentProtocolError("CJ calculateFreight returned a non-list payload")

        try:
            options = [CJFreightOption.model_validate(option) for option in data]
        except PydanticValidationError as e:
            raise FulfillmentProtocolError("CJ calculateFreight returned a malformed option") from e

        logger.info("CJ freight calculated: %d option(s) to %s", len(options), end_country_code)
        return options

    async def create_order(self, order: FulfillmentOrderRequest) -> CJCreatedOrder:
        """Create an order with the provider.

        Args:
            order: Order number, address, variant lines, shipment type and remark.

        Returns:
            CJCreatedOrder: Provider order id, number and amount.

        Raises:
            FulfillmentProtocolError: If the response payload is not a valid order object.
        """
        address = order.shipping_address
        payload: dict[str, Any] = {
            "orderNumber": order.order_number,
            "shippingCountryCode": address.country,
            "shippingCountry": address.country,
            "shippingProvince": address.province or address.city or "N/A",
            "shippingCity": address.city,
            "shippingAddress": address.address,
            "shippingCustomerName": address.full_name,
            "shippingPhone": address.phone,
            "shippingZip": address.postal_code,
            "email": order.email,
            "logisticName": self.settings.cj_default_logistic_name,
            "fromCountryCode": self.settings.cj_from_country_code,
            "shipmentType": order.shipment_type,
            "shopLogisticsType": 2,
            "payType": 3,
            "remark": order.remark,
            "products": [{"vid": item.vid, "quantity": item.quantity} for item in order.items],
        }

        logger.info(
            "Creating CJ order %s (%d item(s), country=%s)",
            order.order_number,
            len(order.items),
            address.country,
        )

        data = await self._request(
            "POST",
            "/shopping/order/createOrderV3",
            operation="createOrder",
            json=payload,
        )
        if not isinstance(data, dict):
            raise FulfillmentProtocolError("Invalid response from CJ createOrder")

        try:
            created = CJCreatedOrder.model_validate(data)
        except PydanticValidationError as e:
            raise FulfillmentProtocolError("CJ createOrder response is missing orderId") from e

        logger.info(
            "CJ order created: %s (number=%s, amount=%s)",
            created.order_id,
            created.order_number,
            created.order_amount,
        )
        return created

    async def get_order_details(self, order_id: str, features: list[str] | None = None) -> dict[str, Any]:
        """Fetch a provider order.

        Args:
            order_id: Provider order id.
            features: Optional extra detail blocks to include.

        Raises:
            FulfillmentProtocolError: If the payload is not an order object.
        """
        params: dict[str, Any] = {"orderId": order_id}
        if features:
            params["features"] = features

        data = await self._request("GET", "/shopping/order/getOrderDetail", operation="getOrderDetails", params=params)
        if not isinstance(data, dict):
            raise FulfillmentProtocolError("CJ getOrderDetails returned a non-object payload")
        return data

    async def get_tracking_info(self, track_numbers: list[str]) -> list[dict[str, Any]]:
        """Fetch tracking events for one or more parcels."""
        if not track_numbers:
            return []

        data = await self._request(
            "GET",
            "/logistic/trackInfo",
            operation="getTrackingInfo",
            params={"trackNumber": track_numbers},
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise FulfillmentProtocolError("CJ getTrackingInfo returned a non-list payload")
        return [entry for entry in data if isinstance(entry, dict)]
