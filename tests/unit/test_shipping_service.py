"""Unit tests for ShippingService and the freight quote cache."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from storefront.api.middleware.error_handler import TooManyRequestsError
from storefront.core.cj_dropshipping import FulfillmentAPIError, FulfillmentRateLimitError
from storefront.schemas.checkout import CartItem
from storefront.schemas.fulfillment import CJFreightOption, FulfillmentLineItem
from storefront.services.shipping_quote_cache import ShippingQuoteCache
from storefront.services.shipping_service import ShippingService, select_shipping_options


def response(data: Any) -> MagicMock:
    mock_response = MagicMock()
    mock_response.data = data
    return mock_response


def freight(name: str, price: float, aging: str | None, **extra: Any) -> CJFreightOption:
    return CJFreightOption(logisticName=name, logisticPrice=price, logisticAging=aging, **extra)


PRODUCTS = [
    {"id": "prod-1", "name": "Silk Scarf", "cj_data": {"vid": "VID-1"}, "color_variants": None},
    {
        "id": "prod-2",
        "name": "Leather Wallet",
        "cj_data": {},
        "color_variants": [{"color": "Black", "cj_vid": "VID-2-BLK"}],
    },
    {"id": "prod-3", "name": "Local Candle", "cj_data": None, "color_variants": None},
]


@pytest.fixture
def mock_supabase() -> MagicMock:
    client = MagicMock()
    client.table.return_value.select.return_value.in_.return_value.execute.return_value = response(PRODUCTS)
    return client


@pytest.fixture
def cj_client() -> AsyncMock:
    client = AsyncMock()
    client.calculate_freight.return_value = [
        freight("CJPacket", 4.2, "12-20", taxesFee=0.5),
        freight("DHL", 18.0, "3-5", totalPostageFee=19.1),
        freight("YunExpress", 7.5, "8-12"),
    ]
    return client


@pytest.fixture
def service(mock_supabase: MagicMock, cj_client: AsyncMock) -> ShippingService:
    return ShippingService(client=mock_supabase, cj_client=cj_client, cache=ShippingQuoteCache())


class TestSelectShippingOptions:
    """Tests for select_shipping_options."""

    def test_cheapest_is_standard_and_fastest_is_express(self) -> None:
        options = select_shipping_options([
            freight("DHL", 18.0, "3-5"),
            freight("CJPacket", 4.2, "12-20"),
        ])

        assert [(o.id, o.logistic_name, o.price) for o in options] == [
            ("standard", "CJPacket", 4.2),
            ("express", "DHL", 18.0),
        ]

    def test_cheapest_and_fastest_same_offers_next_cheapest(self) -> None:
        options = select_shipping_options([
            freight("YunExpress", 9.0, "10-15"),
            freight("CJPacket", 4.2, "5-7"),
        ])

        assert [o.logistic_name for o in options] == ["CJPacket", "YunExpress"]
        assert options[1].id == "express"

    def test_single_option_is_standard_only(self) -> None:
        options = select_shipping_options([freight("CJPacket", 4.2, None)])

        assert len(options) == 1
        assert options[0].delivery_time is None
        assert options[0].total_fee == 4.2

    def test_no_options(self) -> None:
        assert select_shipping_options([]) == []


class TestQuote:
    """Tests for ShippingService.quote."""

    @pytest.mark.asyncio
    async def test_quotes_resolved_variants(self, service: ShippingService, cj_client: AsyncMock) -> None:
        """Test that color variants resolve and lines without a CJ variant are left out."""
        items = [
            CartItem(product_id="prod-1", quantity=2),
            CartItem(product_id="prod-2", quantity=1, name="Leather Wallet - Black"),
            CartItem(product_id="prod-3", quantity=1),
        ]

        quote = await service.quote(items, "fr", "75002")

        cj_client.calculate_freight.assert_awaited_once_with(
            "FR",
            [FulfillmentLineItem(vid="VID-1", quantity=2), FulfillmentLineItem(vid="VID-2-BLK", quantity=1)],
            zip_code="75002",
        )
        assert quote.is_estimate is False
        assert quote.default_shipping.logistic_name == "CJPacket"
        assert quote.default_shipping.taxes_fee == 0.5
        assert [o.logistic_name for o in quote.shipping_options] == ["CJPacket", "DHL"]

    @pytest.mark.asyncio
    async def test_repeat_quote_is_served_from_cache(self, service: ShippingService, cj_client: AsyncMock) -> None:
        items = [CartItem(product_id="prod-1", quantity=1)]

        first = await service.quote(items, "US", None)
        second = await service.quote(items, "us", None)

        assert first == second
        cj_client.calculate_freight.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_cj_variants_returns_estimate(self, service: ShippingService, cj_client: AsyncMock) -> None:
        quote = await service.quote([CartItem(product_id="prod-3", quantity=1)], "US")

        cj_client.calculate_freight.assert_not_called()
        assert quote.is_estimate is True
        assert [o.id for o in quote.shipping_options] == ["standard", "express"]
        assert quote.default_shipping.price == 0

    @pytest.mark.asyncio
    async def test_unknown_product_returns_estimate(self, service: ShippingService) -> None:
        quote = await service.quote([CartItem(product_id="ghost", quantity=1)], "US")

        assert quote.is_estimate is True

    @pytest.mark.asyncio
    async def test_provider_error_returns_estimate_and_is_not_cached(
        self, service: ShippingService, cj_client: AsyncMock
    ) -> None:
        cj_client.calculate_freight.side_effect = FulfillmentAPIError("Invalid param", code=1603001)
        items = [CartItem(product_id="prod-1", quantity=1)]

        first = await service.quote(items, "US")
        second = await service.quote(items, "US")

        assert first.is_estimate is True
        assert second.is_estimate is True
        assert cj_client.calculate_freight.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_provider_answer_returns_estimate(self, service: ShippingService, cj_client: AsyncMock) -> None:
        cj_client.calculate_freight.return_value = []

        quote = await service.quote([CartItem(product_id="prod-1", quantity=1)], "US")

        assert quote.is_estimate is True

    @pytest.mark.asyncio
    async def test_rate_limit_raises_too_many_requests(self, service: ShippingService, cj_client: AsyncMock) -> None:
        cj_client.calculate_freight.side_effect = FulfillmentRateLimitError("Too Many Requests", code=1600200)

        with pytest.raises(TooManyRequestsError) as exc_info:
            await service.quote([CartItem(product_id="prod-1", quantity=1)], "US")

        assert exc_info.value.status_code == 429


class TestShippingQuoteCache:
    """Tests for ShippingQuoteCache."""

    def test_key_ignores_line_order_and_country_case(self) -> None:
        first = ShippingQuoteCache.make_key("fr", "75002", [("prod-1", 2), ("prod-2", 1)])
        second = ShippingQuoteCache.make_key("FR", "75002", [("prod-2", 1), ("prod-1", 2)])

        assert first == second
        assert first != ShippingQuoteCache.make_key("FR", "75003", [("prod-1", 2), ("prod-2", 1)])

    def test_expired_entry_is_a_miss(self) -> None:
        cache = ShippingQuoteCache(ttl_seconds=-1)
        cache.set("key", "value")

        assert cache.get("key") is None

    def test_full_cache_evicts_oldest(self) -> None:
        cache = ShippingQuoteCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("c") == 3
        assert cache.clear() == 2
