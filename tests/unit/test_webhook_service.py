"""Unit tests for CJWebhookService."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from storefront.core.config import Settings
from storefront.services.webhook_service import CJWebhookService, _parse_timestamp, apply_markup

ORDER_ID = "770e8400-e29b-41d4-a716-446655440002"


def response(data: Any) -> MagicMock:
    mock_response = MagicMock()
    mock_response.data = data
    return mock_response


def lookup_table(rows_by_column: dict[str, list[dict[str, Any]]]) -> MagicMock:
    """Table mock whose select().eq(column, value) answers from rows_by_column."""
    table = MagicMock()
    table.lookups = []

    def eq(column: str, value: Any) -> MagicMock:
        table.lookups.append((column, value))
        query = MagicMock()
        query.limit.return_value.execute.return_value = response(rows_by_column.get(column, []))
        return query

    table.select.return_value.eq.side_effect = eq
    return table


def make_service(
    products: MagicMock | None = None,
    orders: MagicMock | None = None,
    email_service: AsyncMock | None = None,
) -> CJWebhookService:
    tables = {"products": products or lookup_table({}), "orders": orders or lookup_table({})}
    client = MagicMock()
    client.table.side_effect = lambda name: tables[name]
    return CJWebhookService(
        client=client,
        email_service=email_service or AsyncMock(),
        settings=Settings(cj_price_markup=3.0),
    )


def sample_product(**overrides: Any) -> dict[str, Any]:
    product = {
        "id": "prod-1",
        "name": "Silk Scarf",
        "price": 59.97,
        "stock": 8,
        "in_stock": True,
        "cj_data": {"product_id": "CJP-1", "vid": "VID-1", "sku": "SKU-1"},
    }
    product.update(overrides)
    return product


def sample_order(**overrides: Any) -> dict[str, Any]:
    order = {
        "id": ORDER_ID,
        "customer_email": "jane@example.com",
        "status": "processing",
        "payment_status": "paid",
        "cj_order_id": "CJ-ORDER-1",
        "cj_order_number": ORDER_ID,
        "tracking_number": None,
        "tracking_carrier": None,
        "shipped_at": None,
        "delivered_at": None,
        "cj_data": {},
    }
    order.update(overrides)
    return order


class TestHelpers:
    """Tests for apply_markup and _parse_timestamp."""

    @pytest.mark.parametrize(
        ("sell_price", "markup", "expected"),
        [(12.34, 3.0, 37.02), (3.335, 3.0, 10.01), (10, 2.5, 25.0)],
    )
    def test_apply_markup_rounds_half_up(self, sell_price: float, markup: float, expected: float) -> None:
        assert apply_markup(sell_price, markup) == expected

    def test_parse_timestamp_accepts_epoch_milliseconds(self) -> None:
        assert _parse_timestamp(1_700_000_000_000) == _parse_timestamp(1_700_000_000)

    def test_parse_timestamp_accepts_iso_strings(self) -> None:
        assert _parse_timestamp("2026-03-01T10:00:00Z") == "2026-03-01T10:00:00+00:00"

    def test_parse_timestamp_rejects_garbage(self) -> None:
        assert _parse_timestamp("next tuesday") is None
        assert _parse_timestamp(None) is None


class TestValidationPayloads:
    """Tests for CJ's endpoint validation requests."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "body"),
        [
            ("handle_product_update", {"productId": "test"}),
            ("handle_stock_update", {"vid": "test", "stock": 1}),
            ("handle_order_status", {"orderId": "test", "orderStatus": "SHIPPED"}),
            ("handle_logistics_update", {"trackingNumber": "test"}),
        ],
    )
    async def test_sentinel_never_touches_database(self, method: str, body: dict[str, Any]) -> None:
        """Test that validation payloads are acknowledged without a database client."""
        with patch("storefront.services.webhook_service.get_supabase_client") as mock_get_client:
            service = CJWebhookService(email_service=AsyncMock(), settings=Settings())
            result = await getattr(service, method)(body)

        assert result["message"] == "Webhook validation successful"
        assert isinstance(result["processingTime"], int)
        mock_get_client.assert_not_called()


class TestProductWebhook:
    """Tests for handle_product_update."""

    @pytest.mark.asyncio
    async def test_applies_markup_to_sell_price(self) -> None:
        products = lookup_table({"cj_data->>product_id": [sample_product()]})
        service = make_service(products=products)

        result = await service.handle_product_update({"productId": "CJP-1", "sellPrice": 12.34, "updateType": "PRICE"})

        assert result["message"] == "Product updated"
        assert result["productId"] == "prod-1"
        updates = products.update.call_args.args[0]
        assert updates["price"] == 37.02
        assert updates["cj_data"]["update_type"] == "PRICE"
        assert updates["cj_data"]["vid"] == "VID-1"
        products.update.return_value.eq.assert_called_once_with("id", "prod-1")

    @pytest.mark.asyncio
    async def test_discontinued_product_goes_out_of_stock(self) -> None:
        products = lookup_table({"cj_data->>product_id": [sample_product()]})
        service = make_service(products=products)

        await service.handle_product_update({"productId": "CJP-1", "discontinued": True})

        updates = products.update.call_args.args[0]
        assert updates["in_stock"] is False
        assert updates["stock"] == 0
        assert "price" not in updates

    @pytest.mark.asyncio
    async def test_lookup_falls_back_to_vid_then_sku(self) -> None:
        """Test product lookup precedence: CJ product id, variant id, sku."""
        products = lookup_table({"cj_data->>sku": [sample_product()]})
        service = make_service(products=products)

        result = await service.handle_product_update({"productId": "CJP-X", "vid": "VID-X", "sku": "SKU-1"})

        assert result["productId"] == "prod-1"
        assert [column for column, _ in products.lookups] == [
            "cj_data->>product_id",
            "cj_data->>vid",
            "cj_data->>sku",
        ]

    @pytest.mark.asyncio
    async def test_unknown_product_is_acknowledged(self) -> None:
        products = lookup_table({})
        service = make_service(products=products)

        result = await service.handle_product_update({"productId": "CJP-404", "sellPrice": 5})

        assert result["message"] == "Product not found but acknowledged"
        products.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_payload_without_identifier_is_acknowledged(self) -> None:
        service = make_service()

        result = await service.handle_product_update({"sellPrice": 5})

        assert result["message"] == "Invalid webhook payload (acknowledged)"
        assert "_root" in result["details"]

    @pytest.mark.asyncio
    async def test_unknown_fields_are_accepted(self) -> None:
        products = lookup_table({"cj_data->>vid": [sample_product()]})
        service = make_service(products=products)

        result = await service.handle_product_update({"vid": "VID-1", "brandNewField": {"nested": True}})

        assert result["message"] == "Product updated"


class TestStockWebhook:
    """Tests for handle_stock_update."""

    @pytest.mark.asyncio
    async def test_sets_stock_and_warehouse(self) -> None:
        products = lookup_table({"cj_data->>vid": [sample_product()]})
        service = make_service(products=products)

        result = await service.handle_stock_update({"vid": "VID-1", "stock": 12, "warehouseId": "WH-US"})

        assert result["newStock"] == 12
        updates = products.update.call_args.args[0]
        assert updates["stock"] == 12
        assert "in_stock" not in updates
        assert updates["cj_data"]["warehouse_id"] == "WH-US"

    @pytest.mark.asyncio
    async def test_replayed_event_converges(self) -> None:
        """Test that applying the same event twice yields the same stock."""
        products = lookup_table({"cj_data->>vid": [sample_product()]})
        service = make_service(products=products)
        body = {"vid": "VID-1", "stock": 5}

        await service.handle_stock_update(body)
        await service.handle_stock_update(body)

        first, second = (call.args[0] for call in products.update.call_args_list)
        assert first["stock"] == second["stock"] == 5

    @pytest.mark.asyncio
    async def test_negative_stock_is_clamped(self) -> None:
        products = lookup_table({"cj_data->>vid": [sample_product()]})
        service = make_service(products=products)

        await service.handle_stock_update({"vid": "VID-1", "stock": -4})

        updates = products.update.call_args.args[0]
        assert updates["stock"] == 0
        assert updates["in_stock"] is False

    @pytest.mark.asyncio
    async def test_out_of_stock_flag_zeroes_stock(self) -> None:
        products = lookup_table({"cj_data->>vid": [sample_product()]})
        service = make_service(products=products)

        await service.handle_stock_update({"vid": "VID-1", "inStock": False})

        updates = products.update.call_args.args[0]
        assert updates["stock"] == 0
        assert updates["in_stock"] is False

    @pytest.mark.asyncio
    async def test_numeric_identifiers_are_accepted(self) -> None:
        products = lookup_table({"cj_data->>vid": [sample_product()]})
        service = make_service(products=products)

        result = await service.handle_stock_update({"vid": 123456, "stock": "7"})

        assert result["newStock"] == 7
        assert products.lookups[0] == ("cj_data->>vid", "123456")

    @pytest.mark.asyncio
    async def test_database_failure_is_acknowledged(self) -> None:
        products = lookup_table({"cj_data->>vid": [sample_product()]})
        products.update.return_value.eq.return_value.execute.side_effect = RuntimeError("db down")
        service = make_service(products=products)

        result = await service.handle_stock_update({"vid": "VID-1", "stock": 3})

        assert result["message"] == "Webhook processing failed (acknowledged)"
        assert result["error"] == "db down"

    @pytest.mark.asyncio
    async def test_non_object_body_is_acknowledged(self) -> None:
        result = await make_service().handle_stock_update(None)

        assert result["message"] == "Invalid webhook payload (acknowledged)"


class TestOrderWebhook:
    """Tests for handle_order_status."""

    @pytest.mark.asyncio
    async def test_shipped_status_sets_tracking_and_emails(self) -> None:
        orders = lookup_table({"cj_order_id": [sample_order()]})
        email_service = AsyncMock()
        service = make_service(orders=orders, email_service=email_service)

        result = await service.handle_order_status({
            "orderId": "CJ-ORDER-1",
            "orderStatus": "SHIPPED",
            "trackingNumber": "LT123",
            "logisticName": "YunExpress",
        })

        assert result["newStatus"] == "shipped"
        updates = orders.update.call_args.args[0]
        assert updates["tracking_number"] == "LT123"
        assert updates["tracking_carrier"] == "YunExpress"
        assert updates["shipped_at"]
        email_service.send_shipping_notification.assert_awaited_once()
        assert email_service.send_shipping_notification.call_args.args[1] == "LT123"

    @pytest.mark.asyncio
    async def test_repeated_status_sends_no_email(self) -> None:
        orders = lookup_table({"cj_order_id": [sample_order(status="shipped", tracking_number="LT123")]})
        email_service = AsyncMock()
        service = make_service(orders=orders, email_service=email_service)

        await service.handle_order_status({"orderId": "CJ-ORDER-1", "orderStatus": "SHIPPED"})

        email_service.send_shipping_notification.assert_not_called()
        assert "tracking_number" not in orders.update.call_args.args[0]

    @pytest.mark.asyncio
    async def test_delivered_status_sends_delivery_email(self) -> None:
        orders = lookup_table({"cj_order_id": [sample_order(status="shipped")]})
        email_service = AsyncMock()
        service = make_service(orders=orders, email_service=email_service)

        await service.handle_order_status({"orderId": "CJ-ORDER-1", "orderStatus": "DELIVERED"})

        assert orders.update.call_args.args[0]["delivered_at"]
        email_service.send_delivery_confirmation.assert_awaited_once()

    @pytest.mark.parametrize(("cj_status", "expected"), [("FAILED", "cancelled"), ("confirmed", "processing")])
    @pytest.mark.asyncio
    async def test_maps_provider_statuses(self, cj_status: str, expected: str) -> None:
        orders = lookup_table({"cj_order_id": [sample_order()]})
        service = make_service(orders=orders)

        result = await service.handle_order_status({"orderId": "CJ-ORDER-1", "orderStatus": cj_status})

        assert result["newStatus"] == expected

    @pytest.mark.asyncio
    async def test_unknown_status_keeps_current_one(self) -> None:
        orders = lookup_table({"cj_order_id": [sample_order()]})
        service = make_service(orders=orders)

        result = await service.handle_order_status({"orderId": "CJ-ORDER-1", "orderStatus": "ON_HOLD_BY_CUSTOMS"})

        assert result["newStatus"] == "processing"

    @pytest.mark.asyncio
    async def test_order_number_matches_local_id(self) -> None:
        """Test lookup by our own order id, which is sent to CJ as the order number."""
        orders = lookup_table({"id": [sample_order()]})
        service = make_service(orders=orders)

        result = await service.handle_order_status({"orderNumber": ORDER_ID, "orderStatus": "PROCESSING"})

        assert result["orderId"] == ORDER_ID
        assert [column for column, _ in orders.lookups] == ["cj_order_number", "id"]

    @pytest.mark.asyncio
    async def test_unknown_order_is_acknowledged(self) -> None:
        orders = lookup_table({})
        service = make_service(orders=orders)

        result = await service.handle_order_status({"orderId": "CJ-404", "orderStatus": "SHIPPED"})

        assert result["message"] == "Order not found but acknowledged"
        orders.update.assert_not_called()


class TestLogisticsWebhook:
    """Tests for handle_logistics_update."""

    @pytest.mark.asyncio
    async def test_in_transit_ships_order_and_emails(self) -> None:
        orders = lookup_table({"cj_order_id": [sample_order()]})
        email_service = AsyncMock()
        service = make_service(orders=orders, email_service=email_service)

        result = await service.handle_logistics_update({
            "orderId": "CJ-ORDER-1",
            "trackingNumber": "LT999",
            "trackingStatus": "In Transit",
            "lastMileCarrier": "USPS",
            "trackingEvents": [{"status": "Departed", "time": "2026-03-01"}],
        })

        assert result["trackingNumber"] == "LT999"
        updates = orders.update.call_args.args[0]
        assert updates["status"] == "shipped"
        assert updates["tracking_carrier"] == "USPS"
        assert updates["cj_data"]["tracking"]["tracking_status"] == "In Transit"
        assert updates["cj_data"]["tracking_events"][0]["status"] == "Departed"
        email_service.send_shipping_notification.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tracking_number_lookup_comes_first(self) -> None:
        orders = lookup_table({"tracking_number": [sample_order(tracking_number="LT999", status="shipped")]})
        email_service = AsyncMock()
        service = make_service(orders=orders, email_service=email_service)

        await service.handle_logistics_update({"trackingNumber": "LT999", "orderId": "CJ-ORDER-1"})

        assert orders.lookups[0] == ("tracking_number", "LT999")
        assert len(orders.lookups) == 1
        email_service.send_shipping_notification.assert_not_called()

    @pytest.mark.asyncio
    async def test_delivered_uses_provider_delivery_time(self) -> None:
        orders = lookup_table({"tracking_number": [sample_order(tracking_number="LT999", status="shipped")]})
        email_service = AsyncMock()
        service = make_service(orders=orders, email_service=email_service)

        await service.handle_logistics_update({
            "trackingNumber": "LT999",
            "trackingStatus": "Delivered",
            "deliveryTime": "2026-03-05T14:00:00Z",
        })

        updates = orders.update.call_args.args[0]
        assert updates["status"] == "delivered"
        assert updates["delivered_at"] == "2026-03-05T14:00:00+00:00"
        email_service.send_delivery_confirmation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delivered_order_is_not_downgraded(self) -> None:
        orders = lookup_table({"tracking_number": [sample_order(tracking_number="LT999", status="delivered")]})
        service = make_service(orders=orders)

        await service.handle_logistics_update({"trackingNumber": "LT999", "trackingStatus": "In transit"})

        assert "status" not in orders.update.call_args.args[0]
