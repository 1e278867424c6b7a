"""CJ Dropshipping webhook ingestion.

CJ retries any event that is not acknowledged with HTTP 200 within a few
seconds, so every handler here returns acknowledgement data and never
raises: validation failures, unknown identifiers and internal errors are
all logged and reported inside the acknowledgement.

Handlers treat each event as the latest truth for the fields it carries.
Stock is set, never incremented, so replaying an event converges to the
same state. `cj_data` is a JSON column and is merged read-modify-write, so
two events racing on the same row can drop each other's `cj_data` keys.
"""

import logging
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from supabase import Client

from storefront.core.config import Settings, get_settings
from storefront.core.supabase import get_supabase_client
from storefront.models.order import Order, OrderUpdate
from storefront.models.product import Product, ProductUpdate
from storefront.schemas.common import format_validation_errors
from storefront.schemas.webhook import (
    CJLogisticsWebhook,
    CJOrderWebhook,
    CJProductWebhook,
    CJStockWebhook,
    is_test_payload,
)
from storefront.services.email_service import EmailService

logger = logging.getLogger(__name__)

ORDER_STATUS_MAP = {
    "pending": "pending",
    "confirmed": "processing",
    "processing": "processing",
    "shipped": "shipped",
    "delivered": "delivered",
    "cancelled": "cancelled",
    "failed": "cancelled",
}


def apply_markup(sell_price: float, markup: float) -> float:
    """Compute the store price from a CJ sell price, rounded half up to cents."""
    price = Decimal(str(sell_price)) * Decimal(str(markup))
    return float(price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _parse_timestamp(value: str | int | None) -> str | None:
    """Parse a CJ timestamp (ISO string or epoch seconds/milliseconds) to ISO 8601."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)) or str(value).isdigit():
            epoch = float(value)
            if epoch > 1e12:
                epoch /= 1000
            return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.isoformat()
    except (TypeError, ValueError, OverflowError):
        logger.debug("Unparseable CJ timestamp %r", value)
        return None


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except (TypeError, ValueError):
        return False
    return True


class CJWebhookService:
    """Apply CJ product, stock, order and logistics events."""

    def __init__(
        self,
        client: Client | None = None,
        email_service: EmailService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self.settings = settings or get_settings()
        self._email_service = email_service

    @property
    def client(self) -> Client:
        # Resolved on first use so validation payloads never touch the database
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = EmailService()
        return self._email_service

    # Lookups

    async def find_product(
        self,
        product_id: str | None = None,
        vid: str | None = None,
        sku: str | None = None,
    ) -> Product | None:
        """Find a product by CJ product id, then variant id, then sku."""
        for column, value in (
            ("cj_data->>product_id", product_id),
            ("cj_data->>vid", vid),
            ("cj_data->>sku", sku),
        ):
            if not value:
                continue
            response = self.client.table("products").select("*").eq(column, value).limit(1).execute()
            if response.data:
                return response.data[0]
        return None

    async def find_order(
        self,
        order_id: str | None = None,
        order_number: str | None = None,
        tracking_number: str | None = None,
    ) -> Order | None:
        """Find an order by tracking number, CJ order number, local id, then CJ order id."""
        candidates: list[tuple[str, str | None]] = [("tracking_number", tracking_number)]
        if order_number:
            candidates.append(("cj_order_number", order_number))
            if _is_uuid(order_number):
                # We send our own order id as the CJ order number
                candidates.append(("id", order_number))
        candidates.append(("cj_order_id", order_id))

        for column, value in candidates:
            if not value:
                continue
            response = self.client.table("orders").select("*").eq(column, value).limit(1).execute()
            if response.data:
                return response.data[0]
        return None

    # Product events

    def build_product_updates(self, product: Product, event: CJProductWebhook) -> ProductUpdate:
        """Compute the column updates for a product event, only for fields it carries."""
        now = _now_iso()
        updates: ProductUpdate = {"updated_at": now}

        if event.sell_price is not None and event.sell_price > 0:
            updates["price"] = apply_markup(event.sell_price, self.settings.cj_price_markup)
            logger.info(
                "Updating price for %s: %s -> %s",
                product.get("name"),
                product.get("price"),
                updates["price"],
            )
        if event.product_image:
            updates["image"] = event.product_image
        if event.product_name:
            updates["name"] = event.product_name
        if event.description:
            updates["description"] = event.description
        if event.discontinued is True:
            updates["in_stock"] = False
            updates["stock"] = 0
            logger.info("Product %s discontinued by CJ", product.get("name"))

        cj_data = dict(product.get("cj_data") or {})
        cj_data["last_product_update"] = now
        cj_data["update_type"] = event.update_type
        if event.variants is not None:
            cj_data["variants"] = event.variants
        updates["cj_data"] = cj_data
        return updates

    async def handle_product_update(self, body: Any) -> dict[str, Any]:
        """Apply a product event and return the acknowledgement data."""
        start = time.perf_counter()

        if is_test_payload(body, "productId", "vid", "sku"):
            logger.info("CJ product webhook validation payload acknowledged")
            return {"message": "Webhook validation successful", "processingTime": _elapsed_ms(start)}

        try:
            event = CJProductWebhook.model_validate(body)
        except PydanticValidationError as e:
            logger.warning("CJ product webhook: payload validation failed: %s", e.errors())
            return {
                "message": "Invalid webhook payload (acknowledged)",
                "details": format_validation_errors(e),
                "processingTime": _elapsed_ms(start),
            }

        try:
            product = await self.find_product(event.product_id, event.vid, event.sku)
            if not product:
                logger.warning(
                    "CJ product webhook: product not found (productId=%s, vid=%s, sku=%s)",
                    event.product_id,
                    event.vid,
                    event.sku,
                )
                return {"message": "Product not found but acknowledged", "processingTime": _elapsed_ms(start)}

            updates = self.build_product_updates(product, event)
            self.client.table("products").update(updates).eq("id", product["id"]).execute()
        except Exception as e:
            logger.error("CJ product webhook processing failed: %s", str(e), exc_info=True)
            return {
                "message": "Webhook processing failed (acknowledged)",
                "error": str(e),
                "processingTime": _elapsed_ms(start),
            }

        elapsed = _elapsed_ms(start)
        logger.info("Product %s updated from CJ webhook (%dms)", product["id"], elapsed)
        return {
            "message": "Product updated",
            "productId": product["id"],
            "updateType": event.update_type,
            "processingTime": elapsed,
        }

    # Stock events

    def build_stock_updates(self, product: Product, event: CJStockWebhook) -> ProductUpdate:
        """Compute the column updates for a stock event.

        Stock is clamped at zero; `inStock: false` without a stock count sets
        stock to zero; a resulting stock of zero always means out of stock.
        """
        now = _now_iso()
        updates: ProductUpdate = {"updated_at": now}

        if event.stock is not None:
            updates["stock"] = max(0, event.stock)
        if event.in_stock is not None:
            updates["in_stock"] = event.in_stock
            if not event.in_stock and "stock" not in updates:
                updates["stock"] = 0

        if int(updates.get("stock", product.get("stock") or 0)) <= 0:
            updates["in_stock"] = False

        cj_data = dict(product.get("cj_data") or {})
        cj_data["last_stock_update"] = now
        if event.warehouse_id:
            cj_data["warehouse_id"] = event.warehouse_id
        updates["cj_data"] = cj_data
        return updates

    async def handle_stock_update(self, body: Any) -> dict[str, Any]:
        """Apply a stock event and return the acknowledgement data."""
        start = time.perf_counter()

        if is_test_payload(body, "vid", "sku", "productId"):
            logger.info("CJ stock webhook validation payload acknowledged")
            return {"message": "Webhook validation successful", "processingTime": _elapsed_ms(start)}

        try:
            event = CJStockWebhook.model_validate(body)
        except PydanticValidationError as e:
            logger.warning("CJ stock webhook: payload validation failed: %s", e.errors())
            return {
                "message": "Invalid webhook payload (acknowledged)",
                "details": format_validation_errors(e),
                "processingTime": _elapsed_ms(start),
            }

        try:
            product = await self.find_product(event.product_id, event.vid, event.sku)
            if not product:
                logger.warning(
                    "CJ stock webhook: product not found (productId=%s, vid=%s, sku=%s)",
                    event.product_id,
                    event.vid,
                    event.sku,
                )
                return {"message": "Product not found but acknowledged", "processingTime": _elapsed_ms(start)}

            updates = self.build_stock_updates(product, event)
            self.client.table("products").update(updates).eq("id", product["id"]).execute()
        except Exception as e:
            logger.error("CJ stock webhook processing failed: %s", str(e), exc_info=True)
            return {
                "message": "Webhook processing failed (acknowledged)",
                "error": str(e),
                "processingTime": _elapsed_ms(start),
            }

        elapsed = _elapsed_ms(start)
        logger.info(
            "Stock updated for product %s: %s -> %s (%dms)",
            product["id"],
            product.get("stock"),
            updates.get("stock"),
            elapsed,
        )
        return {
            "message": "Stock updated",
            "productId": product["id"],
            "newStock": updates.get("stock"),
            "processingTime": elapsed,
        }

    # Order events

    async def handle_order_status(self, body: Any) -> dict[str, Any]:
        """Apply a CJ order status event and return the acknowledgement data."""
        start = time.perf_counter()

        if is_test_payload(body, "orderId", "orderNumber"):
            logger.info("CJ order webhook validation payload acknowledged")
            return {"message": "Webhook validation successful", "processingTime": _elapsed_ms(start)}

        try:
            event = CJOrderWebhook.model_validate(body)
        except PydanticValidationError as e:
            logger.warning("CJ order webhook: payload validation failed: %s", e.errors())
            return {
                "message": "Invalid webhook payload (acknowledged)",
                "details": format_validation_errors(e),
                "processingTime": _elapsed_ms(start),
            }

        try:
            order = await self.find_order(order_id=event.order_id, order_number=event.order_number)
            if not order:
                logger.warning(
                    "CJ order webhook: order not found (orderId=%s, orderNumber=%s)",
                    event.order_id,
                    event.order_number,
                )
                return {"message": "Order not found but acknowledged", "processingTime": _elapsed_ms(start)}

            now = _now_iso()
            previous_status = order.get("status")
            new_status = ORDER_STATUS_MAP.get((event.order_status or "").lower(), previous_status)
            updates: OrderUpdate = {"status": new_status, "updated_at": now}

            if event.tracking_number and not order.get("tracking_number"):
                updates["tracking_number"] = event.tracking_number
            if event.logistic_name and not order.get("tracking_carrier"):
                updates["tracking_carrier"] = event.logistic_name
            if new_status == "shipped" and not order.get("shipped_at"):
                updates["shipped_at"] = now
            if new_status == "delivered" and not order.get("delivered_at"):
                updates["delivered_at"] = now

            cj_data = dict(order.get("cj_data") or {})
            cj_data["last_webhook_update"] = now
            cj_data["order_status"] = event.order_status
            if event.logistic_name:
                cj_data["logistic_name"] = event.logistic_name
            if event.order_id:
                cj_data["order_id"] = event.order_id
            updates["cj_data"] = cj_data

            self.client.table("orders").update(updates).eq("id", order["id"]).execute()
        except Exception as e:
            logger.error("CJ order webhook processing failed: %s", str(e), exc_info=True)
            return {
                "message": "Webhook processing failed (acknowledged)",
                "error": str(e),
                "processingTime": _elapsed_ms(start),
            }

        elapsed = _elapsed_ms(start)
        logger.info("Order %s updated to %s (%dms)", order["id"], new_status, elapsed)

        if new_status != previous_status:
            updated_order = {**order, **updates}
            if new_status == "shipped":
                tracking = updated_order.get("tracking_number")
                if tracking:
                    await self.email_service.send_shipping_notification(updated_order, tracking)
                else:
                    logger.warning("No tracking number to send shipping email for order %s", order["id"])
            elif new_status == "delivered":
                await self.email_service.send_delivery_confirmation(updated_order)

        return {
            "message": "Order updated",
            "orderId": order["id"],
            "newStatus": new_status,
            "processingTime": elapsed,
        }

    async def handle_logistics_update(self, body: Any) -> dict[str, Any]:
        """Apply a CJ tracking event and return the acknowledgement data."""
        start = time.perf_counter()

        if is_test_payload(body, "trackingNumber", "orderId"):
            logger.info("CJ logistics webhook validation payload acknowledged")
            return {"message": "Webhook validation successful", "processingTime": _elapsed_ms(start)}

        try:
            event = CJLogisticsWebhook.model_validate(body)
        except PydanticValidationError as e:
            logger.warning("CJ logistics webhook: payload validation failed: %s", e.errors())
            return {
                "message": "Invalid webhook payload (acknowledged)",
                "details": format_validation_errors(e),
                "processingTime": _elapsed_ms(start),
            }

        try:
            order = await self.find_order(
                order_id=event.order_id,
                order_number=event.order_number,
                tracking_number=event.tracking_number,
            )
            if not order:
                logger.warning(
                    "CJ logistics webhook: order not found (orderId=%s, orderNumber=%s, trackingNumber=%s)",
                    event.order_id,
                    event.order_number,
                    event.tracking_number,
                )
                return {"message": "Order not found but acknowledged", "processingTime": _elapsed_ms(start)}

            now = _now_iso()
            updates: OrderUpdate = {"updated_at": now}

            if event.tracking_number and not order.get("tracking_number"):
                updates["tracking_number"] = event.tracking_number
                logger.info("Adding tracking number %s to order %s", event.tracking_number, order["id"])

            carrier = event.logistic_name or event.last_mile_carrier
            if carrier:
                updates["tracking_carrier"] = carrier

            cj_data = dict(order.get("cj_data") or {})
            cj_data["tracking"] = {
                "tracking_number": event.tracking_number,
                "logistic_name": event.logistic_name,
                "tracking_status": event.tracking_status,
                "tracking_from": event.tracking_from,
                "tracking_to": event.tracking_to,
                "delivery_time": event.delivery_time,
                "delivery_day": event.delivery_day,
                "last_mile_carrier": event.last_mile_carrier,
                "last_track_number": event.last_track_number,
                "last_update": now,
            }
            if event.tracking_events is not None:
                cj_data["tracking_events"] = event.tracking_events
            updates["cj_data"] = cj_data

            tracking_status = (event.tracking_status or "").lower()
            if "delivered" in tracking_status:
                updates["status"] = "delivered"
                updates["delivered_at"] = _parse_timestamp(event.delivery_time) or now
            elif "transit" in tracking_status or "shipped" in tracking_status:
                if order.get("status") in ("pending", "processing"):
                    updates["status"] = "shipped"
                    if not order.get("shipped_at"):
                        updates["shipped_at"] = now

            self.client.table("orders").update(updates).eq("id", order["id"]).execute()
        except Exception as e:
            logger.error("CJ logistics webhook processing failed: %s", str(e), exc_info=True)
            return {
                "message": "Webhook processing failed (acknowledged)",
                "error": str(e),
                "processingTime": _elapsed_ms(start),
            }

        elapsed = _elapsed_ms(start)
        logger.info("Logistics updated for order %s (%dms)", order["id"], elapsed)

        updated_order = {**order, **updates}
        if "tracking_number" in updates:
            await self.email_service.send_shipping_notification(updated_order, updates["tracking_number"])
        if updates.get("status") == "delivered" and order.get("status") != "delivered":
            await self.email_service.send_delivery_confirmation(updated_order)

        return {
            "message": "Logistics updated",
            "orderId": order["id"],
            "trackingNumber": event.tracking_number,
            "processingTime": elapsed,
        }
