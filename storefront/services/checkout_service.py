"""Checkout, payment confirmation and order business logic service."""

import json
import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from supabase import Client

from storefront.api.middleware.error_handler import (
    APIError,
    AuthorizationError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    PaymentNotConfirmedError,
)
from storefront.core.config import Settings, get_settings
from storefront.core.stripe import get_stripe
from storefront.core.supabase import get_supabase_client
from storefront.models.order import Order, OrderCreate, OrderItem
from storefront.schemas.auth import UserContext
from storefront.schemas.checkout import CartItem, ShippingSelection
from storefront.services.email_service import EmailService
from storefront.services.fulfillment_service import FulfillmentService

logger = logging.getLogger(__name__)


def to_minor_units(amount: Any) -> int:
    """Convert a major-unit amount to integer minor units, rounding half up.

    19.99 -> 1999, 0.125 -> 13
    """
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _product_image(product: dict[str, Any]) -> str | None:
    images = product.get("images") or []
    if images:
        return images[0]
    return product.get("image")


class CheckoutService:
    """Service for Stripe checkout, payment confirmation and orders."""

    def __init__(
        self,
        client: Client | None = None,
        email_service: EmailService | None = None,
        fulfillment_service: FulfillmentService | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize checkout service with clients."""
        self.client = client or get_supabase_client()
        self.stripe = get_stripe()
        self.settings = settings or get_settings()
        self._email_service = email_service
        self._fulfillment_service = fulfillment_service

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = EmailService()
        return self._email_service

    @property
    def fulfillment_service(self) -> FulfillmentService:
        if self._fulfillment_service is None:
            self._fulfillment_service = FulfillmentService(client=self.client, settings=self.settings)
        return self._fulfillment_service

    # Pricing

    async def _get_products(self, product_ids: list[str]) -> dict[str, dict[str, Any]]:
        response = (
            self.client.table("products")
            .select("id, name, price, image, images")
            .in_("id", product_ids)
            .execute()
        )
        return {str(p["id"]): p for p in response.data or []}

    async def price_items(self, items: list[CartItem]) -> list[OrderItem]:
        """Price cart lines from the products table.

        Client prices are never read. The item name keeps a client-selected
        color suffix ("<name> - <color>") so fulfillment can pick the variant.

        Raises:
            NotFoundError: If any referenced product does not exist.
        """
        product_ids = list(dict.fromkeys(item.product_id for item in items))
        products = await self._get_products(product_ids)

        normalized = []
        for item in items:
            product = products.get(item.product_id)
            if not product:
                raise NotFoundError(f"Product not found: {item.product_id}")

            name = product["name"]
            if item.name and item.name.startswith(f"{name} - "):
                name = item.name

            normalized.append({
                "product_id": item.product_id,
                "name": name,
                "price": float(product["price"]),
                "quantity": item.quantity,
                "image": _product_image(product),
            })
        return normalized

    def build_line_items(
        self,
        items: list[dict[str, Any]],
        shipping: ShippingSelection | None = None,
        discount: float = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Build Stripe line items and the total in minor units.

        A coupon discount is spread over the item lines in proportion to
        their amounts, so each unit is reduced by the same ratio and never
        drops below zero. Shipping is not discounted.
        """
        currency = self.settings.checkout_currency
        subtotal = sum(to_minor_units(item["price"]) * item["quantity"] for item in items)
        discount_minor = to_minor_units(discount) if discount and discount > 0 else 0
        ratio = Decimal(0)
        if subtotal and discount_minor:
            ratio = Decimal(min(discount_minor, subtotal)) / Decimal(subtotal)

        line_items = []
        total = 0
        for item in items:
            unit_amount = to_minor_units(item["price"])
            if ratio:
                reduction = int((Decimal(unit_amount) * ratio).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
                unit_amount = max(0, unit_amount - reduction)
            total += unit_amount * item["quantity"]
            line_items.append({
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": item["name"],
                        "images": [item["image"]] if item.get("image") else [],
                    },
                    "unit_amount": unit_amount,
                },
                "quantity": item["quantity"],
            })

        if shipping and shipping.price > 0:
            shipping_amount = to_minor_units(shipping.price)
            total += shipping_amount
            line_items.append({
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": f"Shipping - {shipping.name}", "images": []},
                    "unit_amount": shipping_amount,
                },
                "quantity": 1,
            })

        return line_items, total

    # Orders

    async def create_order(
        self,
        user: UserContext,
        items: list[CartItem],
        shipping_address: dict[str, Any],
        shipping_cost: float = 0,
    ) -> Order:
        """Create a pending order priced from the products table.

        Raises:
            NotFoundError: If any referenced product does not exist.
        """
        normalized = await self.price_items(items)
        subtotal = sum(to_minor_units(item["price"]) * item["quantity"] for item in normalized)
        total_minor = subtotal + to_minor_units(shipping_cost)

        order_data: OrderCreate = {
            "user_id": str(user.user_id),
            "customer_email": user.email,
            "items": normalized,
            "shipping_address": shipping_address,
            "shipping_cost": shipping_cost,
            "total_amount": total_minor / 100,
            "payment_status": "pending",
            "status": "pending",
            "email_sent": False,
        }
        response = self.client.table("orders").insert(order_data).execute()
        order = response.data[0]
        logger.info("Order %s created for user %s (total=%s)", order["id"], user.user_id, order["total_amount"])
        return order

    async def get_order(self, order_id: str) -> Order | None:
        """Get an order by ID."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_order_by_session(self, session_id: str) -> Order | None:
        response = (
            self.client.table("orders")
            .select("*")
            .eq("stripe_session_id", session_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_order_for_user(self, order_id: str, user: UserContext) -> Order:
        """Get an order the user owns (admins can read any order).

        Raises:
            NotFoundError: Order does not exist.
            AuthorizationError: Order belongs to someone else.
        """
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError("Order not found")
        if order.get("user_id") != str(user.user_id) and not user.is_admin:
            raise AuthorizationError("Not authorized to view this order")
        return order

    async def get_orders_for_user(self, user_id: str) -> list[Order]:
        """Get all orders of a user, newest first."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def get_order_discount(self, order_id: str, user_id: str) -> float:
        """Coupon discount recorded on the user's order, in major units.

        The client never sends the discount; it is read from the order row.
        """
        response = (
            self.client.table("orders")
            .select("coupon")
            .eq("id", str(order_id))
            .eq("user_id", str(user_id))
            .maybe_single()
            .execute()
        )
        coupon = (response.data or {}).get("coupon") if response else None
        if not coupon:
            return 0
        return max(0.0, float(coupon.get("discount") or 0))

    # Checkout session

    async def create_checkout_session(
        self,
        user: UserContext,
        items: list[CartItem],
        order_id: str,
        shipping: ShippingSelection | None = None,
    ) -> dict[str, Any]:
        """Open a Stripe Checkout Session priced from the products table.

        Writes nothing locally; see `attach_session_to_order`.

        Any coupon on the order is applied to the item lines.

        Returns:
            dict: session_id, url, items (normalized), discount and amount_total (minor units).

        Raises:
            NotFoundError: If any referenced product does not exist.
            InternalError: If Stripe is not configured or the Stripe call fails.
        """
        if not self.settings.stripe_secret_key:
            raise InternalError("Stripe is not configured")

        normalized = await self.price_items(items)
        discount = await self.get_order_discount(order_id, str(user.user_id))
        line_items, amount_total = self.build_line_items(normalized, shipping, discount)
        base_url = self.settings.frontend_url.rstrip("/")

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "success_url": f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base_url}/cart",
            "metadata": {
                "order_id": order_id,
                "user_id": str(user.user_id),
                "shipping": json.dumps(shipping.model_dump(by_alias=True, exclude_none=True)) if shipping else "",
            },
        }
        if user.email:
            params["customer_email"] = user.email

        try:
            session = self.stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error("Stripe error creating checkout session for order %s: %s", order_id, str(e))
            raise InternalError(f"Could not create checkout session: {e.user_message or str(e)}") from e

        logger.info("Checkout session %s created for order %s (%d)", session.id, order_id, amount_total)
        return {
            "session_id": session.id,
            "url": session.url,
            "items": normalized,
            "discount": discount,
            "amount_total": amount_total,
        }

    async def attach_session_to_order(
        self,
        order_id: str,
        user_id: str,
        session_id: str,
        items: list[dict[str, Any]],
        shipping_cost: float = 0,
        amount_total: int | None = None,
    ) -> None:
        """Record the checkout session and server prices on the user's order.

        `amount_total` is the session total in minor units, discount included;
        without it the total is recomputed from the items and shipping.

        Best-effort: the payment session already exists, so failures are logged.
        """
        if amount_total is None:
            subtotal = sum(to_minor_units(item["price"]) * item["quantity"] for item in items)
            amount_total = subtotal + to_minor_units(shipping_cost)
        total = amount_total / 100
        try:
            response = (
                self.client.table("orders")
                .update({
                    "stripe_session_id": session_id,
                    "items": items,
                    "shipping_cost": shipping_cost,
                    "total_amount": total,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                })
                .eq("id", order_id)
                .eq("user_id", str(user_id))
                .execute()
            )
        except Exception as e:
            logger.warning("Could not record checkout session on order %s: %s", order_id, str(e))
            return

        if not response.data:
            logger.warning("No order %s for user %s to record session %s on", order_id, user_id, session_id)

    # Payment confirmation

    async def _mark_paid(self, order_id: str) -> bool:
        """Transition an order to paid unless it already is.

        Returns:
            bool: True if this call performed the transition.
        """
        response = (
            self.client.table("orders")
            .update({
                "payment_status": "paid",
                "status": "processing",
                "email_sent": False,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", str(order_id))
            .neq("payment_status", "paid")
            .execute()
        )
        return bool(response.data)

    async def _send_confirmation_email(self, order_id: str) -> bool:
        """Send the order confirmation and flag the order. Never raises."""
        try:
            order = await self.get_order(order_id)
            if not order:
                return False
            result = await self.email_service.send_order_confirmation(order)
            if not result.get("success"):
                return False
            self.client.table("orders").update({"email_sent": True}).eq("id", str(order_id)).execute()
            return True
        except Exception as e:
            logger.error("Confirmation email failed for order %s: %s", order_id, str(e))
            return False

    async def confirm_payment(self, session_id: str, user: UserContext) -> dict[str, Any]:
        """Confirm a completed Stripe session and mark its order paid.

        Repeated calls for an already-paid order succeed without side effects.

        Raises:
            PaymentNotConfirmedError: Stripe does not report the session as paid.
            NotFoundError: No order carries this session.
            AuthorizationError: The order belongs to another user.
            InternalError: Stripe lookup failed.
        """
        try:
            session = self.stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            logger.error("Stripe error retrieving session %s: %s", session_id, str(e))
            raise InternalError(f"Could not retrieve checkout session: {e.user_message or str(e)}") from e

        if session.get("payment_status") != "paid":
            raise PaymentNotConfirmedError("Payment not confirmed")

        order = await self.get_order_by_session(session_id)
        if not order:
            raise NotFoundError("Order not found")

        if order.get("user_id") != str(user.user_id):
            raise AuthorizationError("Not authorized to confirm this order")

        if order.get("payment_status") == "paid":
            logger.info("Order %s already paid, skipping confirmation", order["id"])
            return {"order_id": order["id"], "message": "Payment confirmed", "already_paid": True}

        if not await self._mark_paid(order["id"]):
            logger.info("Order %s was marked paid concurrently", order["id"])
            return {"order_id": order["id"], "message": "Payment confirmed", "already_paid": True}

        logger.info("Order %s marked as paid", order["id"])
        await self._send_confirmation_email(order["id"])
        return {"order_id": order["id"], "message": "Payment confirmed", "already_paid": False}

    # Stripe webhook

    def verify_webhook_signature(self, payload: bytes, sig_header: str | None) -> Any:
        """Verify Stripe webhook signature and return event.

        Raises:
            InvalidInputError: Missing or invalid signature.
            InternalError: Webhook secret not configured.
        """
        if not sig_header:
            raise InvalidInputError("Missing webhook signature")

        if not self.settings.stripe_webhook_secret:
            raise InternalError("Stripe webhook secret is not configured")

        try:
            return self.stripe.Webhook.construct_event(
                payload, sig_header, self.settings.stripe_webhook_secret
            )
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise InvalidInputError("Invalid webhook signature") from e

    async def handle_checkout_completed(self, event: Any) -> dict[str, Any]:
        """Process a checkout.session.completed event.

        Marks the order paid, creates the CJ order if none exists and sends
        the confirmation email if not already sent. Fulfillment and email
        failures are logged and do not fail the event. The event id is
        recorded last, so a delivery that dies midway is processed again
        when Stripe retries it.
        """
        session = event["data"]["object"]
        event_id = event["id"]

        order = await self.get_order_by_session(session["id"])
        if not order:
            logger.error("Order not found for checkout session %s", session["id"])
            return {"received": True}

        if order.get("last_stripe_event_id") == event_id:
            logger.warning("Stripe event %s already processed", event_id)
            return {"received": True, "duplicate": True}

        order_id = order["id"]
        if await self._mark_paid(order_id):
            logger.info("Payment received for order %s", order_id)

        if order.get("cj_order_id"):
            logger.info("CJ order already exists for %s -> %s", order_id, order["cj_order_id"])
        else:
            try:
                await self.fulfillment_service.create_fulfillment_order(order_id)
            except APIError as e:
                logger.error("Failed to create CJ order for %s: %s", order_id, e.message)
            except Exception as e:
                logger.error("Unexpected error creating CJ order for %s: %s", order_id, str(e), exc_info=True)

        current = await self.get_order(order_id)
        if current and not current.get("email_sent"):
            await self._send_confirmation_email(order_id)

        self.client.table("orders").update({"last_stripe_event_id": event_id}).eq("id", order_id).execute()

        return {"received": True}
