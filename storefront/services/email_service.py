"""Email service using Resend for transactional emails.

Send failures never propagate: every method logs the error and reports it
in the returned dict so callers can decide whether to record the outcome.
"""

import html
import logging
from typing import Any

import resend

from storefront.core.config import get_settings

logger = logging.getLogger(__name__)


def _format_amount(amount: Any) -> str:
    return f"{float(amount or 0):.2f} €"


def _items_html(items: list[dict[str, Any]]) -> str:
    rows = []
    for item in items or []:
        rows.append(
            '<tr><td style="padding: 8px 0;">{name}</td>'
            '<td style="padding: 8px 0; text-align: center;">x{qty}</td>'
            '<td style="padding: 8px 0; text-align: right;">{price}</td></tr>'.format(
                name=html.escape(str(item.get("name", ""))),
                qty=item.get("quantity", 1),
                price=_format_amount(float(item.get("price") or 0) * int(item.get("quantity") or 1)),
            )
        )
    return "\n".join(rows)


def _items_text(items: list[dict[str, Any]]) -> str:
    return "\n".join(f"- {item.get('name', '')} x{item.get('quantity', 1)}" for item in items or [])


def _address_lines(address: dict[str, Any] | None) -> list[str]:
    address = address or {}
    city_line = " ".join(part for part in (address.get("postal_code"), address.get("city")) if part)
    return [
        line
        for line in (address.get("full_name"), address.get("address"), city_line, address.get("country"))
        if line
    ]


def _layout(title: str, body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: Georgia, 'Times New Roman', serif; line-height: 1.6; color: #222; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #111; padding: 28px; border-radius: 8px 8px 0 0; text-align: center;">
        <h1 style="color: #d4af37; margin: 0; font-size: 22px; letter-spacing: 2px;">{title}</h1>
    </div>
    <div style="background: #fafafa; padding: 28px; border: 1px solid #e5e5e5; border-top: none; border-radius: 0 0 8px 8px;">
{body}
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url.rstrip("/")
        self.store_name = settings.store_name

    def _send(self, kind: str, to_email: str | None, subject: str, html_content: str, text_content: str) -> dict[str, Any]:
        if not to_email:
            logger.warning("No recipient for %s email, skipping", kind)
            return {"success": False, "error": "missing recipient"}

        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html_content,
                "text": text_content,
            })

            logger.info("%s email sent to %s, id: %s", kind, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send %s email to %s: %s", kind, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_order_confirmation(self, order: dict[str, Any]) -> dict[str, Any]:
        """Send the payment confirmation for an order.

        Args:
            order: Order row (needs customer_email, items, total_amount, shipping_address).

        Returns:
            dict: {"success": bool, ...}
        """
        order_id = str(order.get("id", ""))
        order_url = f"{self.frontend_url}/orders/{order_id}"
        items = order.get("items") or []
        address = "<br>".join(html.escape(line) for line in _address_lines(order.get("shipping_address")))

        body = f"""
        <p style="font-size: 16px;">Thank you for your order. Your payment has been confirmed.</p>
        <p style="font-size: 13px; color: #666;">Order reference: <strong>{html.escape(order_id)}</strong></p>
        <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
{_items_html(items)}
            <tr><td colspan="2" style="padding-top: 12px; border-top: 1px solid #ddd;"><strong>Total</strong></td>
            <td style="padding-top: 12px; border-top: 1px solid #ddd; text-align: right;"><strong>{_format_amount(order.get("total_amount"))}</strong></td></tr>
        </table>
        <p style="font-size: 14px; color: #555;">Delivery address:<br>{address}</p>
        <div style="text-align: center; margin: 28px 0;">
            <a href="{order_url}" style="background: #111; color: #d4af37; padding: 12px 28px; text-decoration: none; border-radius: 6px;">View my order</a>
        </div>
"""
        text_content = f"""
Thank you for your order. Your payment has been confirmed.

Order reference: {order_id}

{_items_text(items)}

Total: {_format_amount(order.get("total_amount"))}

Follow your order here:
{order_url}
"""
        return self._send(
            "Order confirmation",
            order.get("customer_email"),
            f"{self.store_name} - Order confirmation {order_id[:8]}",
            _layout("Order confirmed", body),
            text_content,
        )

    async def send_shipping_notification(self, order: dict[str, Any], tracking_number: str) -> dict[str, Any]:
        """Tell the customer their order has shipped."""
        order_id = str(order.get("id", ""))
        carrier = order.get("tracking_carrier") or ""
        body = f"""
        <p style="font-size: 16px;">Good news: your order is on its way.</p>
        <p style="font-size: 14px;">Tracking number: <strong>{html.escape(tracking_number)}</strong>{f" ({html.escape(carrier)})" if carrier else ""}</p>
        <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
{_items_html(order.get("items") or [])}
        </table>
        <div style="text-align: center; margin: 28px 0;">
            <a href="{self.frontend_url}/orders/{order_id}" style="background: #111; color: #d4af37; padding: 12px 28px; text-decoration: none; border-radius: 6px;">Track my order</a>
        </div>
"""
        text_content = f"""
Your order {order_id} is on its way.

Tracking number: {tracking_number} {carrier}

{_items_text(order.get("items") or [])}
"""
        return self._send(
            "Shipping notification",
            order.get("customer_email"),
            f"{self.store_name} - Your order has shipped",
            _layout("Order shipped", body),
            text_content,
        )

    async def send_delivery_confirmation(self, order: dict[str, Any]) -> dict[str, Any]:
        """Tell the customer their order has been delivered."""
        order_id = str(order.get("id", ""))
        body = f"""
        <p style="font-size: 16px;">Your order has been delivered. We hope you enjoy it.</p>
        <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
{_items_html(order.get("items") or [])}
        </table>
        <p style="font-size: 13px; color: #666;">Order reference: {html.escape(order_id)}</p>
"""
        text_content = f"""
Your order {order_id} has been delivered.

{_items_text(order.get("items") or [])}
"""
        return self._send(
            "Delivery confirmation",
            order.get("customer_email"),
            f"{self.store_name} - Your order has been delivered",
            _layout("Order delivered", body),
            text_content,
        )

    async def send_password_reset(self, to_email: str, token: str, ttl_minutes: int) -> dict[str, Any]:
        """Send a password reset link.

        Args:
            to_email: Recipient email address.
            token: Plain reset token (only its hash is stored).
            ttl_minutes: Link validity, shown to the user.
        """
        reset_url = f"{self.frontend_url}/auth/reset-password/{token}"
        body = f"""
        <p style="font-size: 16px;">We received a request to reset your password.</p>
        <div style="text-align: center; margin: 28px 0;">
            <a href="{reset_url}" style="background: #111; color: #d4af37; padding: 12px 28px; text-decoration: none; border-radius: 6px;">Reset my password</a>
        </div>
        <p style="font-size: 12px; color: #999; text-align: center;">
            This link expires in {ttl_minutes} minutes. If you did not ask for a reset, you can ignore this email.
        </p>
"""
        text_content = f"""
We received a request to reset your password.

Reset it here:
{reset_url}

This link expires in {ttl_minutes} minutes. If you did not ask for a reset, you can ignore this email.
"""
        return self._send(
            "Password reset",
            to_email,
            f"{self.store_name} - Reset your password",
            _layout("Password reset", body),
            text_content,
        )
