"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Any, Literal, TypedDict


PaymentStatus = Literal["pending", "paid"]

# Order status values; the fulfillment provider may report others, which are kept as-is
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]


class OrderItem(TypedDict):
    """A line item snapshot, stored in the `items` JSONB array.

    `price` and `name` are copied from the product when the order is priced
    so later catalogue changes do not alter what the customer paid for.
    """

    product_id: str
    name: str
    price: float
    quantity: int
    image: str | None


class ShippingAddress(TypedDict, total=False):
    """Shipping address stored in the `shipping_address` JSONB column."""

    full_name: str
    address: str
    city: str
    postal_code: str
    country: str
    phone: str
    province: str | None


class OrderCoupon(TypedDict):
    """Coupon applied to an order, stored in the `coupon` JSONB column."""

    code: str
    discount: float


class Order(TypedDict):
    """Order table row representation.

    A fulfillment order is created at most once per row: a non-null
    `cj_order_id` blocks any further creation attempt.
    """

    id: str
    user_id: str
    customer_email: str | None
    items: list[OrderItem]
    shipping_address: ShippingAddress
    shipping_cost: float
    coupon: OrderCoupon | None
    total_amount: float
    payment_status: PaymentStatus
    status: str
    stripe_session_id: str | None
    last_stripe_event_id: str | None
    cj_order_id: str | None
    cj_order_number: str | None
    cj_order_error: str | None
    cj_data: dict[str, Any]
    tracking_number: str | None
    tracking_carrier: str | None
    shipped_at: datetime | None
    delivered_at: datetime | None
    estimated_delivery: datetime | None
    email_sent: bool
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new pending order."""

    user_id: str
    customer_email: str | None
    items: list[OrderItem]
    shipping_address: ShippingAddress
    shipping_cost: float
    coupon: OrderCoupon | None
    total_amount: float
    payment_status: PaymentStatus
    status: str
    email_sent: bool
    cj_data: dict[str, Any]


class OrderUpdate(TypedDict, total=False):
    """Data that can be updated on an order by payment and fulfillment flows."""

    payment_status: PaymentStatus
    status: str
    stripe_session_id: str
    last_stripe_event_id: str
    cj_order_id: str
    cj_order_number: str | None
    cj_order_error: str | None
    cj_data: dict[str, Any]
    tracking_number: str
    tracking_carrier: str
    shipped_at: str
    delivered_at: str
    email_sent: bool
    updated_at: str
