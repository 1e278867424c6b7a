"""Checkout and order Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CartItem(BaseModel):
    """A cart line as submitted by the client.

    Any client-side price is ignored; only the product reference and the
    quantity are trusted.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("product_id", "id", "product"),
        description="Local product id",
    )
    quantity: int = Field(ge=1, description="Quantity ordered")
    name: str | None = Field(default=None, description="Display name, may carry a color suffix")


class ShippingSelection(BaseModel):
    """Shipping option chosen by the client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, description="Shipping option id")
    name: str = Field(description="Shipping option label")
    logistic_name: str | None = Field(default=None, alias="logisticName", description="Carrier name")
    price: float = Field(ge=0, description="Shipping price in major currency units")
    delivery_time: int | str | None = Field(
        default=None, alias="deliveryTime", description='Days, or a range such as "12-20"'
    )


class CheckoutSessionCreate(BaseModel):
    """Schema for creating a checkout session via POST /checkout/session."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[CartItem] = Field(min_length=1, description="Cart lines")
    order_id: str = Field(min_length=1, alias="orderId", description="Pending local order id")
    shipping: ShippingSelection | None = Field(default=None, description="Optional shipping line")


class CheckoutSessionResponse(BaseModel):
    """Schema for checkout session creation response."""

    model_config = ConfigDict(from_attributes=True)

    session_id: str = Field(description="Stripe Checkout Session ID")
    url: str | None = Field(default=None, description="Stripe Checkout URL to redirect to")


class CheckoutSuccessRequest(BaseModel):
    """Body of POST /checkout/success."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(min_length=1, alias="sessionId", description="Stripe Checkout Session ID")


class PaymentConfirmationResponse(BaseModel):
    """Result of a payment confirmation."""

    model_config = ConfigDict(from_attributes=True)

    order_id: str = Field(description="Local order id")
    message: str = Field(description="Status message")
    already_paid: bool = Field(default=False, description="True if the order was already paid")


class ShippingAddressSchema(BaseModel):
    """Delivery address of an order."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    full_name: str = Field(min_length=1, alias="fullName")
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    postal_code: str = Field(min_length=1, alias="postalCode")
    country: str = Field(min_length=2, max_length=2, description="ISO 3166-1 alpha-2 country code")
    phone: str = Field(default="")
    province: str | None = Field(default=None)


class OrderCreateRequest(BaseModel):
    """Body of POST /orders."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[CartItem] = Field(min_length=1, description="Cart lines")
    shipping_address: ShippingAddressSchema = Field(alias="shippingAddress")
    shipping_cost: float = Field(default=0, ge=0, alias="shippingCost", description="Shipping cost in major units")


class OrderItemSchema(BaseModel):
    """A priced order line."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str
    name: str
    price: float
    quantity: int
    image: str | None = None


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Order unique identifier")
    user_id: str = Field(description="Owning user id")
    customer_email: str | None = Field(default=None)
    items: list[OrderItemSchema] = Field(default_factory=list)
    shipping_address: dict[str, Any] = Field(default_factory=dict)
    shipping_cost: float = Field(default=0)
    total_amount: float = Field(description="Order total in major currency units")
    payment_status: str
    status: str
    stripe_session_id: str | None = None
    cj_order_id: str | None = None
    cj_order_number: str | None = None
    cj_order_error: str | None = None
    tracking_number: str | None = None
    tracking_carrier: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    estimated_delivery: datetime | None = None
    email_sent: bool = False
    created_at: datetime | None = None
