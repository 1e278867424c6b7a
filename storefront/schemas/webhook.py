"""Inbound CJ Dropshipping webhook payloads.

Every model allows unknown fields: the provider adds fields without notice
and an unexpected field must never cause an event to be rejected.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Identifier value CJ sends when validating a webhook endpoint
TEST_SENTINEL = "test"


def is_test_payload(body: Any, *fields: str) -> bool:
    """Check whether any of the given identifier fields holds the test sentinel."""
    if not isinstance(body, dict):
        return False
    return any(body.get(field) == TEST_SENTINEL for field in fields)


class _WebhookModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow", coerce_numbers_to_str=True)


class CJProductWebhook(_WebhookModel):
    """Product update event."""

    product_id: str | None = Field(default=None, alias="productId")
    vid: str | None = None
    sku: str | None = None
    product_name: str | None = Field(default=None, alias="productName")
    sell_price: float | None = Field(default=None, alias="sellPrice")
    product_image: str | None = Field(default=None, alias="productImage")
    variants: list[Any] | None = None
    description: str | None = None
    discontinued: bool | None = None
    update_type: str | None = Field(default=None, alias="updateType")
    update_time: str | int | None = Field(default=None, alias="updateTime")

    @model_validator(mode="after")
    def require_identifier(self) -> "CJProductWebhook":
        if not (self.product_id or self.vid or self.sku):
            raise ValueError("productId, vid or sku is required")
        return self


class CJStockWebhook(_WebhookModel):
    """Stock update event."""

    vid: str | None = None
    sku: str | None = None
    product_id: str | None = Field(default=None, alias="productId")
    stock: int | None = None
    in_stock: bool | None = Field(default=None, alias="inStock")
    warehouse_id: str | None = Field(default=None, alias="warehouseId")
    update_time: str | int | None = Field(default=None, alias="updateTime")

    @model_validator(mode="after")
    def require_identifier(self) -> "CJStockWebhook":
        if not (self.vid or self.sku or self.product_id):
            raise ValueError("vid, sku or productId is required")
        return self


class CJOrderWebhook(_WebhookModel):
    """Order status event."""

    order_id: str | None = Field(default=None, alias="orderId")
    order_number: str | None = Field(default=None, alias="orderNumber")
    order_status: str | None = Field(default=None, alias="orderStatus")
    tracking_number: str | None = Field(default=None, alias="trackingNumber")
    logistic_name: str | None = Field(default=None, alias="logisticName")
    update_time: str | int | None = Field(default=None, alias="updateTime")

    @model_validator(mode="after")
    def require_identifier(self) -> "CJOrderWebhook":
        if not (self.order_id or self.order_number):
            raise ValueError("orderId or orderNumber is required")
        return self


class CJLogisticsWebhook(_WebhookModel):
    """Tracking update event."""

    tracking_number: str | None = Field(default=None, alias="trackingNumber")
    order_id: str | None = Field(default=None, alias="orderId")
    order_number: str | None = Field(default=None, alias="orderNumber")
    logistic_name: str | None = Field(default=None, alias="logisticName")
    tracking_status: str | None = Field(default=None, alias="trackingStatus")
    tracking_from: str | None = Field(default=None, alias="trackingFrom")
    tracking_to: str | None = Field(default=None, alias="trackingTo")
    delivery_time: str | int | None = Field(default=None, alias="deliveryTime")
    delivery_day: int | None = Field(default=None, alias="deliveryDay")
    last_mile_carrier: str | None = Field(default=None, alias="lastMileCarrier")
    last_track_number: str | None = Field(default=None, alias="lastTrackNumber")
    tracking_events: list[Any] | None = Field(default=None, alias="trackingEvents")

    @model_validator(mode="after")
    def require_identifier(self) -> "CJLogisticsWebhook":
        if not (self.tracking_number or self.order_id or self.order_number):
            raise ValueError("trackingNumber, orderId or orderNumber is required")
        return self
