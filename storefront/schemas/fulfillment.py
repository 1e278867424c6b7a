"""Fulfillment provider (CJ Dropshipping) boundary schemas.

Provider responses are loosely typed JSON; every response is validated
against these models before any field is read.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CJEnvelope(BaseModel):
    """Outer shape of every CJ API response."""

    model_config = ConfigDict(extra="allow")

    code: int = Field(description="Provider status code (200 on success)")
    result: bool | None = Field(default=None, description="Provider success flag")
    message: str | None = Field(default=None, description="Provider message")
    data: Any = Field(default=None, description="Operation payload")


class CJTokenData(BaseModel):
    """Payload of the authentication and token refresh endpoints."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    access_token: str = Field(alias="accessToken", min_length=1)
    access_token_expiry_date: str | None = Field(default=None, alias="accessTokenExpiryDate")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    refresh_token_expiry_date: str | None = Field(default=None, alias="refreshTokenExpiryDate")


class CJCreatedOrder(BaseModel):
    """Payload of the order creation endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", coerce_numbers_to_str=True)

    order_id: str = Field(alias="orderId", min_length=1)
    order_number: str | None = Field(default=None, alias="orderNumber")
    order_amount: float | None = Field(default=None, alias="orderAmount")


class FulfillmentAddress(BaseModel):
    """Recipient address sent with a fulfillment order."""

    model_config = ConfigDict(from_attributes=True)

    full_name: str = Field(default="", description="Recipient name")
    address: str = Field(default="", description="Street address")
    city: str = Field(default="", description="City")
    province: str | None = Field(default=None, description="Province or state")
    postal_code: str = Field(default="", description="Postal code")
    country: str = Field(default="US", description="ISO 3166-1 alpha-2 country code")
    phone: str = Field(default="", description="Recipient phone")


class FulfillmentLineItem(BaseModel):
    """A single variant and quantity to ship."""

    model_config = ConfigDict(from_attributes=True)

    vid: str = Field(min_length=1, description="CJ variant id")
    quantity: int = Field(ge=1, description="Units to ship")


class FulfillmentOrderRequest(BaseModel):
    """Order submitted to the fulfillment provider.

    No warehouse is selected so the provider picks one itself.
    """

    model_config = ConfigDict(from_attributes=True)

    order_number: str = Field(min_length=1, description="Our order reference")
    shipping_address: FulfillmentAddress
    items: list[FulfillmentLineItem] = Field(min_length=1)
    shipment_type: int = Field(default=1, description="1 = express")
    remark: str = Field(default="", description="Free-text note for the provider")
    email: str = Field(default="", description="Customer email")


class FulfillmentOrderResult(BaseModel):
    """Response data of a successful fulfillment order creation."""

    model_config = ConfigDict(from_attributes=True)

    cj_order_id: str
    cj_order_number: str | None = None
    order_amount: float | None = None


class RetryFulfillmentRequest(BaseModel):
    """Body of the admin retry endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1, description="Local order id")


class CJFreightOption(BaseModel):
    """One logistics option returned by the freight calculation endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", coerce_numbers_to_str=True)

    logistic_name: str = Field(alias="logisticName", min_length=1)
    logistic_price: float = Field(default=0, alias="logisticPrice", ge=0)
    logistic_price_cn: float | None = Field(default=None, alias="logisticPriceCn")
    logistic_aging: str | None = Field(default=None, alias="logisticAging", description='Days, e.g. "7-12"')
    taxes_fee: float | None = Field(default=None, alias="taxesFee")
    clearance_operation_fee: float | None = Field(default=None, alias="clearanceOperationFee")
    total_postage_fee: float | None = Field(default=None, alias="totalPostageFee")

    @property
    def max_days(self) -> int | None:
        """Upper bound of the delivery time range, if the provider gave one."""
        bounds = [part.strip() for part in (self.logistic_aging or "").split("-") if part.strip()]
        if not bounds or not bounds[-1].isdigit():
            return None
        return int(bounds[-1])
