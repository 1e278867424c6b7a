"""Shipping quote Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field

from storefront.schemas.checkout import CartItem


class ShippingQuoteRequest(BaseModel):
    """Body of POST /shipping/quote."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[CartItem] = Field(min_length=1, description="Cart lines")
    country: str = Field(min_length=2, max_length=2, description="Destination ISO 3166-1 alpha-2 code")
    postal_code: str | None = Field(default=None, alias="postalCode", description="Destination postal code")


class ShippingOption(BaseModel):
    """A shipping option offered to the customer.

    Serialized with the same field names the checkout session accepts as
    its shipping selection.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="standard or express")
    name: str = Field(description="Option label")
    logistic_name: str | None = Field(default=None, alias="logisticName", description="Carrier name")
    price: float = Field(ge=0, description="Price in major currency units")
    delivery_time: str | None = Field(default=None, alias="deliveryTime", description='Days, e.g. "7-12"')
    taxes_fee: float = Field(default=0, alias="taxesFee")
    clearance_fee: float = Field(default=0, alias="clearanceFee")
    total_fee: float | None = Field(default=None, alias="totalFee")


class ShippingQuoteResponse(BaseModel):
    """Shipping options for a cart and destination."""

    model_config = ConfigDict(populate_by_name=True)

    shipping_options: list[ShippingOption] = Field(alias="shippingOptions")
    default_shipping: ShippingOption = Field(alias="defaultShipping")
    is_estimate: bool = Field(default=False, alias="isEstimate", description="True if not priced by the provider")
    message: str | None = Field(default=None)
