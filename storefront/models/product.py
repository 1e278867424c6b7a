"""Product model type definitions for database operations."""

from datetime import datetime
from typing import Any, TypedDict


class ColorVariant(TypedDict, total=False):
    """A sellable color of a product and its CJ variant id."""

    color: str
    cj_vid: str | None
    image: str | None


class CJProductData(TypedDict, total=False):
    """Fulfillment provider linkage stored in the `cj_data` JSONB column."""

    product_id: str
    vid: str
    sku: str
    variants: list[dict[str, Any]]
    warehouse_id: str
    update_type: str | None
    last_product_update: str
    last_stock_update: str


class Product(TypedDict):
    """Product table row representation.

    Invariant: `stock <= 0` implies `in_stock is False`.
    """

    id: str
    slug: str
    name: str
    description: str | None
    price: float
    image: str | None
    images: list[str]
    stock: int
    in_stock: bool
    color_variants: list[ColorVariant]
    cj_data: CJProductData
    created_at: datetime
    updated_at: datetime


class ProductUpdate(TypedDict, total=False):
    """Fields a provider webhook may overwrite."""

    name: str
    description: str
    price: float
    image: str
    stock: int
    in_stock: bool
    cj_data: CJProductData
    updated_at: str
