"""Database model type definitions."""

from storefront.models.order import Order, OrderItem, ShippingAddress
from storefront.models.password_reset import PasswordReset
from storefront.models.product import CJProductData, ColorVariant, Product
from storefront.models.token_cache import TokenCacheEntry

__all__ = [
    "Order",
    "OrderItem",
    "ShippingAddress",
    "Product",
    "ColorVariant",
    "CJProductData",
    "PasswordReset",
    "TokenCacheEntry",
]
