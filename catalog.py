"""Product validation and discount arithmetic."""
from typing import Optional

from errors import ValidationFailed
from schemas import Product


def discount_percentage(price: float, discounted_price: float) -> int:
    if price <= 0 or discounted_price >= price:
        return 0
    return round((price - discounted_price) / price * 100)


def discounted_price(price: float, percentage: int) -> float:
    if price <= 0 or percentage <= 0 or percentage >= 100:
        return price
    return round(price - price * percentage / 100)


def prepare_product(product: Product) -> dict:
    """Validate a product before any write and return the document to store.

    Discount fields are dropped unless has_discount is set; a missing
    percentage (or price) is derived from the other one.
    """
    if not product.vendors:
        raise ValidationFailed("Please select at least one vendor")
    if not product.categories:
        raise ValidationFailed("Please select at least one category")

    doc = product.model_dump()
    if not product.has_discount:
        doc.pop("discounted_price", None)
        doc.pop("discount_percentage", None)
        return doc

    price_after: Optional[float] = product.discounted_price
    if price_after is None and product.discount_percentage:
        price_after = discounted_price(product.price, product.discount_percentage)
    if price_after is None:
        raise ValidationFailed("Discounted price is required when a discount is enabled")
    if price_after >= product.price:
        raise ValidationFailed("Discounted price must be less than original price")
    if price_after <= 0:
        raise ValidationFailed("Discounted price must be greater than 0")

    doc["discounted_price"] = price_after
    if product.discount_percentage is None:
        doc["discount_percentage"] = discount_percentage(product.price, price_after)
    return doc
