"""DiscountOffer value object: a discount as published by the marketplace.

Three categories exist. ``shipping`` offsets a vendor's flat shipping fee by a
fixed amount. ``percentage-product`` takes a rate of the cart subtotal and
applies across all vendors. ``special-product`` takes a rate of one vendor's
subtotal. Product offers may carry a cap. Every amount is floor-rounded to a
whole currency unit.
"""

import math
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, String

from marketplace.domain import marketplace

SHIPPING = "shipping"
PRODUCT = "product"


class DiscountCategory(Enum):
    SHIPPING = "shipping"
    PERCENTAGE_PRODUCT = "percentage-product"
    SPECIAL_PRODUCT = "special-product"


_PRODUCT_CATEGORIES = {
    DiscountCategory.PERCENTAGE_PRODUCT.value,
    DiscountCategory.SPECIAL_PRODUCT.value,
}


def floor_amount(value) -> int:
    """Floor to a whole currency unit, computed in decimal to avoid float drift."""
    return math.floor(Decimal(str(value)))


def _aware(moment):
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


@marketplace.value_object
class DiscountOffer:
    discount_id = String(required=True, max_length=64)
    code = String(required=True, max_length=50)
    name = String(max_length=200)
    category = String(required=True, choices=DiscountCategory)
    flat_amount = Float(min_value=0.0)
    rate = Float(min_value=0.0, max_value=1.0)
    cap = Float(min_value=0.0)
    min_purchase = Float(default=0.0, min_value=0.0)
    starts_at = DateTime()
    ends_at = DateTime()
    usage_limit = Integer(min_value=0)
    usage_count = Integer(default=0, min_value=0)
    is_active = Boolean(default=True)
    vendor_id = String(max_length=64)  # Scope of a special-product offer

    @invariant.post
    def amount_must_match_category(self):
        if self.category == DiscountCategory.SHIPPING.value and self.flat_amount is None:
            raise ValidationError({"flat_amount": ["Shipping discounts need a flat amount"]})
        if self.category in _PRODUCT_CATEGORIES and not self.rate:
            raise ValidationError({"rate": ["Product discounts need a positive rate"]})

    @property
    def kind(self) -> str:
        """``shipping`` or ``product``; the two product categories share one selection slot."""
        return SHIPPING if self.category == DiscountCategory.SHIPPING.value else PRODUCT

    @property
    def is_shipping(self) -> bool:
        return self.kind == SHIPPING

    @property
    def is_product(self) -> bool:
        return self.kind == PRODUCT

    @property
    def is_vendor_scoped(self) -> bool:
        return self.category == DiscountCategory.SPECIAL_PRODUCT.value and bool(self.vendor_id)

    def unavailable_reason(self, now: datetime | None = None) -> str | None:
        """Why the offer cannot be used right now, or ``None`` if it can."""
        now = _aware(now or datetime.now(UTC))
        if not self.is_active:
            return "inactive"
        if self.starts_at is not None and _aware(self.starts_at) > now:
            return "not started"
        if self.ends_at is not None and _aware(self.ends_at) <= now:
            return "expired"
        if self.usage_limit is not None and (self.usage_count or 0) >= self.usage_limit:
            return "usage limit reached"
        return None

    def is_available(self, now: datetime | None = None) -> bool:
        return self.unavailable_reason(now) is None

    def meets_minimum(self, subtotal) -> bool:
        return subtotal >= (self.min_purchase or 0.0)

    def amount_for(self, base, shipping_fee=None) -> int:
        """Discount amount against ``base`` (product) or ``shipping_fee`` (shipping)."""
        if self.kind == SHIPPING:
            amount = floor_amount(self.flat_amount)
            if shipping_fee is not None:
                amount = min(amount, floor_amount(shipping_fee))
            return max(amount, 0)

        raw = Decimal(str(base)) * Decimal(str(self.rate))
        if self.cap is not None:
            raw = min(raw, Decimal(str(self.cap)))
        return max(floor_amount(raw), 0)
