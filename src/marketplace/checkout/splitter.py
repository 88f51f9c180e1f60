"""OrderSplitter: turns one confirmed checkout into one OrderIntent per vendor.

Pure: no network and no mutation. Only vendor groups with a selected line
produce an intent. A shipping discount lands on its single target vendor. A
vendor-scoped product discount lands on its vendor. A cart-wide product
discount is shared pro rata by vendor subtotal: each vendor gets the floor of
its exact share, and the units left over go to the largest fractional
remainders, ties resolved in cart order. The shares always add up to the
applied amount.
"""

import math
from collections.abc import Mapping
from decimal import Decimal
from typing import Sequence
from uuid import uuid4

from protean.exceptions import ValidationError

from marketplace.cart.grouping import VendorGroup
from marketplace.checkout.intent import DiscountBreakdown, IntentLine, OrderIntent
from marketplace.discount.resolver import AppliedDiscount, AppliedDiscounts
from marketplace.order.order import ShippingAddress, coerce_payment_method
from marketplace.pricing.shipping import ShippingPolicy, VendorPricing, price_cart


def idempotency_key(checkout_id: str, vendor_id: str) -> str:
    return f"{checkout_id}:{vendor_id}"


def _require_address(address) -> ShippingAddress:
    if address is None:
        raise ValidationError({"address": ["Shipping address is required"]})
    if isinstance(address, ShippingAddress):
        return address
    if isinstance(address, Mapping):
        return ShippingAddress(**address)
    raise ValidationError({"address": ["Shipping address is required"]})


def _note_for(note, vendor_id: str):
    if isinstance(note, Mapping):
        return note.get(vendor_id)
    return note


def allocate_shipping_discount(applied: AppliedDiscount | None, pricings: Sequence[VendorPricing]) -> dict[str, int]:
    """The whole shipping discount on its target vendor, capped at that vendor's fee."""
    if applied is None or applied.amount <= 0:
        return {}
    target = next((p for p in pricings if p.vendor_id == applied.vendor_id), None)
    if target is None:
        raise ValidationError({"shipping": ["Shipping discount targets a vendor outside this checkout"]})
    return {target.vendor_id: min(applied.amount, math.floor(target.shipping_fee))}


def allocate_product_discount(applied: AppliedDiscount | None, pricings: Sequence[VendorPricing]) -> dict[str, int]:
    """Share a product discount across vendors. See module docstring for the rounding rule."""
    if applied is None or applied.amount <= 0:
        return {}

    if applied.vendor_id is not None:
        target = next((p for p in pricings if p.vendor_id == applied.vendor_id), None)
        if target is None:
            raise ValidationError({"product": ["Discount applies to a vendor that is not part of this checkout"]})
        return {target.vendor_id: applied.amount}

    total = sum(Decimal(str(p.subtotal)) for p in pricings)
    if total <= 0:
        return {}

    amount = Decimal(applied.amount)
    shares = []
    for pricing in pricings:
        exact = amount * Decimal(str(pricing.subtotal)) / total
        base = math.floor(exact)
        shares.append([pricing.vendor_id, base, exact - base])

    leftover = applied.amount - sum(share[1] for share in shares)
    # sorted() is stable, so equal remainders keep cart order
    for index in sorted(range(len(shares)), key=lambda i: shares[i][2], reverse=True)[:leftover]:
        shares[index][1] += 1

    return {vendor_id: allocated for vendor_id, allocated, _ in shares}


def build_order_intents(
    vendor_groups: Sequence[VendorGroup],
    discounts: AppliedDiscounts,
    address,
    payment_method,
    note=None,
    policy: ShippingPolicy | None = None,
    checkout_id: str | None = None,
) -> list[OrderIntent]:
    """Split a checkout into per-vendor order intents, in cart order.

    Args:
        vendor_groups: Groups from ``group_by_vendor``; groups with nothing
            selected are skipped.
        discounts: Discounts already re-validated by ``DiscountResolver.apply_selection``.
        address: ``ShippingAddress`` or a mapping of its fields.
        payment_method: ``PaymentMethod`` or its value.
        note: One note for every vendor, or a mapping of vendor id to note.
        checkout_id: Prefix of each intent's idempotency key; generated if omitted.
    """
    if not isinstance(discounts, AppliedDiscounts):
        raise TypeError("discounts must be AppliedDiscounts from DiscountResolver.apply_selection")

    pricings = price_cart(vendor_groups, policy)
    if not pricings:
        return []

    address = _require_address(address)
    method = coerce_payment_method(payment_method)
    checkout_id = checkout_id or uuid4().hex

    shipping_shares = allocate_shipping_discount(discounts.shipping, pricings)
    product_shares = allocate_product_discount(discounts.product, pricings)
    groups = {group.vendor_id: group for group in vendor_groups}

    intents = []
    for pricing in pricings:
        vendor_id = pricing.vendor_id
        shipping_amount = shipping_shares.get(vendor_id, 0)
        product_amount = product_shares.get(vendor_id, 0)
        intents.append(
            OrderIntent(
                vendor_id=vendor_id,
                vendor_name=pricing.vendor_name,
                lines=tuple(
                    IntentLine(
                        product_id=str(item.product_id),
                        title=item.title,
                        unit_price=item.unit_price,
                        quantity=item.quantity,
                    )
                    for item in groups[vendor_id].selected_items
                ),
                subtotal=pricing.subtotal,
                shipping_fee=pricing.shipping_fee,
                discounts=DiscountBreakdown(
                    shipping_amount=shipping_amount,
                    shipping_code=discounts.shipping.code if shipping_amount else None,
                    product_amount=product_amount,
                    product_code=discounts.product.code if product_amount else None,
                ),
                address=address,
                payment_method=method,
                note=_note_for(note, vendor_id),
                idempotency_key=idempotency_key(checkout_id, vendor_id),
            )
        )
    return intents
