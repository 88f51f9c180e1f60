"""Per-vendor pricing: subtotal of selected lines, flat shipping, pre-discount total.

Shipping is charged per vendor group. A buyer who reaches the free-shipping
threshold with one vendor still pays shipping to a vendor below it.
"""

from dataclasses import dataclass
from typing import Iterable

from marketplace.cart.grouping import VendorGroup
from marketplace.config import DEFAULT_FLAT_SHIPPING_FEE, DEFAULT_FREE_SHIPPING_THRESHOLD, MarketplaceConfig


@dataclass(frozen=True)
class ShippingPolicy:
    flat_fee: float = DEFAULT_FLAT_SHIPPING_FEE
    free_threshold: float = DEFAULT_FREE_SHIPPING_THRESHOLD

    @classmethod
    def from_config(cls, config: MarketplaceConfig) -> "ShippingPolicy":
        return cls(flat_fee=config.flat_shipping_fee, free_threshold=config.free_shipping_threshold)

    def shipping_for(self, subtotal: float) -> float:
        """Step function: free at or above the threshold, flat fee below it."""
        return 0.0 if subtotal >= self.free_threshold else float(self.flat_fee)


@dataclass(frozen=True)
class VendorPricing:
    vendor_id: str
    vendor_name: str
    subtotal: float
    shipping_fee: float

    @property
    def total(self) -> float:
        return self.subtotal + self.shipping_fee


def group_subtotal(group: VendorGroup) -> float:
    return sum(item.unit_price * item.quantity for item in group.selected_items)


def price_vendor_group(group: VendorGroup, policy: ShippingPolicy | None = None) -> VendorPricing:
    """Price one vendor group. Total over its domain: an empty selection prices at zero."""
    policy = policy or ShippingPolicy()
    subtotal = group_subtotal(group)
    shipping = policy.shipping_for(subtotal) if group.has_selection else 0.0
    return VendorPricing(
        vendor_id=group.vendor_id,
        vendor_name=group.vendor_name,
        subtotal=subtotal,
        shipping_fee=shipping,
    )


def price_cart(groups: Iterable[VendorGroup], policy: ShippingPolicy | None = None) -> list[VendorPricing]:
    """Price every group with at least one selected line, in cart order."""
    return [price_vendor_group(group, policy) for group in groups if group.has_selection]
