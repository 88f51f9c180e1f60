"""Partition cart line items into per-vendor groups.

Groups come out in first-seen vendor order and every line lands in exactly
one group. Nothing is resorted; the dict keeps insertion order.
"""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class VendorGroup:
    """The slice of a cart belonging to one vendor. Derived, never persisted."""

    vendor_id: str
    vendor_name: str
    items: tuple = ()

    @property
    def all_selected(self) -> bool:
        return bool(self.items) and all(item.selected for item in self.items)

    @property
    def selected_items(self) -> tuple:
        return tuple(item for item in self.items if item.selected)

    @property
    def has_selection(self) -> bool:
        return any(item.selected for item in self.items)


def group_by_vendor(items: Iterable) -> list[VendorGroup]:
    """Group line items by ``vendor_id``, preserving first-seen order."""
    buckets: dict[str, list] = {}
    names: dict[str, str] = {}
    for item in items:
        vendor_id = str(item.vendor_id)
        if vendor_id not in buckets:
            buckets[vendor_id] = []
            names[vendor_id] = item.vendor_name or ""
        buckets[vendor_id].append(item)

    return [
        VendorGroup(vendor_id=vendor_id, vendor_name=names[vendor_id], items=tuple(lines))
        for vendor_id, lines in buckets.items()
    ]
