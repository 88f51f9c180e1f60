"""ShoppingCart aggregate: the buyer's live cart across every vendor.

Line items carry their vendor so the cart can be grouped per vendor at
checkout. Quantities stay within ``1..stock``; selection flags decide which
lines are checked out. Lines are dropped when removed or once the order that
contains them has been placed.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from marketplace.cart.grouping import VendorGroup, group_by_vendor
from marketplace.domain import marketplace


@marketplace.entity(part_of="ShoppingCart")
class CartLineItem:
    product_id = Identifier(required=True)
    title = String(max_length=255)
    vendor_id = Identifier(required=True)
    vendor_name = String(max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    stock = Integer(required=True, min_value=0)
    selected = Boolean(default=True)

    def line_total(self):
        return self.unit_price * self.quantity


@marketplace.aggregate
class ShoppingCart:
    buyer_id = Identifier()
    items = HasMany(CartLineItem)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, buyer_id=None):
        now = datetime.now(UTC)
        return cls(buyer_id=buyer_id, created_at=now, updated_at=now)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _line(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise ValidationError({"item_id": ["Item not found in cart"]})
        return item

    @staticmethod
    def _check_quantity(quantity, stock):
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if quantity > stock:
            raise ValidationError({"quantity": [f"Only {stock} left in stock"]})

    def _touch(self):
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, vendor_id, unit_price, stock, quantity=1, title=None, vendor_name=None, selected=True):
        """Add a product, or raise the quantity of the line already holding it."""
        existing = next((i for i in self.items if str(i.product_id) == str(product_id)), None)

        if existing:
            new_quantity = existing.quantity + quantity
            self._check_quantity(new_quantity, stock)
            existing.quantity = new_quantity
            existing.stock = stock
            line = existing
        else:
            self._check_quantity(quantity, stock)
            line = CartLineItem(
                product_id=product_id,
                title=title,
                vendor_id=vendor_id,
                vendor_name=vendor_name,
                unit_price=unit_price,
                quantity=quantity,
                stock=stock,
                selected=selected,
            )
            self.add_items(line)

        self._touch()
        return line

    def update_quantity(self, item_id, quantity):
        line = self._line(item_id)
        self._check_quantity(quantity, line.stock)
        line.quantity = quantity
        self._touch()

    def remove_item(self, item_id):
        self.remove_items(self._line(item_id))
        self._touch()

    def remove_ordered(self, product_ids):
        """Drop the selected lines whose products were ordered successfully."""
        ordered = {str(pid) for pid in product_ids}
        placed = [i for i in self.items if i.selected and str(i.product_id) in ordered]
        for line in placed:
            self.remove_items(line)
        if placed:
            self._touch()
        return len(placed)

    # -------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------
    def set_selected(self, item_id, selected):
        self._line(item_id).selected = bool(selected)
        self._touch()

    def set_vendor_selected(self, vendor_id, selected):
        lines = [i for i in self.items if str(i.vendor_id) == str(vendor_id)]
        if not lines:
            raise ValidationError({"vendor_id": ["No items from this vendor in cart"]})
        for line in lines:
            line.selected = bool(selected)
        self._touch()

    def set_all_selected(self, selected):
        for line in self.items:
            line.selected = bool(selected)
        self._touch()

    # -------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------
    def vendor_groups(self) -> list[VendorGroup]:
        return group_by_vendor(self.items)

    def selected_subtotal(self):
        return sum(i.line_total() for i in self.items if i.selected)
