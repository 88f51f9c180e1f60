"""Tests for the ShoppingCart aggregate."""

import pytest
from marketplace.cart.cart import ShoppingCart
from protean.exceptions import ValidationError


def _cart():
    cart = ShoppingCart.create(buyer_id="buyer-001")
    cart.add_item(product_id="p1", vendor_id="A", vendor_name="Store A", unit_price=300.0, quantity=2, stock=5)
    cart.add_item(product_id="p2", vendor_id="B", vendor_name="Store B", unit_price=200.0, quantity=1, stock=3)
    return cart


class TestAddItem:
    def test_add_item_creates_line(self):
        cart = _cart()
        assert len(cart.items) == 2
        assert cart.items[0].quantity == 2
        assert cart.items[0].selected is True

    def test_adding_same_product_merges_quantity(self):
        cart = _cart()
        cart.add_item(product_id="p1", vendor_id="A", unit_price=300.0, quantity=1, stock=5)
        assert len(cart.items) == 2
        assert cart.items[0].quantity == 3

    def test_adding_beyond_stock_is_rejected(self):
        cart = _cart()
        with pytest.raises(ValidationError) as exc:
            cart.add_item(product_id="p1", vendor_id="A", unit_price=300.0, quantity=4, stock=5)
        assert "quantity" in exc.value.messages
        assert cart.items[0].quantity == 2

    def test_zero_quantity_is_rejected(self):
        cart = ShoppingCart.create()
        with pytest.raises(ValidationError):
            cart.add_item(product_id="p9", vendor_id="A", unit_price=10.0, quantity=0, stock=5)


class TestUpdateQuantity:
    def test_quantity_within_stock(self):
        cart = _cart()
        cart.update_quantity(cart.items[0].id, 5)
        assert cart.items[0].quantity == 5

    def test_quantity_above_stock_rejected(self):
        cart = _cart()
        with pytest.raises(ValidationError) as exc:
            cart.update_quantity(cart.items[1].id, 4)
        assert exc.value.messages["quantity"] == ["Only 3 left in stock"]
        assert cart.items[1].quantity == 1

    def test_quantity_below_one_rejected(self):
        cart = _cart()
        with pytest.raises(ValidationError):
            cart.update_quantity(cart.items[1].id, 0)

    def test_unknown_item_rejected(self):
        cart = _cart()
        with pytest.raises(ValidationError) as exc:
            cart.update_quantity("missing", 1)
        assert "item_id" in exc.value.messages


class TestSelection:
    def test_set_all_selected(self):
        cart = _cart()
        cart.set_all_selected(False)
        assert all(not i.selected for i in cart.items)
        assert cart.selected_subtotal() == 0

    def test_set_vendor_selected_unknown_vendor(self):
        cart = _cart()
        with pytest.raises(ValidationError):
            cart.set_vendor_selected("Z", True)

    def test_selected_subtotal_counts_only_selected_lines(self):
        cart = _cart()
        assert cart.selected_subtotal() == 800.0
        cart.set_vendor_selected("B", False)
        assert cart.selected_subtotal() == 600.0


class TestRemoval:
    def test_remove_item(self):
        cart = _cart()
        cart.remove_item(cart.items[0].id)
        assert [i.product_id for i in cart.items] == ["p2"]

    def test_remove_ordered_drops_only_selected_ordered_lines(self):
        cart = _cart()
        cart.set_vendor_selected("B", False)
        removed = cart.remove_ordered(["p1", "p2"])
        assert removed == 1
        assert [i.product_id for i in cart.items] == ["p2"]

    def test_remove_ordered_with_nothing_matching(self):
        cart = _cart()
        assert cart.remove_ordered(["p9"]) == 0
        assert len(cart.items) == 2
