"""Shared BDD fixtures and step definitions for the marketplace checkout."""

import pytest
from marketplace.cart.cart import ShoppingCart
from marketplace.checkout.intent import DiscountBreakdown, IntentLine, OrderIntent
from marketplace.gateway.port import OrderReceipt
from marketplace.order.events import OrderFlagged, OrderStatusChanged, OrderUnflagged
from marketplace.order.order import Order, PaymentMethod, ShippingAddress
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

_ORDER_EVENT_CLASSES = {
    "OrderStatusChanged": OrderStatusChanged,
    "OrderFlagged": OrderFlagged,
    "OrderUnflagged": OrderUnflagged,
}


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps: Orders
# ---------------------------------------------------------------------------
@given("an order was placed", target_fixture="order")
def _():
    intent = OrderIntent(
        vendor_id="vendor-bdd",
        vendor_name="Store B",
        lines=(IntentLine(product_id="b1", title="Lamp", unit_price=200.0, quantity=1),),
        subtotal=200.0,
        shipping_fee=60.0,
        discounts=DiscountBreakdown(),
        address=ShippingAddress(recipient="Mei Lin", phone="0912345678", city="Taipei", street="1 Main Rd"),
        payment_method=PaymentMethod.CREDIT_CARD,
        note=None,
        idempotency_key="chk-bdd:vendor-bdd",
    )
    order = Order.from_intent(intent, OrderReceipt(order_id="ord-bdd-001", order_number="ORD-000001"))
    order._events.clear()
    return order


@given(parsers.cfparse('the order is "{status}"'), target_fixture="order")
def _(order, status):
    order.apply_remote_status(status)
    order._events.clear()
    return order


# ---------------------------------------------------------------------------
# Given steps: Shopping Cart
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a cart with {first:d} from "{first_vendor}" and {second:d} from "{second_vendor}"'),
    target_fixture="cart",
)
def _(first, first_vendor, second, second_vendor):
    cart = ShoppingCart.create(buyer_id="buyer-bdd")
    for amount, vendor in ((first, first_vendor), (second, second_vendor)):
        cart.add_item(
            product_id=f"{vendor}-item",
            vendor_id=vendor,
            vendor_name=vendor,
            unit_price=float(amount),
            quantity=1,
            stock=5,
        )
    cart._events.clear()
    return cart


@given(parsers.cfparse('"{vendor}" is deselected'))
def _(cart, vendor):
    cart.set_vendor_selected(vendor, False)


# ---------------------------------------------------------------------------
# Then steps: Orders
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert order.status == status


@then("the order action fails with a validation error")
def _(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("an {event_type} order event is raised"))
def _(order, event_type):
    event_cls = _ORDER_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in order._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in order._events]}"


@then("no order event is raised")
def _(order):
    assert order._events == []


# ---------------------------------------------------------------------------
# Then steps: Shopping Cart
# ---------------------------------------------------------------------------
@then("the cart action fails with a validation error")
def _(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)
