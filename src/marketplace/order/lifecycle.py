"""Order status state machine shared by buyer, vendor, payment and carrier callbacks.

The transition table is data: every edge lists the actors allowed to trigger
it, and every check goes through ``assert_transition``. Anything not in the
table, including a move to the current status, raises ``TransitionError``.

    pending_payment → paid | payment_failed      (payment callback)
    pending_payment → cancelled                  (buyer, vendor)
    payment_failed  → pending_payment            (buyer retries payment)
    paid            → processing                 (vendor)
    paid            → cancelled                  (buyer, vendor)
    processing      → shipped                    (vendor)
    processing      → cancelled                  (vendor)
    shipped         → delivered                  (vendor, carrier)
    delivered       → completed                  (buyer confirms receipt)
    completed, cancelled                         terminal

Administrators never move an order along; they only flag it for disputes.
"""

from enum import Enum

from protean.exceptions import ValidationError

from marketplace.errors import TransitionError


class OrderStatus(Enum):
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_FAILED = "payment_failed"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Actor(Enum):
    BUYER = "buyer"
    VENDOR = "vendor"
    ADMIN = "admin"
    PAYMENT = "payment"
    CARRIER = "carrier"


INITIAL_STATUS = OrderStatus.PENDING_PAYMENT

_VALID_TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT: {
        OrderStatus.PAID: frozenset({Actor.PAYMENT}),
        OrderStatus.PAYMENT_FAILED: frozenset({Actor.PAYMENT}),
        OrderStatus.CANCELLED: frozenset({Actor.BUYER, Actor.VENDOR}),
    },
    OrderStatus.PAYMENT_FAILED: {
        OrderStatus.PENDING_PAYMENT: frozenset({Actor.BUYER}),
    },
    OrderStatus.PAID: {
        OrderStatus.PROCESSING: frozenset({Actor.VENDOR}),
        OrderStatus.CANCELLED: frozenset({Actor.BUYER, Actor.VENDOR}),
    },
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED: frozenset({Actor.VENDOR}),
        OrderStatus.CANCELLED: frozenset({Actor.VENDOR}),
    },
    OrderStatus.SHIPPED: {
        OrderStatus.DELIVERED: frozenset({Actor.VENDOR, Actor.CARRIER}),
    },
    OrderStatus.DELIVERED: {
        OrderStatus.COMPLETED: frozenset({Actor.BUYER}),
    },
    OrderStatus.COMPLETED: {},  # Terminal
    OrderStatus.CANCELLED: {},  # Terminal
}

# Timestamp recorded on the order when it enters each status
STATUS_TIMESTAMPS = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def coerce_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value}"]}) from None


def coerce_actor(value) -> Actor:
    if isinstance(value, Actor):
        return value
    try:
        return Actor(value)
    except ValueError:
        raise ValidationError({"actor": [f"Unknown actor: {value}"]}) from None


def is_terminal(status) -> bool:
    return not _VALID_TRANSITIONS[coerce_status(status)]


def can_transition(current, target, actor) -> bool:
    allowed = _VALID_TRANSITIONS[coerce_status(current)].get(coerce_status(target), frozenset())
    return coerce_actor(actor) in allowed


def assert_transition(current, target, actor) -> OrderStatus:
    """Return the target status, or raise ``TransitionError`` if the move is not allowed."""
    current, target, actor = coerce_status(current), coerce_status(target), coerce_actor(actor)
    if actor not in _VALID_TRANSITIONS[current].get(target, frozenset()):
        raise TransitionError(current, target, actor)
    return target


def allowed_targets(current, actor) -> list[OrderStatus]:
    """Statuses this actor may move the order to, in table order."""
    actor = coerce_actor(actor)
    return [target for target, actors in _VALID_TRANSITIONS[coerce_status(current)].items() if actor in actors]
