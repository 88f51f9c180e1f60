"""Order aggregate: the buyer's, vendor's or admin's local view of one vendor order.

The server owns the order; this view is built from the submission receipt and
then kept in step with server responses and push updates. Status changes made
from this side go through the lifecycle table in ``marketplace.order.lifecycle``.
The admin dispute flag sits beside the status and never changes it.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from marketplace.domain import marketplace
from marketplace.order.events import OrderFlagged, OrderStatusChanged, OrderUnflagged
from marketplace.order.lifecycle import (
    INITIAL_STATUS,
    STATUS_TIMESTAMPS,
    Actor,
    OrderStatus,
    allowed_targets,
    assert_transition,
    coerce_actor,
    coerce_status,
)


class PaymentMethod(Enum):
    CREDIT_CARD = "credit_card"
    CASH_ON_DELIVERY = "cash_on_delivery"


def coerce_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError({"payment_method": [f"Unsupported payment method: {value}"]}) from None


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@marketplace.value_object
class ShippingAddress:
    """Where a checkout is delivered. Captured once and shared by every vendor order."""

    recipient = String(required=True, max_length=100)
    phone = String(required=True, max_length=30)
    city = String(required=True, max_length=100)
    district = String(max_length=100)
    postal_code = String(max_length=20)
    street = String(required=True, max_length=255)


@marketplace.value_object(part_of="Order")
class OrderPricing:
    """Amounts locked at submission. ``total`` already has both discounts taken off."""

    subtotal = Float(default=0.0)
    shipping_fee = Float(default=0.0)
    shipping_discount = Integer(default=0)
    product_discount = Integer(default=0)
    total = Float(default=0.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    title = String(max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    order_number = String(max_length=50)
    vendor_id = Identifier(required=True)
    vendor_name = String(max_length=255)
    status = String(choices=OrderStatus, default=INITIAL_STATUS.value)
    lines = HasMany(OrderLine)
    pricing = ValueObject(OrderPricing)
    shipping_address = ValueObject(ShippingAddress)
    payment_method = String(choices=PaymentMethod)
    note = Text()
    idempotency_key = String(max_length=255)
    is_flagged = Boolean(default=False)
    flag_note = Text()
    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def from_intent(cls, intent, receipt):
        """Build the local view of an order the server just accepted.

        Args:
            intent: The ``OrderIntent`` that was submitted.
            receipt: The server's ``OrderReceipt`` (id, number, status).
        """
        now = datetime.now(UTC)
        return cls(
            id=str(receipt.order_id),
            order_number=receipt.order_number,
            vendor_id=intent.vendor_id,
            vendor_name=intent.vendor_name,
            status=coerce_status(receipt.status or INITIAL_STATUS).value,
            lines=[
                OrderLine(
                    product_id=line.product_id,
                    title=line.title,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                )
                for line in intent.lines
            ],
            pricing=OrderPricing(
                subtotal=intent.subtotal,
                shipping_fee=intent.shipping_fee,
                shipping_discount=intent.discounts.shipping_amount,
                product_discount=intent.discounts.product_amount,
                total=intent.total,
            ),
            shipping_address=intent.address,
            payment_method=intent.payment_method.value,
            note=intent.note,
            idempotency_key=intent.idempotency_key,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def _enter(self, target: OrderStatus, actor: Actor | None = None):
        previous = self.status
        now = datetime.now(UTC)
        self.status = target.value
        if target in STATUS_TIMESTAMPS:
            setattr(self, STATUS_TIMESTAMPS[target], now)
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                vendor_id=str(self.vendor_id),
                previous_status=previous,
                new_status=target.value,
                actor=actor.value if actor else None,
                changed_at=now,
            )
        )

    def transition(self, target, actor):
        """Move to ``target`` as ``actor``. Raises ``TransitionError`` if the table forbids it."""
        target = assert_transition(self.status, target, actor)
        self._enter(target, coerce_actor(actor))

    def apply_remote_status(self, status) -> bool:
        """Adopt a status reported by the server. Returns False when nothing changed.

        The server has already enforced the lifecycle, and a dropped push
        connection can skip intermediate statuses, so no edge check is made.
        """
        target = coerce_status(status)
        if target.value == self.status:
            return False
        self._enter(target)
        return True

    def allowed_actions(self, actor) -> list[OrderStatus]:
        return allowed_targets(self.status, actor)

    # -------------------------------------------------------------------
    # Dispute annotation
    # -------------------------------------------------------------------
    @staticmethod
    def _assert_admin(actor):
        if coerce_actor(actor) != Actor.ADMIN:
            raise ValidationError({"actor": ["Only administrators can flag orders"]})

    @staticmethod
    def _clean_note(note):
        note = (note or "").strip()
        if not note:
            raise ValidationError({"note": ["A note is required"]})
        return note

    def flag(self, note, actor=Actor.ADMIN):
        self._assert_admin(actor)
        note = self._clean_note(note)
        now = datetime.now(UTC)
        self.is_flagged = True
        self.flag_note = note
        self.updated_at = now
        self.raise_(OrderFlagged(order_id=str(self.id), note=note, flagged_at=now))

    def unflag(self, note, actor=Actor.ADMIN):
        """Clear the dispute flag; the resolution note replaces the flag note."""
        self._assert_admin(actor)
        note = self._clean_note(note)
        if not self.is_flagged:
            raise ValidationError({"is_flagged": ["Order is not flagged"]})
        now = datetime.now(UTC)
        self.is_flagged = False
        self.flag_note = note
        self.updated_at = now
        self.raise_(OrderUnflagged(order_id=str(self.id), note=note, unflagged_at=now))
