"""Domain events raised by the local Order view.

Raised when a status change or an admin annotation is applied, whether it
originated from a local action or from a push update.
"""

from protean.fields import DateTime, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    """The order moved to a new status."""

    __version__ = 1

    order_id = Identifier(required=True)
    vendor_id = Identifier()
    previous_status = String(required=True)
    new_status = String(required=True)
    actor = String()  # None when the change arrived from the server
    changed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderFlagged:
    """An administrator flagged the order for a dispute."""

    __version__ = 1

    order_id = Identifier(required=True)
    note = String(required=True)
    flagged_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderUnflagged:
    """The dispute was resolved and the flag cleared."""

    __version__ = 1

    order_id = Identifier(required=True)
    note = String(required=True)
    unflagged_at = DateTime(required=True)
