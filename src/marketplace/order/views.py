"""OrderBoard: the in-memory collection of local order views.

Checkout stores every accepted order here; push updates and server responses
patch the stored view. Updates for orders this client never stored are
ignored.
"""

import structlog
from protean import current_domain
from protean.exceptions import ObjectNotFoundError

from marketplace.order.order import Order

logger = structlog.get_logger(__name__)


class OrderBoard:
    def __init__(self, gateway=None):
        self.gateway = gateway

    @property
    def _repo(self):
        return current_domain.repository_for(Order)

    def record(self, order: Order) -> Order:
        self._repo.add(order)
        return order

    def get(self, order_id) -> Order:
        """Raises ``ObjectNotFoundError`` for an order this client does not hold."""
        return self._repo.get(str(order_id))

    def find(self, order_id) -> Order | None:
        try:
            return self.get(order_id)
        except ObjectNotFoundError:
            return None

    def list(self, vendor_id=None, status=None) -> list[Order]:
        filters = {}
        if vendor_id is not None:
            filters["vendor_id"] = str(vendor_id)
        if status is not None:
            filters["status"] = getattr(status, "value", status)
        query = self._repo._dao.query
        if filters:
            query = query.filter(**filters)
        return query.all().items

    def apply_snapshot(self, order: Order, snapshot) -> Order:
        """Patch a view with the server's copy of the order and store it."""
        order.apply_remote_status(snapshot.status)
        if snapshot.is_flagged is not None:
            order.is_flagged = snapshot.is_flagged
            order.flag_note = snapshot.flag_note
        return self.record(order)

    def apply_update(self, order_id, status) -> Order | None:
        """Apply an ``order:updated`` push. Returns None when the order is unknown."""
        order = self.find(order_id)
        if order is None:
            logger.debug("Ignoring update for unknown order", order_id=str(order_id))
            return None
        if order.apply_remote_status(status):
            self.record(order)
            logger.info("Order status updated", order_id=str(order_id), status=order.status)
        return order

    async def refresh(self, order_id) -> Order | None:
        """Poll the server for one order the client already holds."""
        if self.gateway is None:
            raise RuntimeError("OrderBoard has no gateway to refresh from")
        order = self.find(order_id)
        if order is None:
            return None
        snapshot = await self.gateway.fetch_order(str(order_id))
        return self.apply_snapshot(order, snapshot)
