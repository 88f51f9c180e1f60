"""Role-specific order handlers for buyers, vendors and administrators.

Every handler validates against the lifecycle table on the local view first,
so a forbidden change never reaches the network. The server's response is
then written back to the view.
"""

import structlog

from marketplace.order.lifecycle import Actor, OrderStatus, coerce_actor, coerce_status
from marketplace.order.order import Order
from marketplace.order.views import OrderBoard

logger = structlog.get_logger(__name__)


class OrderActions:
    def __init__(self, gateway, board: OrderBoard | None = None):
        self.gateway = gateway
        self.board = board or OrderBoard(gateway)

    async def _transition(self, order_id, target: OrderStatus, actor: Actor, call, *args) -> Order:
        order = self.board.get(order_id)
        previous = order.status
        order.transition(target, actor)
        snapshot = await call(str(order_id), *args)
        order = self.board.apply_snapshot(order, snapshot)
        logger.info(
            "Order status changed",
            order_id=str(order_id),
            previous_status=previous,
            new_status=order.status,
            actor=actor.value,
        )
        return order

    async def update_status(self, order_id, target, actor=Actor.VENDOR) -> Order:
        """Vendor-side status change (processing, shipped, delivered, cancelled)."""
        target, actor = coerce_status(target), coerce_actor(actor)
        return await self._transition(order_id, target, actor, self.gateway.update_order_status, target.value)

    async def confirm_delivery(self, order_id) -> Order:
        return await self._transition(order_id, OrderStatus.COMPLETED, Actor.BUYER, self.gateway.confirm_delivery)

    async def cancel(self, order_id, actor=Actor.BUYER) -> Order:
        actor = coerce_actor(actor)
        if actor == Actor.BUYER:
            return await self._transition(order_id, OrderStatus.CANCELLED, actor, self.gateway.cancel_order)
        return await self._transition(
            order_id,
            OrderStatus.CANCELLED,
            actor,
            self.gateway.update_order_status,
            OrderStatus.CANCELLED.value,
        )

    async def retry_payment(self, order_id) -> Order:
        """Send a failed payment back to pending so the buyer can pay again."""
        return await self._transition(
            order_id,
            OrderStatus.PENDING_PAYMENT,
            Actor.BUYER,
            self.gateway.update_order_status,
            OrderStatus.PENDING_PAYMENT.value,
        )

    async def flag(self, order_id, note, actor=Actor.ADMIN) -> Order:
        order = self.board.get(order_id)
        order.flag(note, actor)
        snapshot = await self.gateway.flag_order(str(order_id), order.flag_note)
        logger.info("Order flagged", order_id=str(order_id))
        return self.board.apply_snapshot(order, snapshot)

    async def unflag(self, order_id, note, actor=Actor.ADMIN) -> Order:
        order = self.board.get(order_id)
        order.unflag(note, actor)
        snapshot = await self.gateway.unflag_order(str(order_id), order.flag_note)
        logger.info("Order unflagged", order_id=str(order_id))
        return self.board.apply_snapshot(order, snapshot)
