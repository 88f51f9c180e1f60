"""Configurable in-memory marketplace for development and testing.

Holds published discount offers and created orders without any network call.
Order creation can be made to fail for chosen vendors, and can be held back
behind an ``asyncio.Event`` to exercise in-flight behaviour. Every call is
recorded in ``calls``.
"""

import asyncio
from uuid import uuid4

from marketplace.errors import GatewayError
from marketplace.gateway.port import MarketplaceGateway, OrderReceipt, OrderSnapshot


class FakeMarketplaceGateway(MarketplaceGateway):
    """Configurable fake marketplace API."""

    def __init__(self) -> None:
        self.offers: list = []
        self.orders: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.discounts_available: bool = True
        self.vendor_failures: dict[str, str] = {}
        self.order_gate: asyncio.Event | None = None
        self._receipts: dict[str, OrderReceipt] = {}
        self._sequence = 0

    def configure(
        self,
        offers=None,
        discounts_available: bool = True,
        vendor_failures: dict[str, str] | None = None,
    ) -> None:
        """Configure gateway behavior at runtime."""
        if offers is not None:
            self.offers = list(offers)
        self.discounts_available = discounts_available
        self.vendor_failures = dict(vendor_failures or {})

    def fail_vendor(self, vendor_id: str, reason: str = "Vendor unavailable") -> None:
        self.vendor_failures[str(vendor_id)] = reason

    def restore_vendor(self, vendor_id: str) -> None:
        self.vendor_failures.pop(str(vendor_id), None)

    def replace_offer(self, offer) -> None:
        """Swap a published offer for a changed copy, keyed by ``discount_id``."""
        self.offers = [offer if o.discount_id == offer.discount_id else o for o in self.offers]

    def _order(self, order_id: str) -> dict:
        order = self.orders.get(str(order_id))
        if order is None:
            raise GatewayError(f"Order {order_id} not found", status_code=404)
        return order

    def _snapshot(self, order_id: str) -> OrderSnapshot:
        order = self._order(order_id)
        return OrderSnapshot(
            order_id=str(order_id),
            status=order["status"],
            order_number=order["order_number"],
            is_flagged=order["is_flagged"],
            flag_note=order["flag_note"],
        )

    # -------------------------------------------------------------------
    # Discounts
    # -------------------------------------------------------------------
    async def eligible_discounts(self, subtotal: float, vendor_ids: list[str]) -> list:
        self.calls.append({"method": "eligible_discounts", "subtotal": subtotal, "vendor_ids": list(vendor_ids)})
        if not self.discounts_available:
            raise GatewayError("Discount service unavailable", status_code=503)
        return list(self.offers)

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    async def create_order(self, intent) -> OrderReceipt:
        self.calls.append(
            {
                "method": "create_order",
                "vendor_id": intent.vendor_id,
                "idempotency_key": intent.idempotency_key,
                "total": intent.total,
            }
        )
        if self.order_gate is not None:
            await self.order_gate.wait()

        if intent.idempotency_key in self._receipts:
            return self._receipts[intent.idempotency_key]
        if intent.vendor_id in self.vendor_failures:
            raise GatewayError(self.vendor_failures[intent.vendor_id], status_code=422)

        self._sequence += 1
        receipt = OrderReceipt(
            order_id=f"ord_{uuid4().hex[:12]}",
            order_number=f"ORD-{self._sequence:06d}",
            status="pending_payment",
        )
        self.orders[receipt.order_id] = {
            "vendor_id": intent.vendor_id,
            "order_number": receipt.order_number,
            "status": receipt.status,
            "total": intent.total,
            "is_flagged": False,
            "flag_note": None,
        }
        self._receipts[intent.idempotency_key] = receipt
        return receipt

    async def update_order_status(self, order_id: str, status: str) -> OrderSnapshot:
        self.calls.append({"method": "update_order_status", "order_id": order_id, "status": status})
        self._order(order_id)["status"] = status
        return self._snapshot(order_id)

    async def confirm_delivery(self, order_id: str) -> OrderSnapshot:
        self.calls.append({"method": "confirm_delivery", "order_id": order_id})
        self._order(order_id)["status"] = "completed"
        return self._snapshot(order_id)

    async def cancel_order(self, order_id: str) -> OrderSnapshot:
        self.calls.append({"method": "cancel_order", "order_id": order_id})
        self._order(order_id)["status"] = "cancelled"
        return self._snapshot(order_id)

    async def fetch_order(self, order_id: str) -> OrderSnapshot:
        self.calls.append({"method": "fetch_order", "order_id": order_id})
        return self._snapshot(order_id)

    async def flag_order(self, order_id: str, note: str) -> OrderSnapshot:
        self.calls.append({"method": "flag_order", "order_id": order_id, "note": note})
        self._order(order_id).update(is_flagged=True, flag_note=note)
        return self._snapshot(order_id)

    async def unflag_order(self, order_id: str, note: str) -> OrderSnapshot:
        self.calls.append({"method": "unflag_order", "order_id": order_id, "note": note})
        self._order(order_id).update(is_flagged=False, flag_note=note)
        return self._snapshot(order_id)
