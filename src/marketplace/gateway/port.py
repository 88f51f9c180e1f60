"""Marketplace gateway port (abstract interface).

Defines the request surface the checkout core consumes. The HTTP adapter
talks to the marketplace API; the fake adapter keeps everything in memory for
development and tests. Domain and application code only see this contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class OrderReceipt:
    """Server acknowledgement of a created order."""

    order_id: str
    order_number: str | None = None
    status: str = "pending_payment"


@dataclass(frozen=True)
class OrderSnapshot:
    """The server's current copy of an order, returned by status and flag calls."""

    order_id: str
    status: str
    order_number: str | None = None
    is_flagged: bool | None = None
    flag_note: str | None = None


class MarketplaceGateway(ABC):
    """Abstract marketplace API interface. Every method may raise ``GatewayError``."""

    @abstractmethod
    async def eligible_discounts(self, subtotal: float, vendor_ids: list[str]) -> list:
        """Discount offers the marketplace publishes for this subtotal and these vendors."""
        ...

    @abstractmethod
    async def create_order(self, intent) -> OrderReceipt:
        """Submit one vendor's order. Resubmitting the same idempotency key is safe."""
        ...

    @abstractmethod
    async def update_order_status(self, order_id: str, status: str) -> OrderSnapshot: ...

    @abstractmethod
    async def confirm_delivery(self, order_id: str) -> OrderSnapshot: ...

    @abstractmethod
    async def cancel_order(self, order_id: str) -> OrderSnapshot: ...

    @abstractmethod
    async def fetch_order(self, order_id: str) -> OrderSnapshot: ...

    @abstractmethod
    async def flag_order(self, order_id: str, note: str) -> OrderSnapshot: ...

    @abstractmethod
    async def unflag_order(self, order_id: str, note: str) -> OrderSnapshot: ...

    async def aclose(self) -> None:
        """Release network resources. Nothing to release by default."""
