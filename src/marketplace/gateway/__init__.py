"""Marketplace gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeMarketplaceGateway for development and testing (``MARKETPLACE_GATEWAY=fake``)
- HttpMarketplaceGateway against the marketplace API (``MARKETPLACE_GATEWAY=http``)
"""

from marketplace.config import get_config
from marketplace.gateway.fake_adapter import FakeMarketplaceGateway
from marketplace.gateway.http_adapter import HttpMarketplaceGateway
from marketplace.gateway.port import MarketplaceGateway, OrderReceipt, OrderSnapshot

__all__ = [
    "FakeMarketplaceGateway",
    "HttpMarketplaceGateway",
    "MarketplaceGateway",
    "OrderReceipt",
    "OrderSnapshot",
    "get_gateway",
    "reset_gateway",
    "set_gateway",
]

_current_gateway: MarketplaceGateway | None = None


def get_gateway(guard=None) -> MarketplaceGateway:
    """Return the current gateway, building one from configuration on first use."""
    global _current_gateway
    if _current_gateway is None:
        config = get_config()
        if config.gateway == "http":
            _current_gateway = HttpMarketplaceGateway.from_config(config, guard=guard)
        else:
            _current_gateway = FakeMarketplaceGateway()
    return _current_gateway


def set_gateway(gateway: MarketplaceGateway) -> None:
    """Override the active gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the configured default."""
    global _current_gateway
    _current_gateway = None
