"""Runtime configuration read from ``MARKETPLACE_*`` environment variables."""

import os
from dataclasses import dataclass

DEFAULT_FLAT_SHIPPING_FEE = 60.0
DEFAULT_FREE_SHIPPING_THRESHOLD = 500.0


def _number(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


@dataclass(frozen=True)
class MarketplaceConfig:
    flat_shipping_fee: float = DEFAULT_FLAT_SHIPPING_FEE
    free_shipping_threshold: float = DEFAULT_FREE_SHIPPING_THRESHOLD
    api_base_url: str = "http://localhost:3000/api"
    request_timeout: float = 10.0
    realtime_base_delay: float = 3.0
    realtime_max_attempts: int = 5
    gateway: str = "fake"

    @classmethod
    def from_env(cls) -> "MarketplaceConfig":
        return cls(
            flat_shipping_fee=_number("MARKETPLACE_FLAT_SHIPPING_FEE", DEFAULT_FLAT_SHIPPING_FEE),
            free_shipping_threshold=_number("MARKETPLACE_FREE_SHIPPING_THRESHOLD", DEFAULT_FREE_SHIPPING_THRESHOLD),
            api_base_url=os.environ.get("MARKETPLACE_API_BASE_URL", cls.api_base_url).rstrip("/"),
            request_timeout=_number("MARKETPLACE_REQUEST_TIMEOUT", cls.request_timeout),
            realtime_base_delay=_number("MARKETPLACE_REALTIME_BASE_DELAY", cls.realtime_base_delay),
            realtime_max_attempts=int(_number("MARKETPLACE_REALTIME_MAX_ATTEMPTS", cls.realtime_max_attempts)),
            gateway=os.environ.get("MARKETPLACE_GATEWAY", cls.gateway).lower(),
        )


def get_config() -> MarketplaceConfig:
    """Return configuration for the current process environment."""
    return MarketplaceConfig.from_env()
