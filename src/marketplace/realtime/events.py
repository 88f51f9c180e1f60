"""Push channel payloads, validated with pydantic.

The server names fields in camelCase; models accept either spelling.
"""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

ORDER_UPDATED = "order:updated"
DISCOUNT_STATUS_CHANGED = "discount:statusChanged"
CONNECTED = "connected"
ERROR = "error"


@dataclass(frozen=True)
class PushMessage:
    """One raw frame from the push channel: event name and undecoded data."""

    event: str
    data: str = ""


class PushEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class OrderUpdated(PushEvent):
    order_id: str = Field(alias="orderId")
    status: str


class DiscountStatusChanged(PushEvent):
    discount_id: str = Field(alias="discountId")
    is_active: bool = Field(alias="isActive")


class Connected(PushEvent):
    client_id: str | None = Field(default=None, alias="clientId")


class ServerError(PushEvent):
    message: str | None = None


EVENT_TYPES: dict[str, type[PushEvent]] = {
    ORDER_UPDATED: OrderUpdated,
    DISCOUNT_STATUS_CHANGED: DiscountStatusChanged,
    CONNECTED: Connected,
    ERROR: ServerError,
}


def parse(message: PushMessage) -> PushEvent:
    """Decode a frame. Raises ``ValueError`` for unknown events or malformed data."""
    model = EVENT_TYPES.get(message.event)
    if model is None:
        raise ValueError(f"Unknown push event: {message.event}")
    return model.model_validate_json(message.data or "{}")
