"""Marketplace HTTP adapter built on ``httpx.AsyncClient``.

Every request runs through the ``SessionGuard``: a 401 response raises
``SessionExpiredError``, which triggers the shared token refresh and one
retry. Other error responses and transport failures raise ``GatewayError``.
Response bodies are validated with the pydantic schemas before they reach the
domain.
"""

import httpx
import pydantic
import structlog
from protean.exceptions import ValidationError

from marketplace.config import MarketplaceConfig
from marketplace.errors import GatewayError, SessionExpiredError
from marketplace.gateway.port import MarketplaceGateway, OrderReceipt, OrderSnapshot
from marketplace.gateway.schemas import (
    CreateOrderRequest,
    DiscountOfferSchema,
    FlagOrderRequest,
    OrderReceiptResponse,
    OrderResponse,
    UpdateOrderStatusRequest,
)
from marketplace.session.guard import SessionGuard

logger = structlog.get_logger(__name__)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class HttpMarketplaceGateway(MarketplaceGateway):
    def __init__(
        self,
        base_url: str,
        guard: SessionGuard | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.guard = guard
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: MarketplaceConfig, guard: SessionGuard | None = None) -> "HttpMarketplaceGateway":
        return cls(config.api_base_url, guard=guard, timeout=config.request_timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json=None, params=None, headers=None):
        async def send(token):
            request_headers = dict(headers or {})
            if token:
                request_headers["Authorization"] = f"Bearer {token}"
            try:
                response = await self._client.request(method, path, json=json, params=params, headers=request_headers)
            except httpx.HTTPError as exc:
                logger.warning("Marketplace request failed", method=method, path=path, error=str(exc))
                raise GatewayError(f"{method} {path} failed: {exc}") from exc

            if response.status_code == 401:
                raise SessionExpiredError(_detail(response))
            if response.is_error:
                logger.warning(
                    "Marketplace request rejected",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                )
                raise GatewayError(_detail(response), status_code=response.status_code)
            try:
                return response.json()
            except ValueError as exc:
                logger.warning("Marketplace response is not JSON", method=method, path=path)
                raise GatewayError(
                    f"{method} {path} returned a non-JSON body", status_code=response.status_code
                ) from exc

        if self.guard is None:
            return await send(None)
        return await self.guard.call(send)

    @staticmethod
    def _parse(schema, payload):
        try:
            return schema.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise GatewayError(f"Malformed {schema.__name__} payload: {exc}") from exc

    # -------------------------------------------------------------------
    # Discounts
    # -------------------------------------------------------------------
    async def eligible_discounts(self, subtotal: float, vendor_ids: list[str]) -> list:
        payload = await self._request(
            "GET",
            "/discounts/eligible",
            params={"subtotal": subtotal, "store_ids": list(vendor_ids)},
        )
        offers = []
        for item in payload:
            schema = self._parse(DiscountOfferSchema, item)
            try:
                offers.append(schema.to_offer())
            except ValidationError as exc:
                logger.warning("Skipping invalid discount offer", discount_id=schema.id, error=str(exc))
        return offers

    # -------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------
    async def create_order(self, intent) -> OrderReceipt:
        body = CreateOrderRequest.from_intent(intent)
        payload = await self._request(
            "POST",
            "/orders",
            json=body.model_dump(mode="json"),
            headers={"Idempotency-Key": intent.idempotency_key},
        )
        return self._parse(OrderReceiptResponse, payload).to_receipt()

    async def _order_call(self, method: str, path: str, body=None) -> OrderSnapshot:
        payload = await self._request(method, path, json=body.model_dump() if body is not None else None)
        return self._parse(OrderResponse, payload).to_snapshot()

    async def update_order_status(self, order_id: str, status: str) -> OrderSnapshot:
        return await self._order_call("PATCH", f"/orders/{order_id}/status", UpdateOrderStatusRequest(status=status))

    async def confirm_delivery(self, order_id: str) -> OrderSnapshot:
        return await self._order_call("POST", f"/orders/{order_id}/confirm-delivery")

    async def cancel_order(self, order_id: str) -> OrderSnapshot:
        return await self._order_call("POST", f"/orders/{order_id}/cancel")

    async def fetch_order(self, order_id: str) -> OrderSnapshot:
        return await self._order_call("GET", f"/orders/{order_id}")

    async def flag_order(self, order_id: str, note: str) -> OrderSnapshot:
        return await self._order_call("POST", f"/admin/orders/{order_id}/flag", FlagOrderRequest(note=note))

    async def unflag_order(self, order_id: str, note: str) -> OrderSnapshot:
        return await self._order_call("POST", f"/admin/orders/{order_id}/unflag", FlagOrderRequest(note=note))
