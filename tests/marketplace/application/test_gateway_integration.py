"""Tests for gateway port/adapter integration."""

import asyncio

import pytest
from marketplace.checkout.intent import DiscountBreakdown, IntentLine, OrderIntent
from marketplace.errors import GatewayError
from marketplace.gateway import get_gateway, reset_gateway, set_gateway
from marketplace.gateway.fake_adapter import FakeMarketplaceGateway
from marketplace.gateway.http_adapter import HttpMarketplaceGateway
from marketplace.gateway.port import OrderReceipt, OrderSnapshot
from marketplace.order.order import PaymentMethod, ShippingAddress


def _intent(vendor_id="A", key="chk-1:A"):
    return OrderIntent(
        vendor_id=vendor_id,
        vendor_name="Store A",
        lines=(IntentLine(product_id="a1", title="Mug", unit_price=300.0, quantity=1),),
        subtotal=300.0,
        shipping_fee=60.0,
        discounts=DiscountBreakdown(),
        address=ShippingAddress(recipient="Mei Lin", phone="0912345678", city="Taipei", street="1 Main Rd"),
        payment_method=PaymentMethod.CREDIT_CARD,
        note=None,
        idempotency_key=key,
    )


class TestFakeGateway:
    def test_create_order_returns_receipt(self):
        gateway = FakeMarketplaceGateway()
        receipt = asyncio.run(gateway.create_order(_intent()))
        assert isinstance(receipt, OrderReceipt)
        assert receipt.order_id.startswith("ord_")
        assert receipt.order_number == "ORD-000001"
        assert receipt.status == "pending_payment"

    def test_same_idempotency_key_returns_same_order(self):
        gateway = FakeMarketplaceGateway()

        async def scenario():
            return await gateway.create_order(_intent()), await gateway.create_order(_intent())

        first, second = asyncio.run(scenario())
        assert first == second
        assert len(gateway.orders) == 1

    def test_configured_vendor_failure(self):
        gateway = FakeMarketplaceGateway()
        gateway.configure(vendor_failures={"A": "Store closed"})
        with pytest.raises(GatewayError) as exc:
            asyncio.run(gateway.create_order(_intent()))
        assert exc.value.status_code == 422
        assert str(exc.value) == "Store closed"

    def test_discounts_unavailable(self):
        gateway = FakeMarketplaceGateway()
        gateway.configure(discounts_available=False)
        with pytest.raises(GatewayError):
            asyncio.run(gateway.eligible_discounts(800.0, ["A"]))

    def test_status_calls_return_snapshots(self):
        gateway = FakeMarketplaceGateway()

        async def scenario():
            receipt = await gateway.create_order(_intent())
            await gateway.update_order_status(receipt.order_id, "paid")
            return await gateway.fetch_order(receipt.order_id)

        snapshot = asyncio.run(scenario())
        assert isinstance(snapshot, OrderSnapshot)
        assert snapshot.status == "paid"

    def test_call_logging(self):
        gateway = FakeMarketplaceGateway()
        asyncio.run(gateway.eligible_discounts(800.0, ["A", "B"]))
        assert gateway.calls == [{"method": "eligible_discounts", "subtotal": 800.0, "vendor_ids": ["A", "B"]}]


class TestGatewayFactory:
    def test_get_gateway_returns_fake_by_default(self, monkeypatch):
        monkeypatch.delenv("MARKETPLACE_GATEWAY", raising=False)
        reset_gateway()
        assert isinstance(get_gateway(), FakeMarketplaceGateway)

    def test_http_gateway_from_environment(self, monkeypatch):
        monkeypatch.setenv("MARKETPLACE_GATEWAY", "http")
        monkeypatch.setenv("MARKETPLACE_API_BASE_URL", "https://api.example.test/v1/")
        reset_gateway()
        gateway = get_gateway()
        assert isinstance(gateway, HttpMarketplaceGateway)
        assert str(gateway._client.base_url) == "https://api.example.test/v1/"
        asyncio.run(gateway.aclose())

    def test_set_gateway_overrides(self):
        custom = FakeMarketplaceGateway()
        custom.configure(discounts_available=False)
        set_gateway(custom)
        assert get_gateway().discounts_available is False
        reset_gateway()

    def test_reset_gateway(self):
        custom = FakeMarketplaceGateway()
        custom.configure(discounts_available=False)
        set_gateway(custom)
        reset_gateway()
        assert get_gateway().discounts_available is True
