"""Tests for the realtime notifier: reconnect backoff, push dispatch and shutdown."""

import asyncio
import json

from marketplace.checkout.intent import DiscountBreakdown, IntentLine, OrderIntent
from marketplace.config import MarketplaceConfig
from marketplace.gateway.fake_adapter import FakeMarketplaceGateway
from marketplace.gateway.port import OrderReceipt
from marketplace.order.order import Order, PaymentMethod, ShippingAddress
from marketplace.order.views import OrderBoard
from marketplace.realtime.channel import FakePushChannel
from marketplace.realtime.notifier import NotifierState, RealtimeNotifier


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


class RecordingResolver:
    def __init__(self):
        self.invalidated: list[str] = []

    def invalidate(self, discount_id):
        self.invalidated.append(discount_id)
        return True


def _notifier(channel, **kwargs):
    sleep = RecordingSleep()
    return RealtimeNotifier(channel, sleep=sleep, **kwargs), sleep


def _stored_order(order_id, status="processing"):
    intent = OrderIntent(
        vendor_id="rt-vendor",
        vendor_name="Store",
        lines=(IntentLine(product_id="p1", title="Mug", unit_price=120.0, quantity=1),),
        subtotal=120.0,
        shipping_fee=60.0,
        discounts=DiscountBreakdown(),
        address=ShippingAddress(recipient="Mei Lin", phone="0912345678", city="Taipei", street="1 Main Rd"),
        payment_method=PaymentMethod.CREDIT_CARD,
        note=None,
        idempotency_key=f"chk:{order_id}",
    )
    order = Order.from_intent(intent, OrderReceipt(order_id=order_id, status=status))
    return OrderBoard().record(order)


def _order_updated(order_id, status):
    return json.dumps({"orderId": order_id, "status": status})


class TestBackoff:
    def test_gives_up_after_max_attempts(self):
        channel = FakePushChannel(refuse=-1)
        notifier, sleep = _notifier(channel)

        async def scenario():
            notifier.start()
            await notifier.wait()

        asyncio.run(scenario())
        assert notifier.state == NotifierState.UNAVAILABLE
        assert sleep.delays == [3.0, 6.0, 12.0, 24.0, 48.0]
        assert channel.connect_count == 6

    def test_delay_schedule(self):
        notifier, _ = _notifier(FakePushChannel(), base_delay=2.0)
        assert [notifier.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_success_resets_attempts(self):
        channel = FakePushChannel(refuse=2)
        notifier, sleep = _notifier(channel)

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            attempts = notifier.attempts
            await notifier.close()
            return attempts

        assert asyncio.run(scenario()) == 0
        assert sleep.delays == [3.0, 6.0]

    def test_manual_reconnect_starts_over(self):
        channel = FakePushChannel(refuse=-1)
        notifier, sleep = _notifier(channel, max_attempts=2)

        async def scenario():
            notifier.start()
            await notifier.wait()
            assert notifier.state == NotifierState.UNAVAILABLE
            channel.refuse = 0
            await notifier.reconnect()
            await channel.wait_until(lambda: notifier.is_live)
            await notifier.close()

        asyncio.run(scenario())
        assert notifier.attempts == 0
        assert sleep.delays == [3.0, 6.0]

    def test_dropped_stream_reconnects(self):
        channel = FakePushChannel()
        notifier, sleep = _notifier(channel)

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            channel.drop()
            await channel.wait_until(lambda: channel.connect_count == 2 and notifier.is_live)
            await notifier.close()

        asyncio.run(scenario())
        assert sleep.delays == [3.0]
        assert channel.connections[0].closed

    def test_server_error_event_triggers_backoff(self):
        channel = FakePushChannel()
        notifier, sleep = _notifier(channel)

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            await channel.push("error", json.dumps({"message": "maintenance"}))
            await channel.wait_until(lambda: channel.connect_count == 2 and notifier.is_live)
            await notifier.close()

        asyncio.run(scenario())
        assert sleep.delays == [3.0]

    def test_from_config(self):
        config = MarketplaceConfig(realtime_base_delay=1.5, realtime_max_attempts=3)
        notifier = RealtimeNotifier.from_config(config, FakePushChannel())
        assert (notifier.base_delay, notifier.max_attempts) == (1.5, 3)


class TestLifecycle:
    def test_repeated_start_opens_one_connection(self):
        channel = FakePushChannel()
        notifier, _ = _notifier(channel)

        async def scenario():
            notifier.start()
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            notifier.start()
            await notifier.close()

        asyncio.run(scenario())
        assert channel.connect_count == 1
        assert [c.closed for c in channel.connections] == [True]

    def test_state_changes_are_reported(self):
        channel = FakePushChannel()
        states = []
        notifier, _ = _notifier(channel, on_state_change=states.append)

        async def scenario():
            notifier.start()
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            await notifier.close()

        asyncio.run(scenario())
        assert states == [NotifierState.CONNECTING, NotifierState.OPEN, NotifierState.CLOSED]
        assert channel.connect_count == 1

    def test_close_releases_connection(self):
        channel = FakePushChannel()
        notifier, _ = _notifier(channel)

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            await notifier.close()

        asyncio.run(scenario())
        assert notifier.state == NotifierState.CLOSED
        assert channel.current.closed


class TestDispatch:
    def test_order_update_patches_view(self):
        order = _stored_order("ord-rt-1")
        channel = FakePushChannel()
        notifier, _ = _notifier(channel, board=OrderBoard())

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            await channel.push("order:updated", _order_updated("ord-rt-1", "shipped"))
            await channel.push("order:updated", _order_updated("ord-rt-unknown", "shipped"))
            await notifier.close()

        asyncio.run(scenario())
        assert OrderBoard().get(order.id).status == "shipped"
        assert OrderBoard().find("ord-rt-unknown") is None

    def test_malformed_payloads_are_skipped(self):
        _stored_order("ord-rt-2")
        channel = FakePushChannel()
        notifier, _ = _notifier(channel, board=OrderBoard())

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            await channel.push("order:updated", "{not json")
            await channel.push("order:updated", json.dumps({"status": "shipped"}))
            await channel.push("inventory:changed", "{}")
            await channel.push("order:updated", _order_updated("ord-rt-2", "lost"))
            await channel.push("order:updated", _order_updated("ord-rt-2", "delivered"))
            live = notifier.is_live
            await notifier.close()
            return live

        assert asyncio.run(scenario()) is True
        assert channel.connect_count == 1
        assert OrderBoard().get("ord-rt-2").status == "delivered"

    def test_failing_handler_does_not_stop_the_notifier(self):
        class BrokenBoard:
            def __init__(self):
                self.seen = []

            def apply_update(self, order_id, status):
                self.seen.append(order_id)
                if order_id == "ord-boom":
                    raise RuntimeError("view store unavailable")

        board = BrokenBoard()
        channel = FakePushChannel()
        notifier, sleep = _notifier(channel, board=board)

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            await channel.push("order:updated", _order_updated("ord-boom", "shipped"))
            await channel.push("order:updated", _order_updated("ord-ok", "shipped"))
            live = notifier.is_live
            await notifier.close()
            return live

        assert asyncio.run(scenario()) is True
        assert board.seen == ["ord-boom", "ord-ok"]
        assert channel.connect_count == 1
        assert sleep.delays == []

    def test_deactivated_discount_is_invalidated(self):
        resolver = RecordingResolver()
        channel = FakePushChannel()
        notifier, _ = _notifier(channel, resolver=resolver)

        async def scenario():
            notifier.start()
            await channel.wait_until(lambda: notifier.is_live)
            await channel.push("discount:statusChanged", json.dumps({"discountId": "d-ship", "isActive": False}))
            await channel.push("discount:statusChanged", json.dumps({"discountId": "d-pct", "isActive": True}))
            await notifier.close()

        asyncio.run(scenario())
        assert resolver.invalidated == ["d-ship"]

    def test_refresh_order_polls_gateway(self):
        gateway = FakeMarketplaceGateway()
        order = _stored_order("ord-rt-3", status="shipped")
        gateway.orders["ord-rt-3"] = {
            "vendor_id": "rt-vendor",
            "order_number": None,
            "status": "delivered",
            "total": 180.0,
            "is_flagged": False,
            "flag_note": None,
        }
        notifier, _ = _notifier(FakePushChannel(), board=OrderBoard(gateway))

        refreshed = asyncio.run(notifier.refresh_order(order.id))
        assert refreshed.status == "delivered"
