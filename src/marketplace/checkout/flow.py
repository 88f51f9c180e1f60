"""CheckoutFlow: confirm a multi-vendor checkout and submit one order per vendor.

Discounts are re-validated first. If any selected discount fails, nothing is
submitted and the report carries the failures plus the selection that
survived, so only the broken category is re-chosen. Otherwise every vendor's
order is submitted concurrently and the flow waits for all of them. A failed
vendor never rolls back the others and is never retried automatically;
``resubmit`` retries it on request with the same idempotency key.

``abandon`` bumps the flow's generation and cancels submissions in flight.
Results that come back for an older generation are discarded without touching
the cart or the order board.
"""

import asyncio
from dataclasses import dataclass, field
from uuid import uuid4

import structlog

from marketplace.checkout.intent import OrderIntent
from marketplace.checkout.splitter import build_order_intents
from marketplace.discount.resolver import DiscountResolver
from marketplace.discount.selection import DiscountSelection
from marketplace.errors import MarketplaceError, SubmissionError
from marketplace.gateway.port import OrderReceipt
from marketplace.order.order import Order
from marketplace.order.views import OrderBoard
from marketplace.pricing.shipping import ShippingPolicy, price_cart
from marketplace.utils.logging import add_context, remove_context

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VendorOutcome:
    intent: OrderIntent
    receipt: OrderReceipt | None = None
    error: SubmissionError | None = None

    @property
    def ok(self) -> bool:
        return self.receipt is not None

    @property
    def vendor_id(self) -> str:
        return self.intent.vendor_id

    @property
    def order_id(self) -> str | None:
        return self.receipt.order_id if self.receipt else None


@dataclass(frozen=True)
class SubmissionReport:
    outcomes: tuple = ()
    discount_failures: dict = field(default_factory=dict)
    surviving_selection: DiscountSelection | None = None
    discarded: bool = False

    @property
    def submitted(self) -> bool:
        return bool(self.outcomes) and not self.discarded

    @property
    def succeeded(self) -> list[VendorOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[VendorOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def all_succeeded(self) -> bool:
        return self.submitted and not self.failed

    def outcome_for(self, vendor_id) -> VendorOutcome | None:
        return next((o for o in self.outcomes if o.vendor_id == str(vendor_id)), None)


class CheckoutFlow:
    def __init__(
        self,
        gateway,
        resolver: DiscountResolver | None = None,
        policy: ShippingPolicy | None = None,
        board: OrderBoard | None = None,
    ):
        self.gateway = gateway
        self.resolver = resolver or DiscountResolver(gateway)
        self.policy = policy or ShippingPolicy()
        self.board = board or OrderBoard(gateway)
        self._generation = 0
        self._inflight: set[asyncio.Future] = set()

    @property
    def generation(self) -> int:
        return self._generation

    async def _submit(self, intent: OrderIntent) -> VendorOutcome:
        try:
            receipt = await self.gateway.create_order(intent)
        except MarketplaceError as exc:
            logger.warning("Order submission failed", vendor_id=intent.vendor_id, error=str(exc))
            return VendorOutcome(intent=intent, error=SubmissionError(intent.vendor_id, str(exc)))
        except Exception as exc:
            logger.exception("Order submission crashed", vendor_id=intent.vendor_id)
            return VendorOutcome(intent=intent, error=SubmissionError(intent.vendor_id, repr(exc)))
        logger.info(
            "Order submitted",
            vendor_id=intent.vendor_id,
            order_id=receipt.order_id,
            order_number=receipt.order_number,
        )
        return VendorOutcome(intent=intent, receipt=receipt)

    async def _submit_all(self, intents) -> list[VendorOutcome]:
        tasks = [asyncio.ensure_future(self._submit(intent)) for intent in intents]
        self._inflight.update(tasks)
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._inflight.difference_update(tasks)

        outcomes = []
        for intent, result in zip(intents, results):
            if isinstance(result, asyncio.CancelledError):
                outcomes.append(VendorOutcome(intent=intent, error=SubmissionError(intent.vendor_id, "cancelled")))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(result)
        return outcomes

    def _record(self, cart, outcomes) -> None:
        ordered = []
        for outcome in outcomes:
            if outcome.ok:
                self.board.record(Order.from_intent(outcome.intent, outcome.receipt))
                ordered.extend(outcome.intent.product_ids)
        if cart is not None and ordered:
            cart.remove_ordered(ordered)

    async def confirm(
        self,
        cart,
        selection: DiscountSelection | None = None,
        address=None,
        payment_method=None,
        note=None,
        checkout_id: str | None = None,
    ) -> SubmissionReport:
        """Confirm the cart's selected lines. See module docstring for the sequence.

        Every log line of the confirmation, including those of the per-vendor
        submissions, carries ``checkout_id``.
        """
        checkout_id = checkout_id or uuid4().hex
        add_context(checkout_id=checkout_id)
        try:
            return await self._confirm(cart, selection, address, payment_method, note, checkout_id)
        finally:
            remove_context("checkout_id")

    async def _confirm(self, cart, selection, address, payment_method, note, checkout_id) -> SubmissionReport:
        generation = self._generation
        groups = cart.vendor_groups()
        pricings = price_cart(groups, self.policy)

        applied = await self.resolver.apply_selection(selection or DiscountSelection(), pricings)
        if generation != self._generation:
            logger.info("Discarding abandoned checkout", stage="discounts")
            return SubmissionReport(discarded=True)
        if not applied.ok:
            return SubmissionReport(discount_failures=applied.failures, surviving_selection=applied.selection())

        intents = build_order_intents(
            groups,
            applied,
            address,
            payment_method,
            note=note,
            policy=self.policy,
            checkout_id=checkout_id,
        )
        if not intents:
            return SubmissionReport()

        outcomes = await self._submit_all(intents)
        if generation != self._generation:
            logger.info("Discarding abandoned checkout", stage="submission", vendor_count=len(intents))
            return SubmissionReport(outcomes=tuple(outcomes), discarded=True)

        self._record(cart, outcomes)
        logger.info(
            "Checkout confirmed",
            vendor_count=len(outcomes),
            succeeded=sum(1 for o in outcomes if o.ok),
        )
        return SubmissionReport(outcomes=tuple(outcomes))

    async def resubmit(self, intent: OrderIntent, cart=None) -> VendorOutcome:
        """Retry one vendor's order on the buyer's request, reusing its idempotency key."""
        generation = self._generation
        outcome = (await self._submit_all([intent]))[0]
        if generation == self._generation:
            self._record(cart, [outcome])
        return outcome

    def abandon(self) -> None:
        """Leave the checkout. Work still in flight is cancelled and its results ignored."""
        self._generation += 1
        for task in list(self._inflight):
            task.cancel()
        logger.info("Checkout abandoned", cancelled=len(self._inflight), generation=self._generation)
