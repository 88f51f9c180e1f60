"""DiscountResolver: eligible offers, recommendations and confirmation-time re-validation.

Browsing reads the marketplace's offer list. Confirming re-reads it, because an
offer can expire or run out of uses between browse and confirm. A failing
selection is dropped on its own and reported by category; the other category
survives so the buyer is only re-prompted for what broke.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable, Iterable, Sequence

import structlog
from protean.exceptions import ValidationError

from marketplace.discount.offer import PRODUCT, SHIPPING, DiscountOffer
from marketplace.discount.selection import DiscountSelection
from marketplace.errors import DiscountUnavailableError, GatewayError, StaleOfferError
from marketplace.pricing.shipping import VendorPricing

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EligibleDiscounts:
    shipping: tuple = ()
    product: tuple = ()

    @property
    def is_empty(self) -> bool:
        return not self.shipping and not self.product

    def all(self) -> list[DiscountOffer]:
        return [*self.shipping, *self.product]

    def find(self, discount_id) -> DiscountOffer | None:
        return next((o for o in self.all() if o.discount_id == str(discount_id)), None)


@dataclass(frozen=True)
class AppliedDiscount:
    offer: DiscountOffer
    amount: int
    vendor_id: str | None = None  # None: spread across every vendor

    @property
    def code(self) -> str:
        return self.offer.code


@dataclass(frozen=True)
class AppliedDiscounts:
    shipping: AppliedDiscount | None = None
    product: AppliedDiscount | None = None
    failures: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total(self) -> int:
        return sum(d.amount for d in (self.shipping, self.product) if d is not None)

    def selection(self) -> DiscountSelection:
        """The surviving selection, for re-prompting only the failed category."""
        return DiscountSelection(
            shipping=self.shipping.offer if self.shipping else None,
            product=self.product.offer if self.product else None,
            shipping_vendor_id=self.shipping.vendor_id if self.shipping else None,
        )


def _cart_subtotal(pricings: Sequence[VendorPricing]):
    return sum(p.subtotal for p in pricings)


def _threshold_error(kind: str, offer: DiscountOffer) -> ValidationError:
    return ValidationError({kind: [f"Discount {offer.code} requires a minimum purchase of {offer.min_purchase:g}"]})


class DiscountResolver:
    def __init__(self, gateway, clock: Callable[[], datetime] | None = None):
        self.gateway = gateway
        self._clock = clock or (lambda: datetime.now(UTC))
        self._eligible = EligibleDiscounts()

    @property
    def eligible(self) -> EligibleDiscounts:
        """The last listing, minus offers deactivated since."""
        return self._eligible

    # -------------------------------------------------------------------
    # Browsing
    # -------------------------------------------------------------------
    async def _fetch(self, subtotal, vendor_ids) -> list[DiscountOffer]:
        try:
            return list(await self.gateway.eligible_discounts(subtotal, list(vendor_ids)))
        except GatewayError as exc:
            logger.warning("Discount lookup failed", subtotal=subtotal, error=str(exc))
            raise DiscountUnavailableError(str(exc)) from exc

    def _filter(self, offers: Iterable[DiscountOffer], subtotal, vendor_ids) -> EligibleDiscounts:
        now = self._clock()
        vendors = {str(v) for v in vendor_ids}
        shipping, product = [], []
        for offer in offers:
            if not offer.is_available(now) or not offer.meets_minimum(subtotal):
                continue
            if offer.is_vendor_scoped and offer.vendor_id not in vendors:
                continue
            (shipping if offer.kind == SHIPPING else product).append(offer)
        return EligibleDiscounts(shipping=tuple(shipping), product=tuple(product))

    async def list_eligible(self, subtotal, vendor_ids) -> EligibleDiscounts:
        """Offers usable now for this subtotal and these vendors. Empty is a valid answer."""
        offers = await self._fetch(subtotal, vendor_ids)
        self._eligible = self._filter(offers, subtotal, vendor_ids)
        logger.info(
            "Eligible discounts listed",
            subtotal=subtotal,
            shipping_count=len(self._eligible.shipping),
            product_count=len(self._eligible.product),
        )
        return self._eligible

    def recommend(self, eligible: EligibleDiscounts, pricings: Sequence[VendorPricing]) -> DiscountSelection:
        """Best shipping offer by flat amount and best product offer by computed amount."""
        best_shipping = None
        for offer in eligible.shipping:
            if best_shipping is None or offer.flat_amount > best_shipping.flat_amount:
                best_shipping = offer

        best_product, best_amount = None, 0
        for offer in eligible.product:
            base = self._product_base(offer, pricings)
            if base is None:
                continue
            amount = offer.amount_for(base)
            if amount > best_amount:
                best_product, best_amount = offer, amount

        return DiscountSelection(shipping=best_shipping, product=best_product)

    def invalidate(self, discount_id) -> bool:
        """Drop an offer the marketplace just deactivated from the cached listing."""
        discount_id = str(discount_id)
        if self._eligible.find(discount_id) is None:
            return False
        self._eligible = EligibleDiscounts(
            shipping=tuple(o for o in self._eligible.shipping if o.discount_id != discount_id),
            product=tuple(o for o in self._eligible.product if o.discount_id != discount_id),
        )
        logger.info("Discount invalidated", discount_id=discount_id)
        return True

    # -------------------------------------------------------------------
    # Confirmation
    # -------------------------------------------------------------------
    @staticmethod
    def _product_base(offer: DiscountOffer, pricings: Sequence[VendorPricing]):
        if offer.is_vendor_scoped:
            target = next((p for p in pricings if p.vendor_id == offer.vendor_id), None)
            return target.subtotal if target else None
        return _cart_subtotal(pricings)

    @staticmethod
    def _shipping_target(offer: DiscountOffer, pricings: Sequence[VendorPricing], vendor_id) -> VendorPricing:
        if vendor_id is not None:
            target = next((p for p in pricings if p.vendor_id == str(vendor_id)), None)
            if target is None:
                raise ValidationError({SHIPPING: ["Vendor is not part of this checkout"]})
            if target.shipping_fee <= 0:
                raise ValidationError({SHIPPING: ["No shipping fee to offset for this vendor"]})
            if not offer.meets_minimum(target.subtotal):
                raise _threshold_error(SHIPPING, offer)
            return target

        charged = [p for p in pricings if p.shipping_fee > 0]
        if not charged:
            raise ValidationError({SHIPPING: ["No shipping fee to offset"]})
        target = next((p for p in charged if offer.meets_minimum(p.subtotal)), None)
        if target is None:
            raise _threshold_error(SHIPPING, offer)
        return target

    def _revalidate(self, offer: DiscountOffer, fresh: EligibleDiscounts, now) -> DiscountOffer:
        current = fresh.find(offer.discount_id)
        if current is None:
            raise StaleOfferError(offer.kind, offer.code, "no longer offered")
        reason = current.unavailable_reason(now)
        if reason is not None:
            raise StaleOfferError(offer.kind, offer.code, reason)
        return current

    def _apply_shipping(self, offer, fresh, pricings, vendor_id, now) -> AppliedDiscount:
        self._shipping_target(offer, pricings, vendor_id)
        current = self._revalidate(offer, fresh, now)
        target = self._shipping_target(current, pricings, vendor_id)
        return AppliedDiscount(
            offer=current,
            amount=current.amount_for(None, shipping_fee=target.shipping_fee),
            vendor_id=target.vendor_id,
        )

    def _apply_product(self, offer, fresh, pricings, now) -> AppliedDiscount:
        base = self._product_base(offer, pricings)
        if base is None:
            raise ValidationError({PRODUCT: ["Discount applies to a vendor that is not part of this checkout"]})
        if not offer.meets_minimum(base):
            raise _threshold_error(PRODUCT, offer)
        current = self._revalidate(offer, fresh, now)
        if not current.meets_minimum(base):
            raise _threshold_error(PRODUCT, current)
        return AppliedDiscount(
            offer=current,
            amount=current.amount_for(base),
            vendor_id=current.vendor_id if current.is_vendor_scoped else None,
        )

    async def apply_selection(self, selection, pricings: Sequence[VendorPricing]) -> AppliedDiscounts:
        """Re-validate a selection against fresh offers and compute the floored amounts.

        ``selection`` is a ``DiscountSelection`` or an iterable of offers; two
        offers in one category raise ``ValidationError``. A failing offer is
        dropped and recorded under its category in ``failures``.
        """
        if not isinstance(selection, DiscountSelection):
            selection = DiscountSelection.of(*selection)
        if selection.is_empty:
            return AppliedDiscounts()

        subtotal = _cart_subtotal(pricings)
        vendor_ids = [p.vendor_id for p in pricings]
        offers = await self._fetch(subtotal, vendor_ids)
        fresh = EligibleDiscounts(
            shipping=tuple(o for o in offers if o.kind == SHIPPING),
            product=tuple(o for o in offers if o.kind == PRODUCT),
        )
        now = self._clock()

        applied: dict = {}
        failures: dict = {}
        if selection.shipping is not None:
            try:
                applied[SHIPPING] = self._apply_shipping(
                    selection.shipping, fresh, pricings, selection.shipping_vendor_id, now
                )
            except ValidationError as exc:
                failures[SHIPPING] = exc
        if selection.product is not None:
            try:
                applied[PRODUCT] = self._apply_product(selection.product, fresh, pricings, now)
            except ValidationError as exc:
                failures[PRODUCT] = exc

        for kind, exc in failures.items():
            logger.warning("Discount selection rejected", category=kind, error=str(exc))

        return AppliedDiscounts(
            shipping=applied.get(SHIPPING),
            product=applied.get(PRODUCT),
            failures=failures,
        )
