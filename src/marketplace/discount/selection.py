"""DiscountSelection: the buyer's choice: one shipping offer and one product offer at most."""

from dataclasses import dataclass

from protean.exceptions import ValidationError

from marketplace.discount.offer import PRODUCT, SHIPPING, DiscountOffer


@dataclass(frozen=True)
class DiscountSelection:
    shipping: DiscountOffer | None = None
    product: DiscountOffer | None = None
    shipping_vendor_id: str | None = None  # Vendor whose shipping fee is offset; first eligible if unset

    @classmethod
    def of(cls, *offers: DiscountOffer, shipping_vendor_id: str | None = None) -> "DiscountSelection":
        """Build a selection, rejecting two offers of the same category."""
        slots: dict[str, DiscountOffer] = {}
        for offer in offers:
            if offer is None:
                continue
            if offer.kind in slots:
                raise ValidationError({offer.kind: ["Only one discount per category can be applied"]})
            slots[offer.kind] = offer
        return cls(
            shipping=slots.get(SHIPPING),
            product=slots.get(PRODUCT),
            shipping_vendor_id=shipping_vendor_id,
        )

    @property
    def is_empty(self) -> bool:
        return self.shipping is None and self.product is None

    def offers(self) -> list[DiscountOffer]:
        return [offer for offer in (self.shipping, self.product) if offer is not None]

    def without(self, kind: str) -> "DiscountSelection":
        """The same selection with one category cleared."""
        if kind == SHIPPING:
            return DiscountSelection(product=self.product)
        return DiscountSelection(shipping=self.shipping, shipping_vendor_id=self.shipping_vendor_id)
