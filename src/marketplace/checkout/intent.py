"""OrderIntent: one vendor's share of a checkout, ready to submit."""

from dataclasses import dataclass

from marketplace.order.order import PaymentMethod, ShippingAddress


@dataclass(frozen=True)
class IntentLine:
    product_id: str
    title: str | None
    unit_price: float
    quantity: int

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class DiscountBreakdown:
    shipping_amount: int = 0
    shipping_code: str | None = None
    product_amount: int = 0
    product_code: str | None = None

    @property
    def total(self) -> int:
        return self.shipping_amount + self.product_amount


@dataclass(frozen=True)
class OrderIntent:
    vendor_id: str
    vendor_name: str | None
    lines: tuple
    subtotal: float
    shipping_fee: float
    discounts: DiscountBreakdown
    address: ShippingAddress
    payment_method: PaymentMethod
    note: str | None
    idempotency_key: str

    @property
    def total(self) -> float:
        return self.subtotal + self.shipping_fee - self.discounts.total

    @property
    def product_ids(self) -> list[str]:
        return [line.product_id for line in self.lines]
