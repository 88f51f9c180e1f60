"""Pydantic request/response schemas for the marketplace HTTP API.

These are external contracts (anti-corruption layer), kept apart from the
Protean domain objects they convert to and from.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from marketplace.discount.offer import DiscountOffer
from marketplace.gateway.port import OrderReceipt, OrderSnapshot


# ---------------------------------------------------------------------------
# Discounts
# ---------------------------------------------------------------------------
class DiscountOfferSchema(BaseModel):
    id: str
    code: str
    name: str | None = None
    category: str  # shipping, percentage-product, special-product
    discount_amount: float | None = None
    discount_rate: float | None = None
    max_discount_amount: float | None = None
    min_purchase_amount: float = 0.0
    start_datetime: datetime | None = None
    end_datetime: datetime | None = None
    usage_limit: int | None = None
    usage_count: int = 0
    is_active: bool = True
    store_id: str | None = None

    def to_offer(self) -> DiscountOffer:
        return DiscountOffer(
            discount_id=self.id,
            code=self.code,
            name=self.name,
            category=self.category,
            flat_amount=self.discount_amount,
            rate=self.discount_rate,
            cap=self.max_discount_amount,
            min_purchase=self.min_purchase_amount,
            starts_at=self.start_datetime,
            ends_at=self.end_datetime,
            usage_limit=self.usage_limit,
            usage_count=self.usage_count,
            is_active=self.is_active,
            vendor_id=self.store_id,
        )


# ---------------------------------------------------------------------------
# Order requests
# ---------------------------------------------------------------------------
class OrderLineSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


class ShippingAddressSchema(BaseModel):
    recipient: str
    phone: str
    city: str
    district: str | None = None
    postal_code: str | None = None
    street: str


class DiscountBreakdownSchema(BaseModel):
    shipping_code: str | None = None
    shipping_amount: int = 0
    product_code: str | None = None
    product_amount: int = 0


class CreateOrderRequest(BaseModel):
    store_id: str
    items: list[OrderLineSchema]
    shipping_address: ShippingAddressSchema
    payment_method: str  # credit_card, cash_on_delivery
    note: str | None = None
    discounts: DiscountBreakdownSchema
    subtotal: float
    shipping_fee: float
    total_amount: float
    idempotency_key: str

    @classmethod
    def from_intent(cls, intent) -> "CreateOrderRequest":
        address = intent.address
        return cls(
            store_id=intent.vendor_id,
            items=[
                OrderLineSchema(product_id=line.product_id, quantity=line.quantity, unit_price=line.unit_price)
                for line in intent.lines
            ],
            shipping_address=ShippingAddressSchema(
                recipient=address.recipient,
                phone=address.phone,
                city=address.city,
                district=address.district,
                postal_code=address.postal_code,
                street=address.street,
            ),
            payment_method=intent.payment_method.value,
            note=intent.note,
            discounts=DiscountBreakdownSchema(
                shipping_code=intent.discounts.shipping_code,
                shipping_amount=intent.discounts.shipping_amount,
                product_code=intent.discounts.product_code,
                product_amount=intent.discounts.product_amount,
            ),
            subtotal=intent.subtotal,
            shipping_fee=intent.shipping_fee,
            total_amount=intent.total,
            idempotency_key=intent.idempotency_key,
        )


class UpdateOrderStatusRequest(BaseModel):
    status: str


class FlagOrderRequest(BaseModel):
    note: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Order responses
# ---------------------------------------------------------------------------
class OrderReceiptResponse(BaseModel):
    order_id: str
    order_number: str | None = None
    status: str = "pending_payment"

    def to_receipt(self) -> OrderReceipt:
        return OrderReceipt(order_id=self.order_id, order_number=self.order_number, status=self.status)


class OrderResponse(BaseModel):
    order_id: str
    status: str
    order_number: str | None = None
    is_flagged: bool | None = None
    flag_note: str | None = None

    def to_snapshot(self) -> OrderSnapshot:
        return OrderSnapshot(
            order_id=self.order_id,
            status=self.status,
            order_number=self.order_number,
            is_flagged=self.is_flagged,
            flag_note=self.flag_note,
        )
