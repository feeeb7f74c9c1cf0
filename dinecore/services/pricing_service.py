"""Pricing engine.

Pure functions over ``Decimal``. Every derived field is computed from
unrounded inputs and rounded half-up to the minor unit exactly once, so the
same lines, settings and offer always give the same breakdown. Confirmation
relies on that to re-derive the quoted price.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from dinecore.core.errors import OfferNotApplicable, ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

PERCENTAGE = "PERCENTAGE"
FLAT = "FLAT"
FREE_DELIVERY = "FREE_DELIVERY"
OFFER_TYPES = (PERCENTAGE, FLAT, FREE_DELIVERY)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def from_minor(amount_minor: int) -> Decimal:
    return (Decimal(int(amount_minor)) / HUNDRED).quantize(CENT)


def to_minor(amount: Decimal) -> int:
    return int(round_money(amount) * HUNDRED)


@dataclass(frozen=True)
class UnitBreakdown:
    base_price: Decimal
    variant_name: str = ""
    variant_price: Decimal = ZERO
    addons: tuple = ()  # ((name, price), ...)

    @property
    def unit_price(self) -> Decimal:
        return self.base_price + self.variant_price + sum((p for _, p in self.addons), ZERO)

    def to_dict(self) -> dict:
        return {
            "base_price": str(self.base_price),
            "variant_name": self.variant_name,
            "variant_price": str(self.variant_price),
            "addons": [{"name": n, "price": str(p)} for n, p in self.addons],
            "unit_price": str(self.unit_price),
        }


@dataclass(frozen=True)
class PricedLine:
    """A cart line resolved against the catalog at one point in time."""

    item_id: str
    name: str
    quantity: int
    unit: UnitBreakdown
    variant: Optional[dict] = None
    addons: tuple = ()

    @property
    def line_total(self) -> Decimal:
        return self.unit.unit_price * self.quantity

    def to_snapshot(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "quantity": self.quantity,
            "variant": self.variant,
            "addons": list(self.addons),
            "unit": self.unit.to_dict(),
            "line_total": str(round_money(self.line_total)),
        }


@dataclass(frozen=True)
class OfferTerms:
    promo_code: str
    discount_type: str
    value: Decimal = ZERO  # percent for PERCENTAGE (20 = 20%), amount for FLAT
    max_discount: Optional[Decimal] = None
    min_order_value: Decimal = ZERO


@dataclass(frozen=True)
class AppliedOffer:
    promo_code: str
    discount_type: str
    discount_amount: Decimal

    def to_dict(self) -> dict:
        return {"promo_code": self.promo_code, "discount_type": self.discount_type,
                "discount_amount": str(self.discount_amount)}


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    handling_charge: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    applied_offer: Optional[AppliedOffer] = None

    @property
    def total_minor(self) -> int:
        return to_minor(self.total_amount)

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "handling_charge": str(self.handling_charge),
            "delivery_fee": str(self.delivery_fee),
            "discount_amount": str(self.discount_amount),
            "total_amount": str(self.total_amount),
            "applied_offer": self.applied_offer.to_dict() if self.applied_offer else None,
        }


def _offer_discount(offer: OfferTerms, subtotal: Decimal) -> Decimal:
    if offer.discount_type == PERCENTAGE:
        discount = subtotal * offer.value / HUNDRED
        if offer.max_discount is not None:
            discount = min(discount, offer.max_discount)
        return discount
    if offer.discount_type == FLAT:
        return offer.value
    raise ValidationError(f"unsupported discount type {offer.discount_type}", discount_type=offer.discount_type)


def calculate_pricing(
    lines: Sequence[PricedLine],
    handling_rate: Decimal,
    delivery_fee: Decimal = ZERO,
    offer: Optional[OfferTerms] = None,
) -> PricingBreakdown:
    """Price a set of lines.

    ``handling_rate`` is a fraction (0.10 for 10%). ``delivery_fee`` is the
    already-computed fee for the drop-off, zero for pickup and dine-in.

    Raises ``OfferNotApplicable`` when an offer is given but the subtotal is
    below its minimum order value.
    """
    subtotal = sum((line.line_total for line in lines), ZERO)
    handling = subtotal * handling_rate
    charged_delivery = delivery_fee
    item_discount = ZERO
    credited = ZERO

    if offer is not None:
        if subtotal < offer.min_order_value:
            raise OfferNotApplicable(
                f"order must be at least {offer.min_order_value} to use {offer.promo_code}",
                promo_code=offer.promo_code,
                min_order_value=str(offer.min_order_value),
            )
        if offer.discount_type == FREE_DELIVERY:
            credited = delivery_fee
            charged_delivery = ZERO
        else:
            item_discount = max(ZERO, min(_offer_discount(offer, subtotal), subtotal + handling))
            credited = item_discount

    total = max(ZERO, subtotal + handling + charged_delivery - item_discount)
    discount_amount = round_money(credited)
    applied = None
    if offer is not None:
        applied = AppliedOffer(offer.promo_code, offer.discount_type, discount_amount)

    return PricingBreakdown(
        subtotal=round_money(subtotal),
        handling_charge=round_money(handling),
        delivery_fee=round_money(charged_delivery),
        discount_amount=discount_amount,
        total_amount=round_money(total),
        applied_offer=applied,
    )
