"""Authoritative prices for carts and table bookings.

Initiation, quoting and payment confirmation all price through here, so the
amount sent to the payment provider and the amount re-derived on
confirmation come from the same code path.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from dinecore.core.clock import utcnow
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import NotFound, ValidationError
from dinecore.models.lifecycle import ORDER_TYPES
from dinecore.services.cart_service import LineRef, materialize
from dinecore.services.catalog_service import CatalogService, RestaurantSettings
from dinecore.services.delivery_fee_service import Coordinates, calculate_delivery_fee
from dinecore.services.pricing_service import ZERO, PricingBreakdown, calculate_pricing, to_minor
from dinecore.services.promo_service import resolve_offer


@dataclass(frozen=True)
class DeliveryAddress:
    latitude: float
    longitude: float
    line1: str = ""
    city: str = ""
    postcode: str = ""

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude,
                "line1": self.line1, "city": self.city, "postcode": self.postcode}

    @classmethod
    def from_dict(cls, raw: dict | None) -> Optional["DeliveryAddress"]:
        if not raw:
            return None
        return cls(float(raw["latitude"]), float(raw["longitude"]),
                   raw.get("line1", ""), raw.get("city", ""), raw.get("postcode", ""))


@dataclass(frozen=True)
class CartQuote:
    restaurant_id: str
    order_type: str
    lines: tuple
    pricing: PricingBreakdown
    delivery_address: Optional[DeliveryAddress] = None
    promo_code: Optional[str] = None

    @property
    def amount_minor(self) -> int:
        return self.pricing.total_minor


def restaurant_settings(catalog: CatalogService, restaurant_id: str) -> RestaurantSettings:
    rs = catalog.get_restaurant_settings(restaurant_id)
    if rs is None:
        raise NotFound("restaurant not found", restaurant_id=restaurant_id)
    return rs


def _delivery_fee(rs: RestaurantSettings, order_type: str, address: Optional[DeliveryAddress]) -> Decimal:
    if order_type != "delivery":
        return ZERO
    if address is None:
        raise ValidationError("delivery address required for delivery orders", field="delivery_address")
    if rs.location is None:
        raise ValidationError("restaurant does not deliver", restaurant_id=rs.restaurant_id)
    fee = calculate_delivery_fee(rs.location, Coordinates(address.latitude, address.longitude), rs.delivery)
    if fee is None:
        raise ValidationError("address is outside the delivery radius", restaurant_id=rs.restaurant_id)
    return fee


def price_cart(
    db: Session,
    config: CheckoutConfig,
    refs: Sequence[LineRef],
    order_type: str = "delivery",
    address: Optional[DeliveryAddress] = None,
    promo_code: Optional[str] = None,
    as_of: Optional[datetime] = None,
) -> CartQuote:
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"order_type must be one of {', '.join(ORDER_TYPES)}", field="order_type")
    catalog = CatalogService(db, config.booking_fee_minor)
    cart = materialize(catalog, refs)
    rs = restaurant_settings(catalog, cart.restaurant_id)
    fee = _delivery_fee(rs, order_type, address)

    offer = None
    if promo_code:
        if not config.enable_offers:
            raise ValidationError("offers are currently disabled", field="promo_code")
        offer = resolve_offer(db, promo_code, cart.restaurant_id, as_of or utcnow())

    pricing = calculate_pricing(cart.lines, rs.handling_rate, fee, offer)
    return CartQuote(
        restaurant_id=cart.restaurant_id,
        order_type=order_type,
        lines=cart.lines,
        pricing=pricing,
        delivery_address=address,
        promo_code=offer.promo_code if offer else None,
    )


def booking_fee_minor(db: Session, config: CheckoutConfig, restaurant_id: str) -> int:
    rs = restaurant_settings(CatalogService(db, config.booking_fee_minor), restaurant_id)
    return to_minor(rs.booking_fee)


def quote_cart(
    db: Session,
    config: CheckoutConfig,
    refs: Sequence[LineRef],
    order_type: str = "delivery",
    address: Optional[DeliveryAddress] = None,
    promo_code: Optional[str] = None,
    as_of: Optional[datetime] = None,
) -> CartQuote:
    """Price a cart for display. A promo code that takes nothing off is refused."""
    quote = price_cart(db, config, refs, order_type, address, promo_code, as_of)
    if promo_code and quote.pricing.discount_amount <= ZERO:
        raise ValidationError("promo code gives no discount on this order", field="promo_code",
                              promo_code=quote.promo_code)
    return quote
