from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from dinecore.core.clock import to_utc
from dinecore.core.errors import ValidationError
from dinecore.models.offer import Offer
from dinecore.services.pricing_service import HUNDRED, OFFER_TYPES, PERCENTAGE, FLAT, OfferTerms, from_minor


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def offer_terms(offer: Offer) -> OfferTerms:
    if offer.discount_type == PERCENTAGE:
        value = Decimal(int(offer.discount_value)) / HUNDRED  # basis points -> percent
    elif offer.discount_type == FLAT:
        value = from_minor(offer.discount_value)
    else:
        value = Decimal("0")
    return OfferTerms(
        promo_code=offer.promo_code,
        discount_type=offer.discount_type,
        value=value,
        max_discount=from_minor(offer.max_discount_minor) if offer.max_discount_minor is not None else None,
        min_order_value=from_minor(offer.min_order_value_minor or 0),
    )


def resolve_offer(db: Session, code: str, restaurant_id: str, as_of: datetime) -> OfferTerms:
    """Look up an active promo code for this restaurant, valid at ``as_of``."""
    promo_code = normalize_code(code)
    if not promo_code:
        raise ValidationError("promo code required", field="promo_code")
    offer = db.execute(select(Offer).where(Offer.promo_code == promo_code)).scalar_one_or_none()
    if not offer or not offer.is_active:
        raise ValidationError("invalid or inactive promo code", promo_code=promo_code)
    if offer.valid_until is not None and to_utc(offer.valid_until) < to_utc(as_of):
        raise ValidationError("promo code has expired", promo_code=promo_code)
    if offer.restaurant_id != restaurant_id:
        raise ValidationError("promo code is not valid for this restaurant", promo_code=promo_code)
    if offer.discount_type not in OFFER_TYPES:
        raise ValidationError("promo code has an unsupported discount type", promo_code=promo_code)
    return offer_terms(offer)
