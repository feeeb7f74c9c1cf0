from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dinecore.api.deps import get_checkout_config, get_clock, get_current_principal, http_error
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import CheckoutError
from dinecore.core.security import Principal
from dinecore.db.session import get_db
from dinecore.models.cart_line import CartLine
from dinecore.schemas.cart import CartItemIn, CartLineOut, CartQuantityIn, QuoteIn
from dinecore.services.cart_service import CartService, refs_from_cart
from dinecore.services.quote_service import DeliveryAddress, quote_cart

router = APIRouter(tags=["cart"])


def _line_out(line: CartLine) -> CartLineOut:
    return CartLineOut(
        id=line.id,
        itemId=line.menu_item_id,
        cartType=line.cart_type,
        restaurantId=line.restaurant_id,
        quantity=line.quantity,
        variant=line.variant_json,
        addons=line.addons_json or [],
    )


@router.get("/cart", response_model=list[CartLineOut])
def get_cart(cartType: str = "food", db: Session = Depends(get_db),
             me: Principal = Depends(get_current_principal),
             config: CheckoutConfig = Depends(get_checkout_config)):
    return [_line_out(l) for l in CartService(config).get_cart(db, me.id, cartType)]


@router.post("/cart/items", response_model=CartLineOut)
def add_item(body: CartItemIn, db: Session = Depends(get_db),
             me: Principal = Depends(get_current_principal),
             config: CheckoutConfig = Depends(get_checkout_config)):
    try:
        line = CartService(config).add_item(
            db, me.id, body.itemId, body.quantity,
            variant=body.variant.model_dump() if body.variant else None,
            addons=[a.model_dump() for a in body.addons],
        )
    except CheckoutError as e:
        raise http_error(e)
    return _line_out(line)


@router.patch("/cart/items/{line_id}", response_model=CartLineOut)
def update_quantity(line_id: str, body: CartQuantityIn, db: Session = Depends(get_db),
                    me: Principal = Depends(get_current_principal),
                    config: CheckoutConfig = Depends(get_checkout_config)):
    try:
        line = CartService(config).update_quantity(db, me.id, line_id, body.quantity)
    except CheckoutError as e:
        raise http_error(e)
    return _line_out(line)


@router.delete("/cart/items/{line_id}")
def remove_item(line_id: str, db: Session = Depends(get_db),
                me: Principal = Depends(get_current_principal),
                config: CheckoutConfig = Depends(get_checkout_config)):
    CartService(config).remove_item(db, me.id, line_id)
    return {"ok": True}


@router.delete("/cart")
def clear_cart(cartType: str | None = None, db: Session = Depends(get_db),
               me: Principal = Depends(get_current_principal),
               config: CheckoutConfig = Depends(get_checkout_config)):
    removed = CartService(config).clear_cart(db, me.id, cartType)
    db.commit()
    return {"ok": True, "removed": removed}


@router.post("/cart/quote")
def quote_current_cart(body: QuoteIn, db: Session = Depends(get_db),
                       me: Principal = Depends(get_current_principal),
                       config: CheckoutConfig = Depends(get_checkout_config),
                       clock=Depends(get_clock)):
    """Price the current cart without starting a payment."""
    address = DeliveryAddress(**body.deliveryAddress.model_dump()) if body.deliveryAddress else None
    try:
        lines = CartService(config).get_cart(db, me.id, body.cartType)
        quote = quote_cart(db, config, refs_from_cart(lines), order_type=body.orderType,
                           address=address, promo_code=body.promoCode, as_of=clock())
    except CheckoutError as e:
        raise http_error(e)
    return {
        "restaurantId": quote.restaurant_id,
        "orderType": quote.order_type,
        "items": [line.to_snapshot() for line in quote.lines],
        "pricing": quote.pricing.to_dict(),
        "amountMinor": quote.amount_minor,
        "currency": config.currency,
    }
