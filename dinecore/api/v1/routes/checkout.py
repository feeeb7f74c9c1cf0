from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dinecore.api.deps import get_checkout_initiator, get_current_principal, unwrap_or_http
from dinecore.core.security import Principal
from dinecore.db.session import get_db
from dinecore.schemas.checkout import BookingCheckoutIn, CartCheckoutIn, CheckoutOut
from dinecore.services.checkout_service import (
    BookingCheckoutRequest,
    CartCheckoutRequest,
    CheckoutInitiator,
    CheckoutStarted,
)
from dinecore.services.quote_service import DeliveryAddress

router = APIRouter(tags=["checkout"])


def _out(started: CheckoutStarted) -> CheckoutOut:
    return CheckoutOut(
        kind=started.kind,
        recordId=started.record_id,
        number=started.number,
        sessionId=started.session_id,
        redirectUrl=started.redirect_url,
        totalAmount=str(started.total_amount),
        amountMinor=started.amount_minor,
        currency=started.currency,
        lockExpiresAt=started.lock_expires_at.isoformat() if started.lock_expires_at else None,
    )


@router.post("/checkout/cart", response_model=CheckoutOut)
def checkout_cart(body: CartCheckoutIn, db: Session = Depends(get_db),
                  me: Principal = Depends(get_current_principal),
                  initiator: CheckoutInitiator = Depends(get_checkout_initiator)):
    address = DeliveryAddress(**body.deliveryAddress.model_dump()) if body.deliveryAddress else None
    outcome = initiator.initiate_cart_checkout(db, me, CartCheckoutRequest(
        cart_type=body.cartType,
        order_type=body.orderType,
        delivery_address=address,
        promo_code=body.promoCode,
    ))
    return _out(unwrap_or_http(outcome))


@router.post("/checkout/booking", response_model=CheckoutOut)
def checkout_booking(body: BookingCheckoutIn, db: Session = Depends(get_db),
                     me: Principal = Depends(get_current_principal),
                     initiator: CheckoutInitiator = Depends(get_checkout_initiator)):
    outcome = initiator.initiate_booking_checkout(db, me, BookingCheckoutRequest(
        restaurant_id=body.restaurantId,
        table_id=body.tableId,
        date=body.date,
        time=body.time,
        guests=body.guests,
    ))
    return _out(unwrap_or_http(outcome))
