"""Checkout session initiation.

Validates and prices the request, opens a hosted payment session for the
exact total and stores a ``pending`` order or booking that points at it.
Lock acquisition and the pending insert share one transaction: if the
payment provider or the commit fails, both roll back together.
"""

import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from dinecore.core.clock import utcnow
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import NotFound, SlotAlreadyBooked, ValidationError
from dinecore.core.result import Outcome, capture
from dinecore.core.security import Principal
from dinecore.models.booking import Booking
from dinecore.models.lifecycle import CONFIRMED, PAYMENT_PENDING, PENDING
from dinecore.models.order import Order
from dinecore.models.restaurant import Restaurant
from dinecore.models.table import Table
from dinecore.services.availability_service import AvailabilityService
from dinecore.services.cart_service import CartService, refs_from_cart
from dinecore.services.lock_service import ReservationLockManager
from dinecore.services.payment_gateway import PaymentGateway
from dinecore.services.pricing_service import from_minor
from dinecore.services.quote_service import DeliveryAddress, booking_fee_minor, price_cart

logger = structlog.get_logger(__name__)


def make_reference(prefix: str) -> str:
    return prefix + "-" + "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(10))


def new_idempotency_key() -> str:
    # Also sent as the provider's request idempotency key, so it maps to exactly one session.
    return uuid.uuid4().hex


@dataclass(frozen=True)
class CartCheckoutRequest:
    cart_type: str = "food"
    order_type: str = "delivery"
    delivery_address: Optional[DeliveryAddress] = None
    promo_code: Optional[str] = None


@dataclass(frozen=True)
class BookingCheckoutRequest:
    restaurant_id: str
    table_id: str
    date: date
    time: str  # HH:MM
    guests: int


@dataclass(frozen=True)
class CheckoutStarted:
    kind: str  # order | booking
    record_id: str
    number: str
    session_id: str
    redirect_url: str
    total_amount: Decimal
    amount_minor: int
    currency: str
    lock_expires_at: Optional[datetime] = None


class CheckoutInitiator:
    def __init__(self, config: CheckoutConfig, gateway: PaymentGateway,
                 lock_manager: ReservationLockManager | None = None,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config
        self.gateway = gateway
        self.lock_manager = lock_manager or ReservationLockManager(config.lock_ttl, clock, wait=config.lock_wait)
        self.availability = AvailabilityService(config, self.lock_manager, clock)
        self.clock = clock

    # cart orders

    def initiate_cart_checkout(self, db: Session, principal: Principal, req: CartCheckoutRequest) -> Outcome[CheckoutStarted]:
        return capture(db, "initiate_cart_checkout", lambda: self._initiate_cart(db, principal, req))

    def _initiate_cart(self, db: Session, principal: Principal, req: CartCheckoutRequest) -> CheckoutStarted:
        lines = CartService(self.config).get_cart(db, principal.id, req.cart_type)
        quote = price_cart(
            db,
            self.config,
            refs_from_cart(lines),
            order_type=req.order_type,
            address=req.delivery_address,
            promo_code=req.promo_code,
            as_of=self.clock(),
        )
        if quote.amount_minor <= 0:
            raise ValidationError("order total must be greater than zero")

        order_number = make_reference("ORD")
        idempotency_key = new_idempotency_key()
        session = self.gateway.create_session(
            amount_minor=quote.amount_minor,
            currency=self.config.currency,
            description=f"Order {order_number}",
            metadata={
                "kind": "order",
                "number": order_number,
                "user_id": principal.id,
                "restaurant_id": quote.restaurant_id,
                "cart_type": req.cart_type,
                "amount_minor": quote.amount_minor,
                "idempotency_key": idempotency_key,
            },
            idempotency_key=idempotency_key,
            customer_email=principal.email or None,
        )
        order = Order(
            id=str(uuid.uuid4()),
            order_number=order_number,
            user_id=principal.id,
            restaurant_id=quote.restaurant_id,
            cart_type=req.cart_type,
            order_type=quote.order_type,
            delivery_address=quote.delivery_address.to_dict() if quote.delivery_address else None,
            items=[line.to_snapshot() for line in quote.lines],
            pricing=quote.pricing.to_dict(),
            applied_offer=quote.pricing.applied_offer.to_dict() if quote.pricing.applied_offer else None,
            promo_code=quote.promo_code,
            total_amount_minor=quote.amount_minor,
            currency=self.config.currency,
            status=PENDING,
            payment_status=PAYMENT_PENDING,
            session_id=session.session_id,
            idempotency_key=idempotency_key,
        )
        db.add(order)
        db.commit()
        logger.info("checkout.initiated", kind="order", order_number=order_number,
                    session_id=session.session_id, amount_minor=quote.amount_minor)
        return CheckoutStarted(
            kind="order",
            record_id=order.id,
            number=order_number,
            session_id=session.session_id,
            redirect_url=session.redirect_url,
            total_amount=quote.pricing.total_amount,
            amount_minor=quote.amount_minor,
            currency=self.config.currency,
        )

    # table bookings

    def initiate_booking_checkout(self, db: Session, principal: Principal, req: BookingCheckoutRequest) -> Outcome[CheckoutStarted]:
        return capture(db, "initiate_booking_checkout", lambda: self._initiate_booking(db, principal, req))

    def _initiate_booking(self, db: Session, principal: Principal, req: BookingCheckoutRequest) -> CheckoutStarted:
        if req.guests < 1:
            raise ValidationError("guests must be at least 1", field="guests")
        restaurant = db.get(Restaurant, req.restaurant_id)
        if not restaurant or not restaurant.is_active:
            raise NotFound("restaurant not found", restaurant_id=req.restaurant_id)
        if not restaurant.accepts_bookings:
            raise ValidationError("this restaurant does not take table bookings")
        table = db.get(Table, req.table_id)
        if not table or table.restaurant_id != restaurant.id or not table.is_active:
            raise NotFound("table not found", table_id=req.table_id)
        if table.capacity < req.guests:
            raise ValidationError(f"table seats at most {table.capacity}", field="guests")

        slot = self.availability.resolve_slot(db, restaurant.id, req.date, req.time)
        taken = db.execute(
            select(Booking.id).where(
                Booking.table_id == table.id, Booking.booking_time == slot, Booking.status == CONFIRMED
            )
        ).first()
        if taken:
            raise SlotAlreadyBooked("this table is already booked at that time",
                                    table_id=table.id, time_slot=slot.isoformat())

        fee_minor = booking_fee_minor(db, self.config, restaurant.id)
        if fee_minor <= 0:
            raise ValidationError("booking fee is not configured for this restaurant")
        booking_number = make_reference("BKG")
        idempotency_key = new_idempotency_key()

        held = None
        if self.config.enable_booking_locks:
            held = self.lock_manager.acquire(db, table.id, slot, holder=idempotency_key)

        session = self.gateway.create_session(
            amount_minor=fee_minor,
            currency=self.config.currency,
            description=f"Table booking {booking_number}",
            metadata={
                "kind": "booking",
                "number": booking_number,
                "user_id": principal.id,
                "restaurant_id": restaurant.id,
                "table_id": table.id,
                "booking_time": slot.isoformat(),
                "guests": req.guests,
                "amount_minor": fee_minor,
                "idempotency_key": idempotency_key,
            },
            idempotency_key=idempotency_key,
            customer_email=principal.email or None,
        )
        booking = Booking(
            id=str(uuid.uuid4()),
            booking_number=booking_number,
            user_id=principal.id,
            restaurant_id=restaurant.id,
            table_id=table.id,
            booking_time=slot,
            guests=req.guests,
            fee_minor=fee_minor,
            currency=self.config.currency,
            status=PENDING,
            payment_status=PAYMENT_PENDING,
            session_id=session.session_id,
            idempotency_key=idempotency_key,
        )
        db.add(booking)
        db.commit()
        logger.info("checkout.initiated", kind="booking", booking_number=booking_number,
                    session_id=session.session_id, table_id=table.id, time_slot=slot.isoformat())
        return CheckoutStarted(
            kind="booking",
            record_id=booking.id,
            number=booking_number,
            session_id=session.session_id,
            redirect_url=session.redirect_url,
            total_amount=from_minor(fee_minor),
            amount_minor=fee_minor,
            currency=self.config.currency,
            lock_expires_at=held.expires_at if held else None,
        )
