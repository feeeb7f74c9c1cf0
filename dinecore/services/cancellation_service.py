"""Cancellation and refunds for confirmed orders and bookings.

The refund is issued before the status flip, inside the same transaction.
If the provider cannot be reached the transaction is rolled back and the
record stays ``confirmed`` so the cancellation can simply be retried; the
refund carries a per-record idempotency key, so a retry never refunds twice.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from dinecore.core.clock import to_utc, utcnow
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import Forbidden, NotFound, PolicyViolation, UpstreamUnavailable
from dinecore.core.result import Outcome, capture
from dinecore.core.security import ROLE_ADMIN, Principal
from dinecore.models.booking import Booking
from dinecore.models.lifecycle import (
    CANCELLED_BY_OWNER,
    CANCELLED_BY_USER,
    CONFIRMED,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    REJECTED,
)
from dinecore.models.order import Order
from dinecore.models.restaurant import Restaurant
from dinecore.services.audit_service import log_audit
from dinecore.services.notification_service import (
    BOOKING_CANCELLED,
    ORDER_CANCELLED,
    ORDER_REJECTED,
    Notifier,
)
from dinecore.services.payment_gateway import PaymentGateway

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StatusChange:
    kind: str  # order | booking
    record_id: str
    status: str
    payment_status: str
    refund_status: Optional[str] = None


def load_for_update(db: Session, model, record_id: str):
    record = db.execute(
        select(model).where(model.id == record_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if record is None:
        raise NotFound(f"{model.__tablename__[:-1]} not found", id=record_id)
    return record


def is_restaurant_owner(db: Session, restaurant_id: str, actor: Principal) -> bool:
    if actor.role == ROLE_ADMIN:
        return True
    owner_id = db.execute(select(Restaurant.owner_id).where(Restaurant.id == restaurant_id)).scalar_one_or_none()
    return owner_id is not None and owner_id == actor.id


class CancellationCoordinator:
    def __init__(self, config: CheckoutConfig, gateway: PaymentGateway, notifier: Notifier,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock

    def cancel_booking(self, db: Session, booking_id: str, actor: Principal) -> Outcome[StatusChange]:
        return capture(db, "cancel_booking", lambda: self._cancel_booking(db, booking_id, actor))

    def cancel_order(self, db: Session, order_id: str, actor: Principal) -> Outcome[StatusChange]:
        return capture(db, "cancel_order", lambda: self._cancel_order(db, order_id, actor))

    def _cancel_booking(self, db: Session, booking_id: str, actor: Principal) -> StatusChange:
        booking = load_for_update(db, Booking, booking_id)
        by_owner = is_restaurant_owner(db, booking.restaurant_id, actor)
        if not by_owner and actor.id != booking.user_id:
            raise Forbidden("only the customer or the restaurant can cancel this booking")
        if booking.status != CONFIRMED:
            raise PolicyViolation(f"a {booking.status} booking cannot be cancelled", status=booking.status)

        if not by_owner:
            remaining = to_utc(booking.booking_time) - self.clock()
            if remaining < self.config.cancellation_lead:
                lead_hours = self.config.cancellation_lead.total_seconds() / 3600
                raise PolicyViolation(
                    f"bookings can only be cancelled at least {lead_hours:g} hours in advance",
                    required_hours=lead_hours,
                    hours_remaining=round(remaining.total_seconds() / 3600, 2),
                )
        new_status = CANCELLED_BY_OWNER if by_owner else CANCELLED_BY_USER
        change = self.refund_and_close(db, "booking", booking, new_status, actor)
        self.notifier.notify(BOOKING_CANCELLED, {"booking_id": booking.id, "booking_number": booking.booking_number,
                                                 "user_id": booking.user_id, "status": new_status})
        return change

    def _cancel_order(self, db: Session, order_id: str, actor: Principal) -> StatusChange:
        order = load_for_update(db, Order, order_id)
        by_owner = is_restaurant_owner(db, order.restaurant_id, actor)
        if not by_owner and actor.id != order.user_id:
            raise Forbidden("only the customer or the restaurant can cancel this order")
        if order.status != CONFIRMED:
            raise PolicyViolation(f"a {order.status} order can no longer be cancelled", status=order.status)

        new_status = CANCELLED_BY_OWNER if by_owner else CANCELLED_BY_USER
        change = self.refund_and_close(db, "order", order, new_status, actor)
        self.notifier.notify(ORDER_CANCELLED, {"order_id": order.id, "order_number": order.order_number,
                                               "user_id": order.user_id, "status": new_status})
        return change

    def reject_order(self, db: Session, order: Order, actor: Principal) -> StatusChange:
        """Owner declines a confirmed order: refund, then ``rejected``. Caller holds the row lock."""
        change = self.refund_and_close(db, "order", order, REJECTED, actor)
        self.notifier.notify(ORDER_REJECTED, {"order_id": order.id, "order_number": order.order_number,
                                              "user_id": order.user_id})
        return change

    def refund_and_close(self, db: Session, kind: str, record, new_status: str, actor: Principal) -> StatusChange:
        refund = None
        if record.payment_status == PAYMENT_PAID:
            if not record.payment_reference:
                logger.error("checkout.refund_without_reference", kind=kind, record_id=record.id)
                raise UpstreamUnavailable("payment reference missing, refund cannot be issued",
                                          kind=kind, record_id=record.id, operation="refund")
            refund = self.gateway.refund(record.payment_reference, idempotency_key=f"refund-{record.id}")

        record.status = new_status
        if refund is not None:
            record.payment_status = PAYMENT_REFUNDED
            record.refund_status = refund.status
        record.closed_at = self.clock()
        log_audit(db, actor_user_id=actor.id, action=f"{kind}.{new_status}", entity_type=kind, entity_id=record.id,
                  details={"refund_status": record.refund_status, "payment_reference": record.payment_reference})
        db.commit()
        logger.info("checkout.cancelled", kind=kind, record_id=record.id, status=new_status,
                    refund_status=record.refund_status)
        return StatusChange(kind, record.id, record.status, record.payment_status, record.refund_status)
