"""Restaurant-side progression of confirmed orders and bookings."""

from datetime import datetime
from typing import Callable

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from dinecore.core.clock import utcnow
from dinecore.core.errors import Forbidden, PolicyViolation, ValidationError
from dinecore.core.result import Outcome, capture
from dinecore.core.security import Principal
from dinecore.models.booking import Booking
from dinecore.models.lifecycle import (
    ACCEPTED,
    BOOKING_TRANSITIONS,
    COMPLETED,
    CONFIRMED,
    DELIVERED,
    ORDER_TRANSITIONS,
    OUT_FOR_DELIVERY,
    can_transition,
)
from dinecore.models.order import Order
from dinecore.services.audit_service import log_audit
from dinecore.services.cancellation_service import (
    CancellationCoordinator,
    StatusChange,
    is_restaurant_owner,
    load_for_update,
)
from dinecore.services.notification_service import ORDER_STATUS_CHANGED, Notifier

logger = structlog.get_logger(__name__)

FULFILMENT_STATUSES = (OUT_FOR_DELIVERY, DELIVERED)


class FulfilmentService:
    def __init__(self, coordinator: CancellationCoordinator, notifier: Notifier,
                 clock: Callable[[], datetime] = utcnow):
        self.coordinator = coordinator
        self.notifier = notifier
        self.clock = clock

    def respond_to_order(self, db: Session, order_id: str, actor: Principal, accept: bool) -> Outcome[StatusChange]:
        return capture(db, "respond_to_order", lambda: self._respond(db, order_id, actor, accept))

    def advance_order(self, db: Session, order_id: str, actor: Principal, status: str) -> Outcome[StatusChange]:
        return capture(db, "advance_order", lambda: self._advance(db, order_id, actor, status))

    def complete_booking(self, db: Session, booking_id: str, actor: Principal) -> Outcome[StatusChange]:
        return capture(db, "complete_booking", lambda: self._complete_booking(db, booking_id, actor))

    def _respond(self, db: Session, order_id: str, actor: Principal, accept: bool) -> StatusChange:
        order = load_for_update(db, Order, order_id)
        if not is_restaurant_owner(db, order.restaurant_id, actor):
            raise Forbidden("only the restaurant can respond to this order")
        if order.status != CONFIRMED:
            raise PolicyViolation(f"a {order.status} order cannot be accepted or rejected", status=order.status)
        if not accept:
            return self.coordinator.reject_order(db, order, actor)
        return self._move(db, "order", Order, order, ACCEPTED, actor)

    def _advance(self, db: Session, order_id: str, actor: Principal, status: str) -> StatusChange:
        if status not in FULFILMENT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(FULFILMENT_STATUSES)}", field="status")
        order = load_for_update(db, Order, order_id)
        if not is_restaurant_owner(db, order.restaurant_id, actor):
            raise Forbidden("only the restaurant can update this order")
        if status == OUT_FOR_DELIVERY and order.order_type != "delivery":
            raise PolicyViolation(f"{order.order_type} orders are not delivered", order_type=order.order_type)
        if not can_transition(ORDER_TRANSITIONS, order.status, status):
            raise PolicyViolation(f"cannot move a {order.status} order to {status}", status=order.status)
        return self._move(db, "order", Order, order, status, actor)

    def _complete_booking(self, db: Session, booking_id: str, actor: Principal) -> StatusChange:
        booking = load_for_update(db, Booking, booking_id)
        if not is_restaurant_owner(db, booking.restaurant_id, actor):
            raise Forbidden("only the restaurant can complete this booking")
        if not can_transition(BOOKING_TRANSITIONS, booking.status, COMPLETED):
            raise PolicyViolation(f"a {booking.status} booking cannot be completed", status=booking.status)
        return self._move(db, "booking", Booking, booking, COMPLETED, actor)

    def _move(self, db: Session, kind: str, model, record, target: str, actor: Principal) -> StatusChange:
        current = record.status
        values = {"status": target}
        if target in (DELIVERED, COMPLETED):
            values["closed_at"] = self.clock()
        res = db.execute(
            update(model)
            .where(model.id == record.id, model.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if not res.rowcount:
            raise PolicyViolation(f"{kind} changed while updating, reload and retry", id=record.id)
        log_audit(db, actor_user_id=actor.id, action=f"{kind}.{target}", entity_type=kind, entity_id=record.id,
                  details={"from": current})
        db.commit()
        logger.info("checkout.status_changed", kind=kind, record_id=record.id, status=target, previous=current)
        self.notifier.notify(ORDER_STATUS_CHANGED if kind == "order" else f"booking.{target}",
                             {"id": record.id, "user_id": record.user_id, "status": target})
        return StatusChange(kind, record.id, target, record.payment_status, record.refund_status)
