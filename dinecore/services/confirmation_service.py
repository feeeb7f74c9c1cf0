"""Payment confirmation.

Called by the webhook receiver once the provider reports a completed
checkout. Redelivery is expected: a session that was already confirmed is
answered from the stored record without touching anything.

The commit path re-prices from current catalog state, compares against
the captured amount, and flips ``pending -> confirmed`` with a conditional
update. For bookings the partial unique index on confirmed slots is the
final arbiter: whoever loses it is refunded and closed as
``cancelled_by_owner``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dinecore.core.clock import utcnow
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import (
    CheckoutError,
    ErrorKind,
    PaymentNotCompleted,
    PriceMismatch,
    SlotAlreadyBooked,
    UnknownSession,
    UpstreamUnavailable,
)
from dinecore.core.result import Outcome, capture
from dinecore.models.booking import Booking
from dinecore.models.lifecycle import (
    CANCELLED_BY_OWNER,
    CONFIRMED,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    PENDING,
)
from dinecore.models.order import Order
from dinecore.services.audit_service import log_audit
from dinecore.services.cart_service import CartService, refs_from_snapshot
from dinecore.services.lock_service import ReservationLockManager
from dinecore.services.notification_service import BOOKING_CONFIRMED, BOOKING_REJECTED, ORDER_CONFIRMED, Notifier
from dinecore.services.payment_gateway import PaymentGateway, SessionStatus
from dinecore.services.quote_service import DeliveryAddress, booking_fee_minor, price_cart

logger = structlog.get_logger(__name__)

WEBHOOK_ACTOR = "payment-webhook"


@dataclass(frozen=True)
class Confirmation:
    kind: str  # order | booking
    record_id: str
    number: str
    status: str
    replayed: bool = False


def _number(kind: str, record) -> str:
    return record.order_number if kind == "order" else record.booking_number


class PaymentConfirmationHandler:
    def __init__(self, config: CheckoutConfig, gateway: PaymentGateway, notifier: Notifier,
                 lock_manager: ReservationLockManager | None = None,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config
        self.gateway = gateway
        self.notifier = notifier
        self.lock_manager = lock_manager or ReservationLockManager(config.lock_ttl, clock, wait=config.lock_wait)
        self.clock = clock

    def confirm_payment(self, db: Session, session_id: str) -> Outcome[Confirmation]:
        outcome = capture(db, "confirm_payment", lambda: self._confirm(db, session_id))
        if outcome.kind is ErrorKind.PRICE_MISMATCH:
            self._escalate_mismatch(db, session_id, outcome.error)
        return outcome

    def _find(self, db: Session, session_id: str, for_update: bool = False):
        for kind, model in (("order", Order), ("booking", Booking)):
            stmt = select(model).where(model.session_id == session_id)
            if for_update:
                stmt = stmt.with_for_update()
            record = db.execute(stmt.execution_options(populate_existing=True)).scalar_one_or_none()
            if record is not None:
                return kind, record
        return None, None

    def _replay(self, kind: str, record) -> Confirmation:
        if record.confirmed_at is not None:
            logger.info("payment.replayed", kind=kind, record_id=record.id, status=record.status)
            return Confirmation(kind, record.id, _number(kind, record), record.status, replayed=True)
        if kind == "booking" and record.status == CANCELLED_BY_OWNER:
            raise SlotAlreadyBooked("this slot was taken by another booking; the payment was refunded",
                                    booking_id=record.id)
        raise UnknownSession("no pending checkout for this session", record_id=record.id, status=record.status)

    def _confirm(self, db: Session, session_id: str) -> Confirmation:
        kind, record = self._find(db, session_id)
        if record is None:
            raise UnknownSession("no checkout found for this session", session_id=session_id)
        if record.status != PENDING:
            return self._replay(kind, record)
        # no transaction is held open across the provider call
        db.rollback()

        status = self.gateway.retrieve_session(session_id)
        if not status.paid:
            raise PaymentNotCompleted("payment has not completed", payment_status=status.payment_status)

        kind, record = self._find(db, session_id, for_update=True)
        if record.status != PENDING:
            return self._replay(kind, record)

        if kind == "order":
            return self._commit_order(db, record, status)
        return self._commit_booking(db, record, status)

    def _check_amount(self, kind: str, record, expected_minor: int, status: SessionStatus) -> None:
        captured = status.amount_captured_minor
        if captured is None or abs(captured - expected_minor) > self.config.price_tolerance_minor:
            raise PriceMismatch(
                "captured amount does not match the current price",
                kind=kind,
                record_id=record.id,
                captured_minor=captured,
                expected_minor=expected_minor,
                quoted_minor=record.total_amount_minor if kind == "order" else record.fee_minor,
            )

    def _commit_order(self, db: Session, order: Order, status: SessionStatus) -> Confirmation:
        try:
            quote = price_cart(
                db,
                self.config,
                refs_from_snapshot(order.items),
                order_type=order.order_type,
                address=DeliveryAddress.from_dict(order.delivery_address),
                promo_code=order.promo_code,
                as_of=order.created_at,
            )
        except CheckoutError as e:
            raise PriceMismatch("order can no longer be priced as quoted", kind="order", record_id=order.id,
                                reason=e.message, cause=e.kind.value) from e
        self._check_amount("order", order, quote.amount_minor, status)

        now = self.clock()
        res = db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == PENDING)
            .values(
                status=CONFIRMED,
                payment_status=PAYMENT_PAID,
                payment_reference=status.payment_reference,
                items=[line.to_snapshot() for line in quote.lines],
                pricing=quote.pricing.to_dict(),
                applied_offer=quote.pricing.applied_offer.to_dict() if quote.pricing.applied_offer else None,
                total_amount_minor=quote.amount_minor,
                confirmed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if not res.rowcount:
            db.rollback()
            _, order = self._find(db, order.session_id)
            return self._replay("order", order)

        CartService(self.config).clear_cart(db, order.user_id, order.cart_type)
        log_audit(db, actor_user_id=WEBHOOK_ACTOR, action="order.confirmed", entity_type="order",
                  entity_id=order.id, details={"session_id": order.session_id, "amount_minor": quote.amount_minor})
        db.commit()
        logger.info("payment.confirmed", kind="order", order_id=order.id, amount_minor=quote.amount_minor)
        self.notifier.notify(ORDER_CONFIRMED, {"order_id": order.id, "order_number": order.order_number,
                                               "user_id": order.user_id, "restaurant_id": order.restaurant_id})
        return Confirmation("order", order.id, order.order_number, CONFIRMED)

    def _commit_booking(self, db: Session, booking: Booking, status: SessionStatus) -> Confirmation:
        try:
            expected = booking_fee_minor(db, self.config, booking.restaurant_id)
        except CheckoutError as e:
            raise PriceMismatch("booking can no longer be priced", kind="booking", record_id=booking.id,
                                reason=e.message) from e
        self._check_amount("booking", booking, expected, status)

        winner = db.execute(
            select(Booking.id).where(
                Booking.table_id == booking.table_id,
                Booking.booking_time == booking.booking_time,
                Booking.status == CONFIRMED,
                Booking.id != booking.id,
            )
        ).scalar_one_or_none()
        if winner is not None:
            db.rollback()
            return self._lose_slot(db, booking.session_id, status, winner)

        try:
            res = db.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.status == PENDING)
                .values(
                    status=CONFIRMED,
                    payment_status=PAYMENT_PAID,
                    payment_reference=status.payment_reference,
                    confirmed_at=self.clock(),
                )
                .execution_options(synchronize_session=False)
            )
        except IntegrityError:
            # a concurrent confirmation took the slot between our check and update
            db.rollback()
            return self._lose_slot(db, booking.session_id, status, None)
        if not res.rowcount:
            db.rollback()
            _, booking = self._find(db, booking.session_id)
            return self._replay("booking", booking)

        self.lock_manager.release(db, booking.table_id, booking.booking_time, holder=booking.idempotency_key)
        log_audit(db, actor_user_id=WEBHOOK_ACTOR, action="booking.confirmed", entity_type="booking",
                  entity_id=booking.id, details={"session_id": booking.session_id, "amount_minor": expected})
        db.commit()
        logger.info("payment.confirmed", kind="booking", booking_id=booking.id, table_id=booking.table_id)
        self.notifier.notify(BOOKING_CONFIRMED, {"booking_id": booking.id, "booking_number": booking.booking_number,
                                                 "user_id": booking.user_id, "restaurant_id": booking.restaurant_id})
        return Confirmation("booking", booking.id, booking.booking_number, CONFIRMED)

    def _lose_slot(self, db: Session, session_id: str, status: SessionStatus, winner_id: str | None) -> Confirmation:
        """Refund and close a booking whose slot was confirmed for someone else.

        Runs in its own transaction. If the refund cannot be issued the booking
        stays pending and the provider's redelivery retries the whole thing.
        """
        _, booking = self._find(db, session_id, for_update=True)
        if booking.status != PENDING:
            return self._replay("booking", booking)

        if not status.payment_reference:
            # the booking stays pending until the provider reports a chargeable reference
            logger.error("payment.slot_lost_without_reference", booking_id=booking.id, winner_id=winner_id)
            raise UpstreamUnavailable("payment reference not available yet, refund cannot be issued",
                                      booking_id=booking.id, operation="refund")
        refund = self.gateway.refund(status.payment_reference, idempotency_key=f"refund-{booking.id}")

        booking.status = CANCELLED_BY_OWNER
        booking.payment_reference = status.payment_reference
        booking.payment_status = PAYMENT_REFUNDED
        booking.refund_status = refund.status
        booking.closed_at = self.clock()
        self.lock_manager.release(db, booking.table_id, booking.booking_time, holder=booking.idempotency_key)
        log_audit(db, actor_user_id=WEBHOOK_ACTOR, action="booking.slot_lost", entity_type="booking",
                  entity_id=booking.id, details={"winner_id": winner_id, "refund_status": booking.refund_status})
        db.commit()
        logger.warning("payment.slot_lost", booking_id=booking.id, winner_id=winner_id,
                       refund_status=booking.refund_status)
        self.notifier.notify(BOOKING_REJECTED, {"booking_id": booking.id, "booking_number": booking.booking_number,
                                                "user_id": booking.user_id, "refund_status": booking.refund_status})
        raise SlotAlreadyBooked("this slot was confirmed for another booking; the payment has been refunded",
                                booking_id=booking.id, refund_status=booking.refund_status)

    def _escalate_mismatch(self, db: Session, session_id: str, error: CheckoutError) -> None:
        """Persist the mismatch for manual reconciliation after the commit was aborted."""
        logger.error("payment.price_mismatch", session_id=session_id, **error.details)
        try:
            kind, record = self._find(db, session_id)
            log_audit(db, actor_user_id=WEBHOOK_ACTOR, action=f"{kind}.price_mismatch", entity_type=kind,
                      entity_id=record.id, details=error.details)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("payment.price_mismatch_not_recorded", session_id=session_id)
