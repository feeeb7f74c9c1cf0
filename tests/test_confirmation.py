import json
import threading
from dataclasses import replace

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from dinecore.core.errors import ErrorKind
from dinecore.core.security import Principal
from dinecore.db.session import Base
from dinecore.models.audit_log import AuditLog
from dinecore.models.booking import Booking
from dinecore.models.cart_line import CartLine
from dinecore.models.menu_item import MenuItem
from dinecore.models.order import Order
from dinecore.models.slot_lock import SlotLock
from dinecore.services.checkout_service import CartCheckoutRequest, CheckoutInitiator
from dinecore.services.confirmation_service import PaymentConfirmationHandler
from dinecore.services.notification_service import BOOKING_CONFIRMED, BOOKING_REJECTED, ORDER_CONFIRMED

from conftest import NOW, FakeGateway, RecordingNotifier, seed_catalog


@pytest.fixture
def pending_order(db_session, initiator, filled_cart, customer):
    return initiator.initiate_cart_checkout(db_session, customer, CartCheckoutRequest(order_type="pickup")).unwrap()


@pytest.fixture
def pending_booking(db_session, initiator, seed, customer, booking_request):
    return initiator.initiate_booking_checkout(db_session, customer, booking_request).unwrap()


def test_order_confirmed_and_cart_cleared(db_session, confirmer, notifier, pending_order, customer):
    outcome = confirmer.confirm_payment(db_session, pending_order.session_id)

    assert outcome.ok, outcome.error
    assert outcome.value.status == "confirmed"
    assert not outcome.value.replayed
    order = db_session.get(Order, pending_order.record_id)
    assert order.status == "confirmed"
    assert order.payment_status == "paid"
    assert order.payment_reference == f"pi_{pending_order.session_id}"
    assert order.confirmed_at is not None
    assert db_session.execute(select(CartLine).where(CartLine.user_id == customer.id)).first() is None
    assert notifier.names() == [ORDER_CONFIRMED]


def test_redelivered_confirmation_is_a_no_op(db_session, confirmer, gateway, notifier, pending_order):
    first = confirmer.confirm_payment(db_session, pending_order.session_id)
    second = confirmer.confirm_payment(db_session, pending_order.session_id)

    assert first.ok and second.ok
    assert second.value.replayed
    assert second.value.record_id == first.value.record_id
    assert notifier.names() == [ORDER_CONFIRMED]
    audits = db_session.execute(select(AuditLog).where(AuditLog.action == "order.confirmed")).scalars().all()
    assert len(audits) == 1


def test_unknown_session(db_session, confirmer, seed):
    assert confirmer.confirm_payment(db_session, "cs_missing").kind is ErrorKind.UNKNOWN_SESSION


def test_unpaid_session_is_left_pending(db_session, confirmer, gateway, pending_order):
    gateway.payment_status = "unpaid"
    outcome = confirmer.confirm_payment(db_session, pending_order.session_id)
    assert outcome.kind is ErrorKind.PAYMENT_NOT_COMPLETED
    assert db_session.get(Order, pending_order.record_id).status == "pending"


def test_captured_amount_differs_from_price(db_session, confirmer, gateway, notifier, pending_order):
    gateway.captured_override = pending_order.amount_minor - 1
    outcome = confirmer.confirm_payment(db_session, pending_order.session_id)

    assert outcome.kind is ErrorKind.PRICE_MISMATCH
    assert not outcome.error.retryable
    order = db_session.get(Order, pending_order.record_id)
    assert order.status == "pending"
    assert notifier.events == []

    audit = db_session.execute(select(AuditLog).where(AuditLog.action == "order.price_mismatch")).scalar_one()
    details = json.loads(audit.details_json)
    assert details["captured_minor"] == 1814
    assert details["expected_minor"] == 1815


def test_catalog_price_change_after_initiation(db_session, confirmer, pending_order):
    db_session.get(MenuItem, "burger").price_minor = 900
    db_session.commit()
    outcome = confirmer.confirm_payment(db_session, pending_order.session_id)
    assert outcome.kind is ErrorKind.PRICE_MISMATCH
    assert db_session.get(Order, pending_order.record_id).status == "pending"


def test_tolerance_absorbs_small_differences(db_session, config, gateway, notifier, clock, pending_order):
    lenient = PaymentConfirmationHandler(replace(config, price_tolerance_minor=2), gateway, notifier, clock=clock)
    gateway.captured_override = pending_order.amount_minor + 2
    assert lenient.confirm_payment(db_session, pending_order.session_id).ok


def test_provider_down_during_confirmation_is_retryable(db_session, confirmer, gateway, pending_order):
    gateway.fail_retrieve = True
    outcome = confirmer.confirm_payment(db_session, pending_order.session_id)
    assert outcome.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    assert outcome.error.retryable
    gateway.fail_retrieve = False
    assert confirmer.confirm_payment(db_session, pending_order.session_id).ok


def test_booking_confirmed_and_lock_released(db_session, confirmer, notifier, pending_booking):
    outcome = confirmer.confirm_payment(db_session, pending_booking.session_id)

    assert outcome.ok, outcome.error
    booking = db_session.get(Booking, pending_booking.record_id)
    assert booking.status == "confirmed"
    assert booking.payment_status == "paid"
    assert db_session.execute(select(SlotLock)).first() is None
    assert notifier.names() == [BOOKING_CONFIRMED]


def test_second_payment_for_a_confirmed_slot_is_refunded(db_session, config, gateway, notifier, clock, seed,
                                                         confirmer, customer, other_customer, booking_request):
    initiator = CheckoutInitiator(replace(config, enable_booking_locks=False), gateway, clock=clock)
    first = initiator.initiate_booking_checkout(db_session, customer, booking_request).unwrap()
    second = initiator.initiate_booking_checkout(db_session, other_customer, booking_request).unwrap()

    assert confirmer.confirm_payment(db_session, first.session_id).ok
    lost = confirmer.confirm_payment(db_session, second.session_id)

    assert lost.kind is ErrorKind.SLOT_ALREADY_BOOKED
    loser = db_session.get(Booking, second.record_id)
    assert loser.status == "cancelled_by_owner"
    assert loser.payment_status == "refunded"
    assert loser.refund_status == "succeeded"
    assert gateway.refunds == [(f"pi_{second.session_id}", f"refund-{second.record_id}")]
    assert db_session.get(Booking, first.record_id).status == "confirmed"
    assert notifier.names() == [BOOKING_CONFIRMED, BOOKING_REJECTED]

    # redelivery of the losing session does not refund again
    again = confirmer.confirm_payment(db_session, second.session_id)
    assert again.kind is ErrorKind.SLOT_ALREADY_BOOKED
    assert len(gateway.refunds) == 1


def test_losing_booking_stays_pending_when_refund_fails(db_session, config, gateway, clock, seed, confirmer,
                                                        customer, other_customer, booking_request):
    initiator = CheckoutInitiator(replace(config, enable_booking_locks=False), gateway, clock=clock)
    first = initiator.initiate_booking_checkout(db_session, customer, booking_request).unwrap()
    second = initiator.initiate_booking_checkout(db_session, other_customer, booking_request).unwrap()
    assert confirmer.confirm_payment(db_session, first.session_id).ok

    gateway.fail_refund = True
    assert confirmer.confirm_payment(db_session, second.session_id).kind is ErrorKind.UPSTREAM_UNAVAILABLE
    assert db_session.get(Booking, second.record_id).status == "pending"


def test_losing_booking_without_payment_reference_is_not_closed(db_session, config, gateway, notifier, clock, seed,
                                                                confirmer, customer, other_customer,
                                                                booking_request):
    initiator = CheckoutInitiator(replace(config, enable_booking_locks=False), gateway, clock=clock)
    first = initiator.initiate_booking_checkout(db_session, customer, booking_request).unwrap()
    second = initiator.initiate_booking_checkout(db_session, other_customer, booking_request).unwrap()
    assert confirmer.confirm_payment(db_session, first.session_id).ok

    gateway.without_reference = True
    outcome = confirmer.confirm_payment(db_session, second.session_id)

    assert outcome.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    assert outcome.error.retryable
    booking = db_session.get(Booking, second.record_id)
    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert gateway.refunds == []
    assert notifier.names() == [BOOKING_CONFIRMED]

    # once the provider reports the charge, redelivery refunds and closes it
    gateway.without_reference = False
    assert confirmer.confirm_payment(db_session, second.session_id).kind is ErrorKind.SLOT_ALREADY_BOOKED
    booking = db_session.get(Booking, second.record_id)
    assert booking.status == "cancelled_by_owner"
    assert booking.payment_status == "refunded"
    assert gateway.refunds == [(f"pi_{second.session_id}", f"refund-{second.record_id}")]


def test_concurrent_confirmations_for_one_slot(tmp_path, config, clock, booking_request):
    engine = create_engine(f"sqlite:///{tmp_path / 'confirm.db'}", connect_args={"check_same_thread": False, "timeout": 30})
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    with Session() as db:
        seed_catalog(db)

    gateway = FakeGateway()
    unlocked = replace(config, enable_booking_locks=False)
    initiator = CheckoutInitiator(unlocked, gateway, clock=clock)
    with Session() as db:
        started = [
            initiator.initiate_booking_checkout(db, Principal(f"user-{i}"), booking_request).unwrap()
            for i in range(2)
        ]

    confirmer = PaymentConfirmationHandler(unlocked, gateway, RecordingNotifier(), clock=clock)
    barrier = threading.Barrier(2)
    results = []

    def confirm(session_id):
        with Session() as db:
            barrier.wait()
            results.append(confirmer.confirm_payment(db, session_id))

    threads = [threading.Thread(target=confirm, args=(s.session_id,)) for s in started]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    with Session() as db:
        statuses = sorted(db.get(Booking, s.record_id).status for s in started)
    engine.dispose()

    assert statuses == ["cancelled_by_owner", "confirmed"]
    assert sorted(r.ok for r in results) == [False, True]
    assert [r.kind for r in results if not r.ok] == [ErrorKind.SLOT_ALREADY_BOOKED]
    assert len(gateway.refunds) == 1


def test_storage_refuses_two_confirmed_bookings_for_one_slot(db_session, seed):
    slot = NOW.replace(hour=18)
    common = dict(user_id="u", restaurant_id="rest-1", table_id="table-1", booking_time=slot, guests=2)
    db_session.add(Booking(id="b1", booking_number="BKG-1", status="confirmed", **common))
    db_session.add(Booking(id="b2", booking_number="BKG-2", status="pending", **common))
    db_session.commit()

    db_session.add(Booking(id="b3", booking_number="BKG-3", status="confirmed", **common))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()

    # a cancelled booking frees the slot for a new confirmation
    db_session.get(Booking, "b1").status = "cancelled_by_user"
    db_session.get(Booking, "b2").status = "confirmed"
    db_session.commit()
