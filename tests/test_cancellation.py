import pytest

from dinecore.core.errors import ErrorKind
from dinecore.core.security import ROLE_ADMIN, Principal
from dinecore.models.booking import Booking
from dinecore.models.order import Order
from dinecore.services.checkout_service import CartCheckoutRequest
from dinecore.services.notification_service import BOOKING_CANCELLED, ORDER_CANCELLED, ORDER_REJECTED


@pytest.fixture
def confirmed_booking(db_session, initiator, confirmer, seed, customer, booking_request):
    started = initiator.initiate_booking_checkout(db_session, customer, booking_request).unwrap()
    confirmer.confirm_payment(db_session, started.session_id).unwrap()
    return db_session.get(Booking, started.record_id)


@pytest.fixture
def confirmed_order(db_session, initiator, confirmer, filled_cart, customer):
    started = initiator.initiate_cart_checkout(db_session, customer, CartCheckoutRequest(order_type="pickup")).unwrap()
    confirmer.confirm_payment(db_session, started.session_id).unwrap()
    return db_session.get(Order, started.record_id)


def test_customer_cancels_booking_in_time(db_session, coordinator, gateway, notifier, confirmed_booking, customer):
    outcome = coordinator.cancel_booking(db_session, confirmed_booking.id, customer)

    assert outcome.ok, outcome.error
    change = outcome.value
    assert change.status == "cancelled_by_user"
    assert change.payment_status == "refunded"
    assert change.refund_status == "succeeded"
    assert gateway.refunds == [(confirmed_booking.payment_reference, f"refund-{confirmed_booking.id}")]
    assert notifier.names()[-1] == BOOKING_CANCELLED


def test_late_cancellation_is_refused_without_refund(db_session, coordinator, gateway, clock,
                                                     confirmed_booking, customer):
    # booking at 18:00, now 16:00: two hours' notice against five required
    clock.advance(hours=7)
    outcome = coordinator.cancel_booking(db_session, confirmed_booking.id, customer)

    assert outcome.kind is ErrorKind.POLICY_VIOLATION
    assert outcome.error.details["required_hours"] == 5
    assert outcome.error.details["hours_remaining"] == 2
    assert gateway.refunds == []
    assert db_session.get(Booking, confirmed_booking.id).status == "confirmed"


def test_owner_may_cancel_late(db_session, coordinator, clock, confirmed_booking, owner):
    clock.advance(hours=7)
    outcome = coordinator.cancel_booking(db_session, confirmed_booking.id, owner)
    assert outcome.ok
    assert outcome.value.status == "cancelled_by_owner"


def test_stranger_cannot_cancel(db_session, coordinator, confirmed_booking, other_customer):
    outcome = coordinator.cancel_booking(db_session, confirmed_booking.id, other_customer)
    assert outcome.kind is ErrorKind.FORBIDDEN


def test_admin_counts_as_owner(db_session, coordinator, confirmed_booking):
    outcome = coordinator.cancel_booking(db_session, confirmed_booking.id, Principal("ops", role=ROLE_ADMIN))
    assert outcome.value.status == "cancelled_by_owner"


def test_refund_failure_keeps_record_confirmed(db_session, coordinator, gateway, confirmed_booking, customer):
    gateway.fail_refund = True
    outcome = coordinator.cancel_booking(db_session, confirmed_booking.id, customer)

    assert outcome.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    booking = db_session.get(Booking, confirmed_booking.id)
    assert booking.status == "confirmed"
    assert booking.payment_status == "paid"

    gateway.fail_refund = False
    assert coordinator.cancel_booking(db_session, confirmed_booking.id, customer).ok


def test_paid_booking_without_reference_is_not_cancelled(db_session, coordinator, gateway, notifier,
                                                         confirmed_booking, customer):
    confirmed_booking.payment_reference = None
    db_session.commit()

    outcome = coordinator.cancel_booking(db_session, confirmed_booking.id, customer)

    assert outcome.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    booking = db_session.get(Booking, confirmed_booking.id)
    assert booking.status == "confirmed"
    assert booking.payment_status == "paid"
    assert booking.refund_status is None
    assert gateway.refunds == []
    assert BOOKING_CANCELLED not in notifier.names()


def test_cancelling_twice_is_a_policy_violation(db_session, coordinator, gateway, confirmed_booking, customer):
    assert coordinator.cancel_booking(db_session, confirmed_booking.id, customer).ok
    assert coordinator.cancel_booking(db_session, confirmed_booking.id, customer).kind is ErrorKind.POLICY_VIOLATION
    assert len(gateway.refunds) == 1


def test_cancelled_slot_can_be_booked_again(db_session, coordinator, initiator, confirmer, confirmed_booking,
                                            customer, other_customer, booking_request):
    coordinator.cancel_booking(db_session, confirmed_booking.id, customer).unwrap()
    started = initiator.initiate_booking_checkout(db_session, other_customer, booking_request).unwrap()
    assert confirmer.confirm_payment(db_session, started.session_id).ok


def test_unknown_booking(db_session, coordinator, seed, customer):
    assert coordinator.cancel_booking(db_session, "missing", customer).kind is ErrorKind.NOT_FOUND


def test_customer_cancels_order(db_session, coordinator, gateway, notifier, confirmed_order, customer):
    outcome = coordinator.cancel_order(db_session, confirmed_order.id, customer)
    assert outcome.value.status == "cancelled_by_user"
    assert outcome.value.payment_status == "refunded"
    assert notifier.names()[-1] == ORDER_CANCELLED


def test_order_in_fulfilment_cannot_be_cancelled(db_session, coordinator, fulfilment, gateway,
                                                 confirmed_order, customer, owner):
    fulfilment.respond_to_order(db_session, confirmed_order.id, owner, accept=True).unwrap()
    outcome = coordinator.cancel_order(db_session, confirmed_order.id, customer)
    assert outcome.kind is ErrorKind.POLICY_VIOLATION
    assert gateway.refunds == []


def test_owner_rejects_order_with_refund(db_session, fulfilment, gateway, notifier, confirmed_order, owner):
    outcome = fulfilment.respond_to_order(db_session, confirmed_order.id, owner, accept=False)

    assert outcome.value.status == "rejected"
    assert outcome.value.payment_status == "refunded"
    assert gateway.refunds == [(confirmed_order.payment_reference, f"refund-{confirmed_order.id}")]
    assert notifier.names()[-1] == ORDER_REJECTED


def test_delivery_progression(db_session, fulfilment, initiator, confirmer, filled_cart, customer, owner):
    from dinecore.services.quote_service import DeliveryAddress

    started = initiator.initiate_cart_checkout(db_session, customer, CartCheckoutRequest(
        order_type="delivery", delivery_address=DeliveryAddress(51.5074, -0.1278),
    )).unwrap()
    confirmer.confirm_payment(db_session, started.session_id).unwrap()
    order_id = started.record_id

    assert fulfilment.advance_order(db_session, order_id, owner, "out_for_delivery").kind \
        is ErrorKind.POLICY_VIOLATION
    fulfilment.respond_to_order(db_session, order_id, owner, accept=True).unwrap()
    assert fulfilment.advance_order(db_session, order_id, owner, "out_for_delivery").value.status \
        == "out_for_delivery"
    assert fulfilment.advance_order(db_session, order_id, owner, "delivered").value.status == "delivered"
    assert fulfilment.advance_order(db_session, order_id, owner, "out_for_delivery").kind \
        is ErrorKind.POLICY_VIOLATION
    assert db_session.get(Order, order_id).closed_at is not None


def test_pickup_orders_skip_delivery(db_session, fulfilment, confirmed_order, owner, customer):
    fulfilment.respond_to_order(db_session, confirmed_order.id, owner, accept=True).unwrap()
    assert fulfilment.advance_order(db_session, confirmed_order.id, owner, "out_for_delivery").kind \
        is ErrorKind.POLICY_VIOLATION
    assert fulfilment.advance_order(db_session, confirmed_order.id, customer, "delivered").kind \
        is ErrorKind.FORBIDDEN
    assert fulfilment.advance_order(db_session, confirmed_order.id, owner, "delivered").ok
    assert fulfilment.advance_order(db_session, confirmed_order.id, owner, "cancelled").kind \
        is ErrorKind.VALIDATION_ERROR


def test_complete_booking(db_session, fulfilment, confirmed_booking, owner, customer):
    assert fulfilment.complete_booking(db_session, confirmed_booking.id, customer).kind is ErrorKind.FORBIDDEN
    assert fulfilment.complete_booking(db_session, confirmed_booking.id, owner).value.status == "completed"
    assert fulfilment.complete_booking(db_session, confirmed_booking.id, owner).kind is ErrorKind.POLICY_VIOLATION
