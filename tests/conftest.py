"""
Pytest configuration and fixtures for dinecore tests.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import itertools
import json
import threading
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dinecore.api.deps import get_clock, get_gateway, get_notifier
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import UpstreamUnavailable, ValidationError
from dinecore.core.security import ROLE_OWNER, Principal, create_access_token
from dinecore.db.session import Base, get_db
from dinecore.main import app
from dinecore.models import MenuItem, Offer, Restaurant, RestaurantTiming, Table
from dinecore.services.cancellation_service import CancellationCoordinator
from dinecore.services.checkout_service import BookingCheckoutRequest, CheckoutInitiator
from dinecore.services.confirmation_service import PaymentConfirmationHandler
from dinecore.services.notification_service import Notifier
from dinecore.services.order_service import FulfilmentService
from dinecore.services.payment_gateway import (
    PaymentGateway,
    PaymentSession,
    RefundResult,
    SessionStatus,
    WebhookEvent,
)


# Monday 2 March 2026, 09:00 UTC
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 2)

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGateway(PaymentGateway):
    """In-memory payment provider. Sessions are paid for the amount they were opened with."""

    def __init__(self):
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self.sessions = {}
        self.refunds = []
        self.payment_status = "paid"
        self.captured_override = None
        self.fail_create = False
        self.fail_retrieve = False
        self.fail_refund = False
        self.without_reference = False

    def create_session(self, *, amount_minor, currency, description, metadata, idempotency_key, customer_email=None):
        if self.fail_create:
            raise UpstreamUnavailable("payment provider unavailable", operation="create_session")
        with self._lock:
            session_id = f"cs_test_{next(self._seq)}"
            self.sessions[session_id] = {
                "amount_minor": amount_minor,
                "currency": currency,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        return PaymentSession(session_id, f"https://pay.test/{session_id}")

    def retrieve_session(self, session_id):
        if self.fail_retrieve:
            raise UpstreamUnavailable("payment provider unavailable", operation="retrieve_session")
        s = self.sessions.get(session_id)
        if s is None:
            raise ValidationError("unknown payment session", session_id=session_id)
        captured = self.captured_override if self.captured_override is not None else s["amount_minor"]
        reference = None if self.without_reference else f"pi_{session_id}"
        return SessionStatus(session_id, self.payment_status, captured, s["currency"], reference)

    def refund(self, payment_reference, *, idempotency_key):
        if self.fail_refund:
            raise UpstreamUnavailable("refund could not be issued", operation="refund")
        self.refunds.append((payment_reference, idempotency_key))
        return RefundResult(f"re_{len(self.refunds)}", "succeeded")

    def verify_webhook_signature(self, payload, signature):
        if signature != "valid":
            raise ValidationError("invalid webhook signature")
        data = json.loads(payload)
        return WebhookEvent(data["id"], data["type"], data.get("session_id"))


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def send(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [e for e, _ in self.events]


@pytest.fixture(scope="function")
def db_session():
    """
    Fresh in-memory database per test.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    return CheckoutConfig()


@pytest.fixture
def initiator(config, gateway, clock):
    return CheckoutInitiator(config, gateway, clock=clock)


@pytest.fixture
def confirmer(config, gateway, notifier, clock):
    return PaymentConfirmationHandler(config, gateway, notifier, clock=clock)


@pytest.fixture
def coordinator(config, gateway, notifier, clock):
    return CancellationCoordinator(config, gateway, notifier, clock)


@pytest.fixture
def fulfilment(coordinator, notifier, clock):
    return FulfilmentService(coordinator, notifier, clock)


@pytest.fixture
def customer():
    return Principal("user-1", email="diner@example.com")


@pytest.fixture
def other_customer():
    return Principal("user-2")


@pytest.fixture
def owner():
    return Principal("owner-1", role=ROLE_OWNER)


def seed_catalog(db):
    """Two restaurants, opening hours for every day, a handful of items, one table and two offers."""
    restaurant = Restaurant(
        id="rest-1",
        name="Test Kitchen",
        owner_id="owner-1",
        latitude=51.5074,
        longitude=-0.1278,
        handling_charge_bps=1000,
        max_delivery_radius=10.0,
        free_delivery_radius=1.0,
        charge_per_mile_minor=100,
        accepts_bookings=True,
        is_active=True,
    )
    other = Restaurant(id="rest-2", name="Other Place", owner_id="owner-2", handling_charge_bps=0, is_active=True)
    db.add_all([restaurant, other])
    db.add_all([
        RestaurantTiming(id=f"tm-{d}", restaurant_id="rest-1", day_of_week=d, open_time="10:00", close_time="22:00")
        for d in range(7)
    ])
    burger = MenuItem(
        id="burger",
        restaurant_id="rest-1",
        name="Burger",
        price_minor=500,
        variant_groups=[{"id": "size", "title": "Size", "variants": [
            {"id": "regular", "name": "Regular", "additional_price_minor": 0},
            {"id": "large", "name": "Large", "additional_price_minor": 150},
        ]}],
        addon_groups=[{"id": "extras", "title": "Extras", "min_selection": 0, "max_selection": 1, "addons": [
            {"id": "cheese", "name": "Cheese", "price_minor": 50},
            {"id": "bacon", "name": "Bacon", "price_minor": 100},
        ]}],
    )
    fries = MenuItem(id="fries", restaurant_id="rest-1", name="Fries", price_minor=250,
                     variant_groups=[], addon_groups=[])
    soup = MenuItem(id="soup", restaurant_id="rest-1", name="Soup", price_minor=400, is_available=False,
                    variant_groups=[], addon_groups=[])
    pizza = MenuItem(id="pizza", restaurant_id="rest-2", name="Pizza", price_minor=900,
                     variant_groups=[], addon_groups=[])
    db.add_all([burger, fries, soup, pizza])
    table = Table(id="table-1", restaurant_id="rest-1", table_number="T1", capacity=4, area="indoor")
    db.add(table)
    db.add_all([
        Offer(id="offer-1", restaurant_id="rest-1", promo_code="SAVE20", discount_type="PERCENTAGE",
              discount_value=2000, max_discount_minor=300, min_order_value_minor=1000),
        Offer(id="offer-2", restaurant_id="rest-1", promo_code="FREEDEL", discount_type="FREE_DELIVERY",
              discount_value=0, min_order_value_minor=0),
    ])
    db.commit()
    return SimpleNamespace(restaurant=restaurant, other=other, burger=burger, fries=fries,
                           soup=soup, pizza=pizza, table=table)


@pytest.fixture
def seed(db_session):
    return seed_catalog(db_session)


@pytest.fixture
def filled_cart(db_session, config, seed, customer):
    """Two large burgers with cheese and one fries: 2 x 7.00 + 2.50 = 16.50."""
    from dinecore.services.cart_service import CartService

    carts = CartService(config)
    carts.add_item(db_session, customer.id, "burger", 2,
                   variant={"group_id": "size", "variant_id": "large"},
                   addons=[{"group_id": "extras", "addon_id": "cheese"}])
    carts.add_item(db_session, customer.id, "fries", 1)
    return carts


@pytest.fixture
def booking_request():
    return BookingCheckoutRequest(restaurant_id="rest-1", table_id="table-1", date=TODAY, time="18:00", guests=2)


@pytest.fixture(scope="function")
def client(db_session, gateway, notifier, clock):
    """
    Test client with database, payment provider, notifier and clock overridden.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers(principal: Principal) -> dict:
    token = create_access_token(principal.id, principal.role, principal.email)
    return {"Authorization": f"Bearer {token}"}
