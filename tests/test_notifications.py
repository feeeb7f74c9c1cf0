import pytest
import requests
from sqlalchemy.exc import OperationalError

from dinecore.core.config import CheckoutConfig, Settings
from dinecore.core.errors import ErrorKind, PolicyViolation
from dinecore.core.result import capture
from dinecore.services.notification_service import Notifier
from dinecore.tasks import worker_jobs


class BrokenNotifier(Notifier):
    def send(self, event, payload):
        raise ConnectionError("broker down")


def test_notifier_failure_does_not_propagate():
    BrokenNotifier().notify("order.confirmed", {"order_id": "o1"})


def test_delivery_skipped_without_endpoint():
    assert worker_jobs.deliver_notification("order.confirmed", {}, url="") == "skipped"


def test_delivery_posts_event(monkeypatch):
    sent = {}

    class Response:
        status_code = 202

        def raise_for_status(self):
            pass

    def fake_post(url, json, timeout):
        sent.update(url=url, json=json, timeout=timeout)
        return Response()

    monkeypatch.setattr(worker_jobs.requests, "post", fake_post)
    assert worker_jobs.deliver_notification("booking.cancelled", {"booking_id": "b1"}, url="http://n.test/ev") == "sent"
    assert sent["json"] == {"event": "booking.cancelled", "payload": {"booking_id": "b1"}}


def test_delivery_error_is_raised_for_retry(monkeypatch):
    def fake_post(url, json, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(worker_jobs.requests, "post", fake_post)
    with pytest.raises(requests.RequestException):
        worker_jobs.deliver_notification("order.confirmed", {}, url="http://n.test/ev")


def test_capture_folds_checkout_errors(db_session):
    def refuse():
        raise PolicyViolation("too late", required_hours=5)

    outcome = capture(db_session, "cancel", refuse)
    assert not outcome.ok
    assert outcome.kind is ErrorKind.POLICY_VIOLATION
    assert outcome.error.to_dict()["details"] == {"required_hours": 5}
    with pytest.raises(PolicyViolation):
        outcome.unwrap()


def test_capture_maps_lost_datastore_to_upstream(db_session):
    def lost():
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    outcome = capture(db_session, "confirm_payment", lost)
    assert outcome.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    assert outcome.error.retryable


def test_capture_lets_bugs_through(db_session):
    with pytest.raises(ZeroDivisionError):
        capture(db_session, "x", lambda: 1 / 0)


def test_checkout_config_from_settings():
    s = Settings(SECRET_KEY="k", DATABASE_URL="postgres://u:p@h/db", CURRENCY="EUR",
                 SLOT_LOCK_TTL_SECONDS=120, SLOT_LOCK_WAIT_MS=500, ENABLE_BOOKING_LOCKS=False)
    assert s.DATABASE_URL == "postgresql+psycopg2://u:p@h/db"
    cfg = CheckoutConfig.from_settings(s)
    assert cfg.currency == "eur"
    assert cfg.lock_ttl.total_seconds() == 120
    assert cfg.lock_wait.total_seconds() == 0.5
    assert cfg.enable_booking_locks is False
    assert cfg.price_tolerance_minor == 0
