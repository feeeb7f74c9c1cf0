"""Best-effort customer/owner notifications.

Sending is fire-and-forget: a failure here is logged and never undoes or
fails the checkout operation that triggered it.
"""

from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)

ORDER_CONFIRMED = "order.confirmed"
ORDER_CANCELLED = "order.cancelled"
ORDER_REJECTED = "order.rejected"
ORDER_STATUS_CHANGED = "order.status_changed"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_REJECTED = "booking.rejected"


class Notifier(ABC):
    @abstractmethod
    def send(self, event: str, payload: dict) -> None:
        ...

    def notify(self, event: str, payload: dict) -> None:
        try:
            self.send(event, payload)
        except Exception:
            logger.warning("notification.dispatch_failed", event=event, exc_info=True)


class CeleryNotifier(Notifier):
    def send(self, event: str, payload: dict) -> None:
        from dinecore.tasks.jobs import dispatch_notification

        dispatch_notification.delay(event, payload)
