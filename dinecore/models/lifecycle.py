"""Order/booking lifecycle states and the transitions allowed between them.

Transitions only move forward; a terminal state never re-enters
``pending`` or ``confirmed``.
"""

PENDING = "pending"
CONFIRMED = "confirmed"
ACCEPTED = "accepted"
OUT_FOR_DELIVERY = "out_for_delivery"
DELIVERED = "delivered"
COMPLETED = "completed"
REJECTED = "rejected"
CANCELLED_BY_USER = "cancelled_by_user"
CANCELLED_BY_OWNER = "cancelled_by_owner"

ORDER_TRANSITIONS = {
    PENDING: {CONFIRMED},
    CONFIRMED: {ACCEPTED, REJECTED, CANCELLED_BY_USER, CANCELLED_BY_OWNER},
    ACCEPTED: {OUT_FOR_DELIVERY, DELIVERED},
    OUT_FOR_DELIVERY: {DELIVERED},
}

BOOKING_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED_BY_OWNER},
    CONFIRMED: {COMPLETED, CANCELLED_BY_USER, CANCELLED_BY_OWNER},
}

# payment_status
PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"

ORDER_TYPES = ("delivery", "pickup", "dine-in")


def can_transition(transitions: dict, current: str, target: str) -> bool:
    return target in transitions.get(current, set())
