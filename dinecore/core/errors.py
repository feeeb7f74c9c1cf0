"""Checkout error taxonomy.

Every failure a caller has to react to has its own kind. Only upstream
failures are worth retrying as-is; the rest need a changed request, a
different slot, or a human.
"""

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    VALIDATION_ERROR = "validation_error"
    ITEM_UNAVAILABLE = "item_unavailable"
    INVALID_SELECTION = "invalid_selection"
    EMPTY_CART = "empty_cart"
    SLOT_CONTENDED = "slot_contended"
    SLOT_ALREADY_BOOKED = "slot_already_booked"
    UNKNOWN_SESSION = "unknown_session"
    PAYMENT_NOT_COMPLETED = "payment_not_completed"
    PRICE_MISMATCH = "price_mismatch"
    POLICY_VIOLATION = "policy_violation"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


class CheckoutError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION_ERROR
    http_status: int = 400
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ValidationError(CheckoutError):
    kind = ErrorKind.VALIDATION_ERROR


class OfferNotApplicable(ValidationError):
    pass


class ItemUnavailable(CheckoutError):
    kind = ErrorKind.ITEM_UNAVAILABLE


class InvalidSelection(CheckoutError):
    kind = ErrorKind.INVALID_SELECTION


class EmptyCart(CheckoutError):
    kind = ErrorKind.EMPTY_CART


class SlotContended(CheckoutError):
    kind = ErrorKind.SLOT_CONTENDED
    http_status = 409


class SlotAlreadyBooked(CheckoutError):
    kind = ErrorKind.SLOT_ALREADY_BOOKED
    http_status = 409


class UnknownSession(CheckoutError):
    kind = ErrorKind.UNKNOWN_SESSION
    http_status = 404


class PaymentNotCompleted(CheckoutError):
    kind = ErrorKind.PAYMENT_NOT_COMPLETED
    http_status = 402


class PriceMismatch(CheckoutError):
    kind = ErrorKind.PRICE_MISMATCH
    http_status = 422


class PolicyViolation(CheckoutError):
    kind = ErrorKind.POLICY_VIOLATION
    http_status = 403


class UpstreamUnavailable(CheckoutError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    http_status = 503
    retryable = True


class NotFound(CheckoutError):
    kind = ErrorKind.NOT_FOUND
    http_status = 404


class Forbidden(CheckoutError):
    kind = ErrorKind.FORBIDDEN
    http_status = 403
