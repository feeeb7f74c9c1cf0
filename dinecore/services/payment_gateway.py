"""Payment provider port and the Stripe hosted-checkout adapter.

Amounts cross this boundary in currency minor units. Any provider failure
surfaces as ``UpstreamUnavailable`` so callers can roll back and retry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import stripe
import structlog

from dinecore.core.errors import UpstreamUnavailable, ValidationError

logger = structlog.get_logger(__name__)

PAID = "paid"


@dataclass(frozen=True)
class PaymentSession:
    session_id: str
    redirect_url: str


@dataclass(frozen=True)
class SessionStatus:
    session_id: str
    payment_status: str  # paid | unpaid | no_payment_required
    amount_captured_minor: int | None
    currency: str = ""
    payment_reference: str | None = None  # payment intent id, used for refunds

    @property
    def paid(self) -> bool:
        return self.payment_status == PAID


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str  # pending | succeeded | failed | requires_action


@dataclass(frozen=True)
class WebhookEvent:
    id: str
    type: str
    session_id: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_session(self, *, amount_minor: int, currency: str, description: str, metadata: dict,
                       idempotency_key: str, customer_email: str | None = None) -> PaymentSession:
        ...

    @abstractmethod
    def retrieve_session(self, session_id: str) -> SessionStatus:
        ...

    @abstractmethod
    def refund(self, payment_reference: str, *, idempotency_key: str) -> RefundResult:
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> WebhookEvent:
        """Parse a webhook body. Raises ValidationError when the signature does not match."""


@dataclass
class StripeConfig:
    secret_key: str
    webhook_secret: str
    success_url: str
    cancel_url: str
    timeout_seconds: int = 10
    max_network_retries: int = 2


def _id_of(value) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else getattr(value, "id", None)


class StripeGateway(PaymentGateway):
    def __init__(self, cfg: StripeConfig):
        self.cfg = cfg
        stripe.default_http_client = stripe.RequestsClient(timeout=cfg.timeout_seconds)
        stripe.max_network_retries = cfg.max_network_retries

    def create_session(self, *, amount_minor, currency, description, metadata, idempotency_key, customer_email=None):
        params = dict(
            mode="payment",
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": currency,
                    "unit_amount": int(amount_minor),
                    "product_data": {"name": description},
                },
                "quantity": 1,
            }],
            metadata={k: str(v) for k, v in metadata.items()},
            success_url=self.cfg.success_url,
            cancel_url=self.cfg.cancel_url,
        )
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(
                api_key=self.cfg.secret_key, idempotency_key=idempotency_key, **params
            )
        except stripe.StripeError as e:
            logger.warning("stripe.session_create_failed", error=str(e), idempotency_key=idempotency_key)
            raise UpstreamUnavailable("payment provider unavailable", operation="create_session") from e
        return PaymentSession(session_id=session.id, redirect_url=session.url)

    def retrieve_session(self, session_id):
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.cfg.secret_key)
        except stripe.InvalidRequestError as e:
            raise ValidationError("unknown payment session", session_id=session_id) from e
        except stripe.StripeError as e:
            logger.warning("stripe.session_retrieve_failed", error=str(e), session_id=session_id)
            raise UpstreamUnavailable("payment provider unavailable", operation="retrieve_session") from e
        return SessionStatus(
            session_id=session.id,
            payment_status=session.payment_status,
            amount_captured_minor=session.amount_total,
            currency=session.currency or "",
            payment_reference=_id_of(session.payment_intent),
        )

    def refund(self, payment_reference, *, idempotency_key):
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_reference, api_key=self.cfg.secret_key, idempotency_key=idempotency_key
            )
        except stripe.StripeError as e:
            logger.warning("stripe.refund_failed", error=str(e), payment_reference=payment_reference)
            raise UpstreamUnavailable("refund could not be issued", operation="refund") from e
        return RefundResult(refund_id=refund.id, status=refund.status)

    def verify_webhook_signature(self, payload, signature):
        if not self.cfg.webhook_secret:
            raise ValidationError("webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.cfg.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise ValidationError("invalid webhook signature") from e
        obj = event["data"]["object"]
        return WebhookEvent(id=event["id"], type=event["type"], session_id=getattr(obj, "id", None))
