from functools import lru_cache
from typing import Callable
from datetime import datetime

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from dinecore.core.clock import utcnow
from dinecore.core.config import CheckoutConfig, settings
from dinecore.core.errors import CheckoutError
from dinecore.core.result import Outcome
from dinecore.core.security import Principal, decode_token
from dinecore.services.cancellation_service import CancellationCoordinator
from dinecore.services.checkout_service import CheckoutInitiator
from dinecore.services.confirmation_service import PaymentConfirmationHandler
from dinecore.services.lock_service import ReservationLockManager
from dinecore.services.notification_service import CeleryNotifier, Notifier
from dinecore.services.order_service import FulfilmentService
from dinecore.services.payment_gateway import PaymentGateway, StripeConfig, StripeGateway

bearer = HTTPBearer(auto_error=False)

# Read once at startup; services get it handed in.
checkout_config = CheckoutConfig.from_settings(settings)


def get_current_principal(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Principal:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token")
    return Principal(id=str(user_id), role=payload.get("role") or "customer", email=payload.get("email") or "")


def get_checkout_config() -> CheckoutConfig:
    return checkout_config


def get_clock() -> Callable[[], datetime]:
    return utcnow


@lru_cache
def _stripe_gateway() -> StripeGateway:
    return StripeGateway(StripeConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        success_url=settings.CHECKOUT_SUCCESS_URL,
        cancel_url=settings.CHECKOUT_CANCEL_URL,
        timeout_seconds=settings.STRIPE_TIMEOUT_SECONDS,
        max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
    ))


def get_gateway() -> PaymentGateway:
    if not settings.STRIPE_SECRET_KEY:
        raise HTTPException(status_code=500, detail="Stripe is not configured (missing STRIPE_SECRET_KEY)")
    return _stripe_gateway()


def get_notifier() -> Notifier:
    return CeleryNotifier()


def get_lock_manager(config: CheckoutConfig = Depends(get_checkout_config), clock=Depends(get_clock)) -> ReservationLockManager:
    return ReservationLockManager(config.lock_ttl, clock, wait=config.lock_wait)


def get_checkout_initiator(
    config: CheckoutConfig = Depends(get_checkout_config),
    gateway: PaymentGateway = Depends(get_gateway),
    locks: ReservationLockManager = Depends(get_lock_manager),
    clock=Depends(get_clock),
) -> CheckoutInitiator:
    return CheckoutInitiator(config, gateway, locks, clock)


def get_confirmation_handler(
    config: CheckoutConfig = Depends(get_checkout_config),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
    locks: ReservationLockManager = Depends(get_lock_manager),
    clock=Depends(get_clock),
) -> PaymentConfirmationHandler:
    return PaymentConfirmationHandler(config, gateway, notifier, locks, clock)


def get_cancellation_coordinator(
    config: CheckoutConfig = Depends(get_checkout_config),
    gateway: PaymentGateway = Depends(get_gateway),
    notifier: Notifier = Depends(get_notifier),
    clock=Depends(get_clock),
) -> CancellationCoordinator:
    return CancellationCoordinator(config, gateway, notifier, clock)


def get_fulfilment_service(
    coordinator: CancellationCoordinator = Depends(get_cancellation_coordinator),
    notifier: Notifier = Depends(get_notifier),
    clock=Depends(get_clock),
) -> FulfilmentService:
    return FulfilmentService(coordinator, notifier, clock)


def http_error(e: CheckoutError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.to_dict())


def unwrap_or_http(outcome: Outcome):
    if outcome.error is not None:
        raise http_error(outcome.error)
    return outcome.value
