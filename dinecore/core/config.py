from dataclasses import dataclass
from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Dinecore API"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Stripe hosted checkout
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_TIMEOUT_SECONDS: int = 10
    STRIPE_MAX_NETWORK_RETRIES: int = 2
    CHECKOUT_SUCCESS_URL: str = "http://localhost:8080/checkout/success?session_id={CHECKOUT_SESSION_ID}"
    CHECKOUT_CANCEL_URL: str = "http://localhost:8080/checkout/cancelled"
    CURRENCY: str = "gbp"

    BOOKING_FEE_MINOR: int = 100  # default table booking fee, 1.00 in CURRENCY
    SLOT_LOCK_TTL_SECONDS: int = 300
    # How long an acquire may wait on a competing uncommitted claim (PostgreSQL lock_timeout).
    SLOT_LOCK_WAIT_MS: int = 2000
    # Captured amount vs. re-derived total, in currency minor units. See DESIGN.md.
    PRICE_TOLERANCE_MINOR_UNITS: int = 0
    CANCELLATION_LEAD_HOURS: int = 5
    BOOKING_WINDOW_DAYS: int = 2
    BOOKING_SLOT_MINUTES: int = 60
    CART_MIN_QUANTITY: int = 1
    CART_MAX_QUANTITY: int = 20

    ENABLE_BOOKING_LOCKS: bool = True
    ENABLE_OFFERS: bool = True

    NOTIFICATION_WEBHOOK_URL: str = ""  # e.g. https://notify.internal/events


settings = Settings()


@dataclass(frozen=True)
class CheckoutConfig:
    """Checkout behaviour fixed at startup and handed to each service explicitly."""

    currency: str = "gbp"
    booking_fee_minor: int = 100
    lock_ttl: timedelta = timedelta(seconds=300)
    lock_wait: timedelta = timedelta(seconds=2)
    price_tolerance_minor: int = 0
    cancellation_lead: timedelta = timedelta(hours=5)
    booking_window_days: int = 2
    slot_minutes: int = 60
    min_quantity: int = 1
    max_quantity: int = 20
    enable_booking_locks: bool = True
    enable_offers: bool = True
    success_url: str = ""
    cancel_url: str = ""

    @classmethod
    def from_settings(cls, s: Settings) -> "CheckoutConfig":
        return cls(
            currency=s.CURRENCY.lower(),
            booking_fee_minor=s.BOOKING_FEE_MINOR,
            lock_ttl=timedelta(seconds=s.SLOT_LOCK_TTL_SECONDS),
            lock_wait=timedelta(milliseconds=s.SLOT_LOCK_WAIT_MS),
            price_tolerance_minor=s.PRICE_TOLERANCE_MINOR_UNITS,
            cancellation_lead=timedelta(hours=s.CANCELLATION_LEAD_HOURS),
            booking_window_days=s.BOOKING_WINDOW_DAYS,
            slot_minutes=s.BOOKING_SLOT_MINUTES,
            min_quantity=s.CART_MIN_QUANTITY,
            max_quantity=s.CART_MAX_QUANTITY,
            enable_booking_locks=s.ENABLE_BOOKING_LOCKS,
            enable_offers=s.ENABLE_OFFERS,
            success_url=s.CHECKOUT_SUCCESS_URL,
            cancel_url=s.CHECKOUT_CANCEL_URL,
        )
