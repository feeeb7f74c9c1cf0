from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from dinecore.db.session import Base

class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(36), index=True)  # payer
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True)
    cart_type: Mapped[str] = mapped_column(String(12), default="food")
    order_type: Mapped[str] = mapped_column(String(12), default="delivery")  # delivery|pickup|dine-in
    delivery_address: Mapped[dict] = mapped_column(JSON, nullable=True)

    items: Mapped[list] = mapped_column(JSON, default=list)  # priced line snapshots
    pricing: Mapped[dict] = mapped_column(JSON, default=dict)  # decimal strings
    applied_offer: Mapped[dict] = mapped_column(JSON, nullable=True)
    promo_code: Mapped[str] = mapped_column(String(40), nullable=True)
    total_amount_minor: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="gbp")

    status: Mapped[str] = mapped_column(String(30), default="pending", index=True)
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, paid, refunded
    refund_status: Mapped[str] = mapped_column(String(20), nullable=True)  # provider refund status
    payment_reference: Mapped[str] = mapped_column(String(120), nullable=True)

    session_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    confirmed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
