from sqlalchemy import String, Integer, DateTime, Index, text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from dinecore.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # at most one confirmed booking per table and time
        Index(
            "uq_bookings_confirmed_slot",
            "table_id",
            "booking_time",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_number: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(36), index=True)  # payer
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True)
    table_id: Mapped[str] = mapped_column(String(36), index=True)
    booking_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    guests: Mapped[int] = mapped_column(Integer, default=1)

    fee_minor: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="gbp")

    status: Mapped[str] = mapped_column(String(30), default="pending", index=True)
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, paid, refunded
    refund_status: Mapped[str] = mapped_column(String(20), nullable=True)
    payment_reference: Mapped[str] = mapped_column(String(120), nullable=True)

    session_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    confirmed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
