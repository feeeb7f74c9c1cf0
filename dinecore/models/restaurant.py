from sqlalchemy import String, Integer, Float, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from dinecore.db.session import Base

class Restaurant(Base):
    __tablename__ = "restaurants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    owner_id: Mapped[str] = mapped_column(String(36), index=True)

    latitude: Mapped[float] = mapped_column(Float, nullable=True)
    longitude: Mapped[float] = mapped_column(Float, nullable=True)

    handling_charge_bps: Mapped[int] = mapped_column(Integer, default=0)  # 1000 = 10%

    # delivery settings, distances in miles
    max_delivery_radius: Mapped[float] = mapped_column(Float, default=0.0)
    free_delivery_radius: Mapped[float] = mapped_column(Float, default=0.0)
    charge_per_mile_minor: Mapped[int] = mapped_column(Integer, default=0)

    accepts_bookings: Mapped[bool] = mapped_column(Boolean, default=True)
    booking_fee_minor: Mapped[int] = mapped_column(Integer, nullable=True)  # falls back to BOOKING_FEE_MINOR
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
