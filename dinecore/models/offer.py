from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from dinecore.db.session import Base

class Offer(Base):
    __tablename__ = "offers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True)
    promo_code: Mapped[str] = mapped_column(String(40), unique=True, index=True)

    discount_type: Mapped[str] = mapped_column(String(20))  # PERCENTAGE|FLAT|FREE_DELIVERY
    # PERCENTAGE: basis points (2000 = 20%); FLAT: minor units; FREE_DELIVERY: unused
    discount_value: Mapped[int] = mapped_column(Integer, default=0)
    max_discount_minor: Mapped[int] = mapped_column(Integer, nullable=True)
    min_order_value_minor: Mapped[int] = mapped_column(Integer, default=0)

    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
