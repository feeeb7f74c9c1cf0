from sqlalchemy import String, Integer, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from dinecore.db.session import Base

class RestaurantTiming(Base):
    __tablename__ = "restaurant_timings"
    __table_args__ = (UniqueConstraint("restaurant_id", "day_of_week", name="uq_restaurant_timings_day"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True)
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0=Monday .. 6=Sunday
    open_time: Mapped[str] = mapped_column(String(5), default="10:00")  # HH:MM, UTC
    close_time: Mapped[str] = mapped_column(String(5), default="22:00")
    is_open: Mapped[bool] = mapped_column(Boolean, default=True)
