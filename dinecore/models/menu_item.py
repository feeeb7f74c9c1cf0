from sqlalchemy import String, Integer, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from dinecore.db.session import Base

class MenuItem(Base):
    __tablename__ = "menu_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(200))
    price_minor: Mapped[int] = mapped_column(Integer, default=0)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    is_food: Mapped[bool] = mapped_column(Boolean, default=True)  # food cart vs groceries cart

    # [{"id", "title", "variants": [{"id", "name", "additional_price_minor"}]}]
    variant_groups: Mapped[list] = mapped_column(JSON, default=list)
    # [{"id", "title", "min_selection", "max_selection", "addons": [{"id", "name", "price_minor"}]}]
    addon_groups: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
