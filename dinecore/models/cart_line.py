from sqlalchemy import String, Integer, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from dinecore.db.session import Base

class CartLine(Base):
    __tablename__ = "cart_lines"
    __table_args__ = (
        UniqueConstraint("user_id", "cart_type", "menu_item_id", "selection_key", name="uq_cart_lines_selection"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    cart_type: Mapped[str] = mapped_column(String(12), default="food")  # food|groceries
    restaurant_id: Mapped[str] = mapped_column(String(36))
    menu_item_id: Mapped[str] = mapped_column(String(36))
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    variant_json: Mapped[dict] = mapped_column(JSON, nullable=True)  # {"group_id", "variant_id"}
    addons_json: Mapped[list] = mapped_column(JSON, default=list)  # [{"group_id", "addon_id"}]
    selection_key: Mapped[str] = mapped_column(String(64), default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
