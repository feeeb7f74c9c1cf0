from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from dinecore.db.session import Base

class SlotLock(Base):
    """Short-lived claim on a table/time. The primary key is the slot itself."""

    __tablename__ = "slot_locks"

    resource_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    time_slot: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    holder: Mapped[str] = mapped_column(String(64))  # idempotency key of the pending record
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
