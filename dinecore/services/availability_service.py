"""Table slot generation and availability."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from dinecore.core.clock import to_utc, utcnow
from dinecore.core.config import CheckoutConfig
from dinecore.core.errors import ValidationError
from dinecore.models.booking import Booking
from dinecore.models.lifecycle import CONFIRMED
from dinecore.models.restaurant_timing import RestaurantTiming
from dinecore.models.table import Table
from dinecore.services.lock_service import ReservationLockManager


@dataclass
class TableAvailability:
    table_id: str
    table_number: str
    capacity: int
    area: str
    slots: list = field(default_factory=list)  # "HH:MM"


def _parse_hhmm(value: str) -> time:
    try:
        hh, mm = value.split(":")
        return time(int(hh), int(mm))
    except (ValueError, AttributeError):
        raise ValidationError(f"invalid time {value!r}, expected HH:MM", field="time") from None


class AvailabilityService:
    def __init__(self, config: CheckoutConfig, lock_manager: ReservationLockManager,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config
        self.lock_manager = lock_manager
        self.clock = clock

    def day_slots(self, db: Session, restaurant_id: str, day: date) -> list[datetime]:
        timing = db.execute(
            select(RestaurantTiming).where(
                RestaurantTiming.restaurant_id == restaurant_id,
                RestaurantTiming.day_of_week == day.weekday(),
            )
        ).scalar_one_or_none()
        if timing is None or not timing.is_open:
            return []
        step = timedelta(minutes=self.config.slot_minutes)
        current = datetime.combine(day, _parse_hhmm(timing.open_time), tzinfo=timezone.utc)
        close = datetime.combine(day, _parse_hhmm(timing.close_time), tzinfo=timezone.utc)
        slots = []
        while current + step <= close:
            slots.append(current)
            current += step
        return slots

    def check_window(self, day: date) -> None:
        today = self.clock().date()
        last = today + timedelta(days=self.config.booking_window_days)
        if day < today or day > last:
            raise ValidationError(
                f"bookings are open from {today.isoformat()} to {last.isoformat()}",
                field="date",
            )

    def resolve_slot(self, db: Session, restaurant_id: str, day: date, hhmm: str) -> datetime:
        """Turn a requested date and HH:MM into a bookable slot start or raise ValidationError."""
        self.check_window(day)
        slot = datetime.combine(day, _parse_hhmm(hhmm), tzinfo=timezone.utc)
        if slot <= self.clock():
            raise ValidationError("that time has already passed", field="time")
        if slot not in self.day_slots(db, restaurant_id, day):
            raise ValidationError("the restaurant does not take bookings at that time", field="time")
        return slot

    def available_slots(self, db: Session, restaurant_id: str, day: date, guests: int) -> list[TableAvailability]:
        if guests < 1:
            raise ValidationError("guests must be at least 1", field="guests")
        self.check_window(day)
        now = self.clock()
        slots = [s for s in self.day_slots(db, restaurant_id, day) if s > now]

        tables = list(db.execute(
            select(Table)
            .where(Table.restaurant_id == restaurant_id, Table.is_active == True, Table.capacity >= guests)  # noqa: E712
            .order_by(Table.table_number.asc())
        ).scalars())
        if not tables or not slots:
            return [TableAvailability(t.id, t.table_number, t.capacity, t.area) for t in tables]

        start = datetime.combine(day, time(0, 0), tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        table_ids = [t.id for t in tables]
        taken = {
            (r.table_id, to_utc(r.booking_time))
            for r in db.execute(
                select(Booking.table_id, Booking.booking_time).where(
                    Booking.table_id.in_(table_ids),
                    Booking.status == CONFIRMED,
                    Booking.booking_time >= start,
                    Booking.booking_time < end,
                )
            ).all()
        }
        if self.config.enable_booking_locks:
            taken |= self.lock_manager.live_locks(db, table_ids, start, end)

        return [
            TableAvailability(
                table_id=t.id,
                table_number=t.table_number,
                capacity=t.capacity,
                area=t.area,
                slots=[s.strftime("%H:%M") for s in slots if (t.id, s) not in taken],
            )
            for t in tables
        ]
