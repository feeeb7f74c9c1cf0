"""Reservation locks on a (table, time) slot.

A lock row is keyed by the slot itself. ``acquire`` is a single
insert-or-take-over-if-expired statement, so the database decides the
winner and an expired lock never needs sweeping: the next acquirer simply
overwrites it.

On PostgreSQL a competing claim that is still uncommitted makes the upsert
wait on its row lock; ``wait`` caps that with ``SET LOCAL lock_timeout`` and
a timeout counts as contention.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable

import structlog
from sqlalchemy import select, delete, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite

from dinecore.core.clock import to_utc, utcnow
from dinecore.core.errors import SlotContended
from dinecore.models.slot_lock import SlotLock

logger = structlog.get_logger(__name__)

LOCK_NOT_AVAILABLE = "55P03"


@dataclass(frozen=True)
class HeldLock:
    resource_id: str
    time_slot: datetime
    holder: str
    expires_at: datetime


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"slot locks need INSERT .. ON CONFLICT support, got {dialect}")


def _lock_timed_out(exc: OperationalError) -> bool:
    return getattr(exc.orig, "pgcode", None) == LOCK_NOT_AVAILABLE


class ReservationLockManager:
    def __init__(self, ttl: timedelta, clock: Callable[[], datetime] = utcnow, wait: timedelta | None = None):
        self.ttl = ttl
        self.clock = clock
        self.wait = wait

    def acquire(self, db: Session, resource_id: str, time_slot: datetime, holder: str) -> HeldLock:
        """Claim the slot inside the caller's transaction or raise SlotContended.

        Nothing is committed here; the lock lives or dies with the caller's
        transaction.
        """
        now = self.clock()
        slot = to_utc(time_slot)
        expires_at = now + self.ttl
        insert = _insert_for(db)
        stmt = insert(SlotLock).values(
            resource_id=resource_id,
            time_slot=slot,
            holder=holder,
            created_at=now,
            expires_at=expires_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SlotLock.resource_id, SlotLock.time_slot],
            set_={
                "holder": stmt.excluded.holder,
                "created_at": stmt.excluded.created_at,
                "expires_at": stmt.excluded.expires_at,
            },
            where=SlotLock.expires_at <= now,
        ).returning(SlotLock.holder)
        if self.wait is not None and insert is postgresql.insert:
            db.execute(text(f"SET LOCAL lock_timeout = '{int(self.wait.total_seconds() * 1000)}ms'"))
        try:
            row = db.execute(stmt).first()
        except OperationalError as e:
            if not _lock_timed_out(e):
                raise
            row = None
        if row is None:
            logger.info("slot_lock.contended", resource_id=resource_id, time_slot=slot.isoformat())
            raise SlotContended(
                "this slot is being booked by someone else, pick another time",
                resource_id=resource_id,
                time_slot=slot.isoformat(),
            )
        logger.info("slot_lock.acquired", resource_id=resource_id, time_slot=slot.isoformat(), holder=holder)
        return HeldLock(resource_id, slot, holder, expires_at)

    def release(self, db: Session, resource_id: str, time_slot: datetime, holder: str | None = None) -> bool:
        """Drop the lock if present. With ``holder``, only that holder's lock is removed."""
        stmt = delete(SlotLock).where(SlotLock.resource_id == resource_id, SlotLock.time_slot == to_utc(time_slot))
        if holder is not None:
            stmt = stmt.where(SlotLock.holder == holder)
        released = bool(db.execute(stmt).rowcount)
        if released:
            logger.info("slot_lock.released", resource_id=resource_id, time_slot=to_utc(time_slot).isoformat())
        return released

    def live_locks(self, db: Session, resource_ids: Iterable[str], start: datetime, end: datetime) -> set:
        """(resource_id, time_slot) pairs locked right now with time_slot in [start, end)."""
        ids = list(resource_ids)
        if not ids:
            return set()
        rows = db.execute(
            select(SlotLock.resource_id, SlotLock.time_slot).where(
                SlotLock.resource_id.in_(ids),
                SlotLock.time_slot >= to_utc(start),
                SlotLock.time_slot < to_utc(end),
                SlotLock.expires_at > self.clock(),
            )
        ).all()
        return {(r.resource_id, to_utc(r.time_slot)) for r in rows}
