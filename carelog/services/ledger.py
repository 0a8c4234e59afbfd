"""
Shift ledger — the per-worker clock-in / clock-out state machine.

A worker is either CLOCKED_OUT (no open time entry) or CLOCKED_IN (exactly
one). Every mutation runs in one transaction while holding, in order:

1. an in-process lock keyed by worker id,
2. a ``FOR UPDATE`` row lock on the worker's ``users`` row (PostgreSQL),
3. the unique partial indexes on open shifts / entries, which reject a
   second open row at commit time if anything slipped past 1 and 2.

Expected outcomes (wrong role, outside the perimeter, already clocked in …)
come back as a ``LedgerResult`` with a ``failure`` code. Only storage
failures raise, as ``StoreError``, after a full rollback.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carelog.core.exceptions import StoreError
from carelog.core.timeutils import ensure_utc, utcnow
from carelog.models.location import Location
from carelog.models.shift import Shift, TimeEntry
from carelog.models.user import Role, User
from carelog.services.geofence import Position, is_within_perimeter
from carelog.services.locks import KeyedLock

logger = logging.getLogger(__name__)


class LedgerFailure(str, Enum):
    ROLE_NOT_PERMITTED = "ROLE_NOT_PERMITTED"
    NO_LOCATION_ASSIGNED = "NO_LOCATION_ASSIGNED"
    GEOFENCE_VIOLATION = "GEOFENCE_VIOLATION"
    ALREADY_CLOCKED_IN = "ALREADY_CLOCKED_IN"
    NOT_CLOCKED_IN = "NOT_CLOCKED_IN"

    @property
    def message(self) -> str:
        return _FAILURE_MESSAGES[self]


_FAILURE_MESSAGES = {
    LedgerFailure.ROLE_NOT_PERMITTED: "Only care workers can clock in or out",
    LedgerFailure.NO_LOCATION_ASSIGNED: "User has no assigned location",
    LedgerFailure.GEOFENCE_VIOLATION: "You are outside the allowed perimeter of your location",
    LedgerFailure.ALREADY_CLOCKED_IN: "User is already clocked in",
    LedgerFailure.NOT_CLOCKED_IN: "User is not clocked in",
}

# Postgres reports the index name; SQLite reports the indexed column
_OPEN_ROW_INDEXES = ("uq_time_entries_open_per_worker", "uq_shifts_open_per_worker")
_OPEN_ROW_COLUMNS = ("time_entries.worker_id", "shifts.worker_id")


def is_open_row_conflict(exc: IntegrityError) -> bool:
    """True when *exc* is a second open shift or entry for the same worker."""
    message = str(exc.orig)
    if any(name in message for name in _OPEN_ROW_INDEXES):
        return True
    return "UNIQUE constraint failed" in message and any(
        column in message for column in _OPEN_ROW_COLUMNS
    )


@dataclass(frozen=True)
class WorkerContext:
    """Who is asking, as resolved upstream from the access token."""

    worker_id: int
    role: str
    location_id: int | None


@dataclass(frozen=True)
class LedgerResult:
    entry: TimeEntry | None = None
    failure: LedgerFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class CurrentShift:
    shift: Shift
    entry: TimeEntry
    location: Location | None


class ShiftLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._locks = KeyedLock()

    # ── Mutations ───────────────────────────────────────────────────
    async def clock_in(
        self,
        worker: WorkerContext,
        position: Position,
        note: str | None = None,
    ) -> LedgerResult:
        if worker.role != Role.CARE_WORKER.value:
            return self._rejected(worker.worker_id, LedgerFailure.ROLE_NOT_PERMITTED)
        if worker.location_id is None:
            return self._rejected(worker.worker_id, LedgerFailure.NO_LOCATION_ASSIGNED)

        async with self._locks.hold(worker.worker_id):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        result = await self._clock_in(session, worker, position, note)
            except IntegrityError as exc:
                if is_open_row_conflict(exc):
                    # Another process committed an open entry for this worker first
                    return self._rejected(worker.worker_id, LedgerFailure.ALREADY_CLOCKED_IN)
                logger.error(
                    "Clock-in for worker %d violated a constraint: %s",
                    worker.worker_id,
                    exc,
                    exc_info=True,
                )
                raise StoreError("clock-in could not be committed") from exc
            except SQLAlchemyError as exc:
                logger.error("Clock-in for worker %d aborted: %s", worker.worker_id, exc, exc_info=True)
                raise StoreError("clock-in could not be committed") from exc

        if result.ok:
            logger.info(
                "Clock IN for worker %d at location %d (entry %d)",
                worker.worker_id,
                worker.location_id,
                result.entry.id,
            )
        else:
            self._rejected(worker.worker_id, result.failure)
        return result

    async def clock_out(
        self,
        worker: WorkerContext,
        note: str | None = None,
        position: Position | None = None,
    ) -> LedgerResult:
        worker_id = worker.worker_id
        if worker.role != Role.CARE_WORKER.value:
            return self._rejected(worker_id, LedgerFailure.ROLE_NOT_PERMITTED)

        async with self._locks.hold(worker_id):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        result = await self._clock_out(session, worker_id, note, position)
            except SQLAlchemyError as exc:
                logger.error("Clock-out for worker %d aborted: %s", worker_id, exc, exc_info=True)
                raise StoreError("clock-out could not be committed") from exc

        if result.ok:
            logger.info("Clock OUT for worker %d (entry %d)", worker_id, result.entry.id)
        else:
            self._rejected(worker_id, result.failure)
        return result

    # ── Reads ───────────────────────────────────────────────────────
    async def get_current_shift(self, worker_id: int) -> CurrentShift | None:
        """Open shift + open entry for a CLOCKED_IN worker, else ``None``."""
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(Shift, Location)
                        .outerjoin(Location, Location.id == Shift.location_id)
                        .where(Shift.worker_id == worker_id, Shift.end_time.is_(None))
                        .order_by(Shift.start_time.desc())
                        .limit(1)
                    )
                ).first()
                if row is None:
                    return None
                shift, location = row

                entry = (
                    await session.execute(
                        select(TimeEntry)
                        .where(TimeEntry.shift_id == shift.id, TimeEntry.clock_out_time.is_(None))
                        .order_by(TimeEntry.clock_in_time.desc())
                        .limit(1)
                    )
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Current shift lookup for worker %d failed: %s", worker_id, exc, exc_info=True)
            raise StoreError("current shift could not be read") from exc

        if entry is None:
            return None
        return CurrentShift(shift=shift, entry=entry, location=location)

    async def recent_entries(self, worker_id: int, limit: int = 50) -> list[TimeEntry]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TimeEntry)
                    .where(TimeEntry.worker_id == worker_id)
                    .order_by(TimeEntry.clock_in_time.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.error("Time entry lookup for worker %d failed: %s", worker_id, exc, exc_info=True)
            raise StoreError("time entries could not be read") from exc

    # ── Transaction bodies ──────────────────────────────────────────
    async def _clock_in(
        self,
        session: AsyncSession,
        worker: WorkerContext,
        position: Position,
        note: str | None,
    ) -> LedgerResult:
        if not await self._lock_worker(session, worker.worker_id):
            return LedgerResult(failure=LedgerFailure.ROLE_NOT_PERMITTED)

        location = await session.get(Location, worker.location_id)
        if location is None or not location.is_active:
            return LedgerResult(failure=LedgerFailure.NO_LOCATION_ASSIGNED)

        center = Position(location.latitude, location.longitude)
        if not is_within_perimeter(position, center, location.radius_meters):
            return LedgerResult(failure=LedgerFailure.GEOFENCE_VIOLATION)

        if await self._open_entry(session, worker.worker_id) is not None:
            return LedgerResult(failure=LedgerFailure.ALREADY_CLOCKED_IN)

        now = self._clock()
        shift = (
            await session.execute(
                select(Shift)
                .where(Shift.worker_id == worker.worker_id, Shift.end_time.is_(None))
                .with_for_update()
            )
        ).scalar_one_or_none()

        if shift is not None and shift.location_id != location.id:
            # Left open at a previous assignment with nothing clocked in
            shift.end_time = max(now, ensure_utc(shift.start_time))
            await session.flush()
            logger.warning(
                "Closed stale shift %d of worker %d at location %d",
                shift.id,
                worker.worker_id,
                shift.location_id,
            )
            shift = None

        if shift is None:
            shift = Shift(worker_id=worker.worker_id, location_id=location.id, start_time=now)
            session.add(shift)
            await session.flush()

        entry = TimeEntry(
            shift_id=shift.id,
            worker_id=worker.worker_id,
            clock_in_time=now,
            clock_in_latitude=position.latitude,
            clock_in_longitude=position.longitude,
            note=note,
        )
        session.add(entry)
        await session.flush()
        return LedgerResult(entry=entry)

    async def _clock_out(
        self,
        session: AsyncSession,
        worker_id: int,
        note: str | None,
        position: Position | None,
    ) -> LedgerResult:
        if not await self._lock_worker(session, worker_id):
            return LedgerResult(failure=LedgerFailure.ROLE_NOT_PERMITTED)

        entry = await self._open_entry(session, worker_id)
        if entry is None:
            return LedgerResult(failure=LedgerFailure.NOT_CLOCKED_IN)

        clock_out_time = max(self._clock(), ensure_utc(entry.clock_in_time))
        entry.clock_out_time = clock_out_time
        if position is not None:
            entry.clock_out_latitude = position.latitude
            entry.clock_out_longitude = position.longitude
        # A clock-out note replaces the clock-in note; no note keeps it
        if note is not None:
            entry.note = note
        await session.flush()

        still_open = await session.scalar(
            select(func.count(TimeEntry.id)).where(
                TimeEntry.shift_id == entry.shift_id,
                TimeEntry.clock_out_time.is_(None),
            )
        )
        if not still_open:
            shift = await session.get(Shift, entry.shift_id, with_for_update=True)
            if shift is not None and shift.end_time is None:
                shift.end_time = clock_out_time
                await session.flush()

        return LedgerResult(entry=entry)

    @staticmethod
    async def _lock_worker(session: AsyncSession, worker_id: int) -> bool:
        """Row-lock the worker; ``False`` if the worker row does not exist."""
        locked = await session.execute(
            select(User.id).where(User.id == worker_id).with_for_update()
        )
        return locked.scalar_one_or_none() is not None

    @staticmethod
    async def _open_entry(session: AsyncSession, worker_id: int) -> TimeEntry | None:
        result = await session.execute(
            select(TimeEntry)
            .where(TimeEntry.worker_id == worker_id, TimeEntry.clock_out_time.is_(None))
            .with_for_update()
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _rejected(worker_id: int, failure: LedgerFailure) -> LedgerResult:
        logger.info("Ledger rejected worker %d: %s", worker_id, failure.value)
        return LedgerResult(failure=failure)
