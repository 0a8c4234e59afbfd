"""
Attendance analytics over committed ledger rows.

``AnalyticsAggregator`` fetches every time entry whose clock-in falls in a
window with **one** SQL query, then hands plain ``EntryRecord`` values to
the pure functions below. Hours are accumulated at full precision;
rounding happens only when responses are serialised.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carelog.core.exceptions import StoreError
from carelog.core.timeutils import ensure_utc
from carelog.models.shift import Shift, TimeEntry
from carelog.models.user import Role, User

logger = logging.getLogger(__name__)

_WINDOW_RE = re.compile(r"^\s*(\d{1,4})\s*d\s*$", re.IGNORECASE)
_SECONDS_PER_HOUR = 3600


# ── Value types ─────────────────────────────────────────────────────
@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class EntryRecord:
    entry_id: int
    worker_id: int
    location_id: int
    shift_id: int
    clock_in_time: datetime
    clock_out_time: datetime | None = None
    worker_name: str | None = None
    worker_email: str | None = None
    clock_in_latitude: float = 0.0
    clock_in_longitude: float = 0.0
    clock_out_latitude: float | None = None
    clock_out_longitude: float | None = None
    note: str | None = None

    @property
    def hours(self) -> float | None:
        """Duration in hours, ``None`` while the entry is open."""
        if self.clock_out_time is None:
            return None
        delta = ensure_utc(self.clock_out_time) - ensure_utc(self.clock_in_time)
        return delta.total_seconds() / _SECONDS_PER_HOUR

    @property
    def work_date(self) -> date:
        return ensure_utc(self.clock_in_time).date()


@dataclass
class DailyStat:
    date: date
    total_hours: float
    total_shifts: int
    unique_staff_count: int

    @property
    def avg_hours_per_shift(self) -> float:
        return self.total_hours / self.total_shifts if self.total_shifts else 0.0

    @property
    def avg_hours_per_staff(self) -> float:
        return self.total_hours / self.unique_staff_count if self.unique_staff_count else 0.0


@dataclass
class StaffHours:
    worker_id: int
    name: str | None
    email: str | None
    total_hours: float


@dataclass
class OverallStats:
    total_hours_last_week: float
    total_shifts_last_week: int
    total_unique_staff_last_week: int
    avg_hours_per_day: float
    avg_people_per_day: float


@dataclass
class StaffTimeEntries:
    worker_id: int
    name: str | None
    email: str | None
    entries: list[EntryRecord] = field(default_factory=list)
    total_hours: float = 0.0
    is_currently_clocked_in: bool = False


@dataclass
class AnalyticsReport:
    window: TimeWindow
    daily_stats: list[DailyStat]
    staff_hours_breakdown: list[StaffHours]
    overall_stats: OverallStats


# ── Window parsing ──────────────────────────────────────────────────
def parse_window(text: str, now: datetime, max_days: int = 90) -> TimeWindow:
    """Turn ``"7d"`` into the half-open window ``[now - 7 days, now)``."""
    match = _WINDOW_RE.match(text or "")
    if match is None:
        raise ValueError(f"Window must look like '7d', got {text!r}")
    days = int(match.group(1))
    if not 1 <= days <= max_days:
        raise ValueError(f"Window must be between 1d and {max_days}d")
    end = ensure_utc(now)
    return TimeWindow(start=end - timedelta(days=days), end=end)


# ── Pure aggregation ────────────────────────────────────────────────
def daily_stats(records: list[EntryRecord]) -> list[DailyStat]:
    """One bucket per UTC clock-in date that has entries, oldest first.

    Open entries count as shifts and staff but add no hours.
    """
    hours: dict[date, float] = defaultdict(float)
    shifts: dict[date, int] = defaultdict(int)
    staff: dict[date, set[int]] = defaultdict(set)

    for rec in records:
        day = rec.work_date
        shifts[day] += 1
        staff[day].add(rec.worker_id)
        if rec.hours is not None:
            hours[day] += rec.hours

    return [
        DailyStat(
            date=day,
            total_hours=hours[day],
            total_shifts=shifts[day],
            unique_staff_count=len(staff[day]),
        )
        for day in sorted(shifts)
    ]


def staff_hours_breakdown(records: list[EntryRecord]) -> list[StaffHours]:
    """Closed hours per worker across the whole window, most hours first."""
    by_worker: dict[int, StaffHours] = {}
    for rec in records:
        if rec.hours is None:
            continue
        staff = by_worker.get(rec.worker_id)
        if staff is None:
            staff = by_worker[rec.worker_id] = StaffHours(
                worker_id=rec.worker_id,
                name=rec.worker_name,
                email=rec.worker_email,
                total_hours=0.0,
            )
        staff.total_hours += rec.hours

    return sorted(by_worker.values(), key=lambda s: (-s.total_hours, s.worker_id))


def overall_stats(records: list[EntryRecord], days: list[DailyStat]) -> OverallStats:
    total_hours = sum(d.total_hours for d in days)
    total_shifts = sum(d.total_shifts for d in days)
    # Distinct across the window: a worker seen on several days counts once
    unique_staff = len({rec.worker_id for rec in records})

    if days:
        avg_hours_per_day = total_hours / len(days)
        avg_people_per_day = sum(d.unique_staff_count for d in days) / len(days)
    else:
        avg_hours_per_day = avg_people_per_day = 0.0

    return OverallStats(
        total_hours_last_week=total_hours,
        total_shifts_last_week=total_shifts,
        total_unique_staff_last_week=unique_staff,
        avg_hours_per_day=avg_hours_per_day,
        avg_people_per_day=avg_people_per_day,
    )


def staff_time_entries(records: list[EntryRecord]) -> list[StaffTimeEntries]:
    """Entries grouped per staff member (newest first), staff sorted by name."""
    by_worker: dict[int, StaffTimeEntries] = {}
    for rec in records:
        staff = by_worker.get(rec.worker_id)
        if staff is None:
            staff = by_worker[rec.worker_id] = StaffTimeEntries(
                worker_id=rec.worker_id,
                name=rec.worker_name,
                email=rec.worker_email,
            )
        staff.entries.append(rec)
        if rec.hours is None:
            staff.is_currently_clocked_in = True
        else:
            staff.total_hours += rec.hours

    for staff in by_worker.values():
        staff.entries.sort(key=lambda r: ensure_utc(r.clock_in_time), reverse=True)

    return sorted(
        by_worker.values(),
        key=lambda s: ((s.name or "").lower(), s.worker_id),
    )


# ── Store-backed aggregator ─────────────────────────────────────────
class AnalyticsAggregator:
    """Read-only view over committed shifts and time entries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def fetch_entries(
        self,
        window: TimeWindow,
        location_id: int | None = None,
    ) -> list[EntryRecord]:
        query = (
            select(TimeEntry, Shift.location_id, User.full_name, User.email)
            .join(Shift, TimeEntry.shift_id == Shift.id)
            .join(User, TimeEntry.worker_id == User.id)
            .where(
                TimeEntry.clock_in_time >= window.start,
                TimeEntry.clock_in_time < window.end,
                User.role == Role.CARE_WORKER.value,
            )
            .order_by(TimeEntry.clock_in_time.desc())
        )
        if location_id is not None:
            query = query.where(Shift.location_id == location_id)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).all()
        except SQLAlchemyError as exc:
            logger.error("Analytics query failed: %s", exc, exc_info=True)
            raise StoreError("analytics could not be read") from exc

        return [
            EntryRecord(
                entry_id=entry.id,
                worker_id=entry.worker_id,
                location_id=loc_id,
                shift_id=entry.shift_id,
                clock_in_time=ensure_utc(entry.clock_in_time),
                clock_out_time=(
                    ensure_utc(entry.clock_out_time) if entry.clock_out_time else None
                ),
                worker_name=name,
                worker_email=email,
                clock_in_latitude=entry.clock_in_latitude,
                clock_in_longitude=entry.clock_in_longitude,
                clock_out_latitude=entry.clock_out_latitude,
                clock_out_longitude=entry.clock_out_longitude,
                note=entry.note,
            )
            for entry, loc_id, name, email in rows
        ]

    async def report(self, window: TimeWindow, location_id: int | None = None) -> AnalyticsReport:
        records = await self.fetch_entries(window, location_id)
        days = daily_stats(records)
        report = AnalyticsReport(
            window=window,
            daily_stats=days,
            staff_hours_breakdown=staff_hours_breakdown(records),
            overall_stats=overall_stats(records, days),
        )
        logger.info(
            "Analytics for %s..%s (location %s): %d entries, %d days",
            window.start.isoformat(),
            window.end.isoformat(),
            location_id if location_id is not None else "all",
            len(records),
            len(days),
        )
        return report

    async def staff_entries(
        self, window: TimeWindow, location_id: int | None = None
    ) -> list[StaffTimeEntries]:
        return staff_time_entries(await self.fetch_entries(window, location_id))
