"""Pydantic schemas for analytics responses. Values are rounded here, once."""

from __future__ import annotations

from datetime import datetime

from carelog.schemas.ledger import CamelModel, TimeEntryRead
from carelog.services.analytics import (AnalyticsReport, DailyStat,
                                        EntryRecord, OverallStats, StaffHours,
                                        StaffTimeEntries)


def _r(value: float) -> float:
    return round(value, 2)


class DailyStatRead(CamelModel):
    date: str  # YYYY-MM-DD (UTC)
    total_hours: float
    total_shifts: int
    unique_staff_count: int
    avg_hours_per_shift: float
    avg_hours_per_staff: float

    @classmethod
    def from_stat(cls, stat: DailyStat) -> "DailyStatRead":
        return cls(
            date=stat.date.isoformat(),
            total_hours=_r(stat.total_hours),
            total_shifts=stat.total_shifts,
            unique_staff_count=stat.unique_staff_count,
            avg_hours_per_shift=_r(stat.avg_hours_per_shift),
            avg_hours_per_staff=_r(stat.avg_hours_per_staff),
        )


class StaffHoursRead(CamelModel):
    id: int
    name: str | None
    email: str | None
    total_hours: float

    @classmethod
    def from_staff(cls, staff: StaffHours) -> "StaffHoursRead":
        return cls(
            id=staff.worker_id,
            name=staff.name,
            email=staff.email,
            total_hours=_r(staff.total_hours),
        )


class OverallStatsRead(CamelModel):
    avg_hours_per_day: float
    avg_people_per_day: float
    total_hours_last_week: float
    total_shifts_last_week: int
    total_unique_staff_last_week: int

    @classmethod
    def from_stats(cls, stats: OverallStats) -> "OverallStatsRead":
        return cls(
            avg_hours_per_day=_r(stats.avg_hours_per_day),
            avg_people_per_day=_r(stats.avg_people_per_day),
            total_hours_last_week=_r(stats.total_hours_last_week),
            total_shifts_last_week=stats.total_shifts_last_week,
            total_unique_staff_last_week=stats.total_unique_staff_last_week,
        )


class DailyStatsResponse(CamelModel):
    window_start: datetime
    window_end: datetime
    location_id: int | None = None
    daily_stats: list[DailyStatRead]
    staff_hours_breakdown: list[StaffHoursRead]
    overall_stats: OverallStatsRead

    @classmethod
    def from_report(cls, report: AnalyticsReport, location_id: int | None) -> "DailyStatsResponse":
        return cls(
            window_start=report.window.start,
            window_end=report.window.end,
            location_id=location_id,
            daily_stats=[DailyStatRead.from_stat(d) for d in report.daily_stats],
            staff_hours_breakdown=[
                StaffHoursRead.from_staff(s) for s in report.staff_hours_breakdown
            ],
            overall_stats=OverallStatsRead.from_stats(report.overall_stats),
        )


# ── Staff time entries (manager view) ──────────────────────────────
class StaffEntryRead(TimeEntryRead):
    location_id: int


class StaffTimeEntriesRead(CamelModel):
    id: int
    name: str | None
    email: str | None
    total_hours: float
    is_currently_clocked_in: bool
    time_entries: list[StaffEntryRead]

    @classmethod
    def from_staff(cls, staff: StaffTimeEntries) -> "StaffTimeEntriesRead":
        return cls(
            id=staff.worker_id,
            name=staff.name,
            email=staff.email,
            total_hours=_r(staff.total_hours),
            is_currently_clocked_in=staff.is_currently_clocked_in,
            time_entries=[_entry(rec) for rec in staff.entries],
        )


def _entry(rec: EntryRecord) -> StaffEntryRead:
    return StaffEntryRead(
        id=rec.entry_id,
        shift_id=rec.shift_id,
        worker_id=rec.worker_id,
        location_id=rec.location_id,
        clock_in_time=rec.clock_in_time,
        clock_out_time=rec.clock_out_time,
        clock_in_latitude=rec.clock_in_latitude,
        clock_in_longitude=rec.clock_in_longitude,
        clock_out_latitude=rec.clock_out_latitude,
        clock_out_longitude=rec.clock_out_longitude,
        note=rec.note,
    )


class StaffTimeEntriesResponse(CamelModel):
    window_start: datetime
    window_end: datetime
    staff_time_entries: list[StaffTimeEntriesRead]


class HealthResponse(CamelModel):
    db: bool
