"""Tests for analytics aggregation: pure functions and the store-backed aggregator."""

from datetime import date, datetime, timedelta, timezone

import pytest

from carelog.models.shift import Shift, TimeEntry
from carelog.models.user import Role
from carelog.services.analytics import (AnalyticsAggregator, EntryRecord,
                                        TimeWindow, daily_stats, overall_stats,
                                        parse_window, staff_hours_breakdown,
                                        staff_time_entries)


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


_next_id = iter(range(1, 10_000))


def _rec(worker_id, clock_in, clock_out=None, name=None) -> EntryRecord:
    n = next(_next_id)
    return EntryRecord(
        entry_id=n,
        worker_id=worker_id,
        location_id=1,
        shift_id=n,
        clock_in_time=clock_in,
        clock_out_time=clock_out,
        worker_name=name,
    )


# ── Pure functions ──────────────────────────────────────────────────
def test_entry_duration_in_hours():
    rec = _rec(1, _at(1, 8), _at(1, 10, 15))
    assert rec.hours == 2.25


def test_open_entry_has_no_duration():
    assert _rec(1, _at(1, 8)).hours is None


def test_two_workers_same_day_bucket():
    days = daily_stats([
        _rec(1, _at(1, 8), _at(1, 12)),
        _rec(2, _at(1, 9), _at(1, 15)),
    ])

    assert len(days) == 1
    day = days[0]
    assert day.date == date(2024, 1, 1)
    assert day.total_hours == 10
    assert day.total_shifts == 2
    assert day.unique_staff_count == 2
    assert day.avg_hours_per_staff == 5.0
    assert day.avg_hours_per_shift == 5.0


def test_buckets_sorted_ascending_by_clock_in_date():
    days = daily_stats([
        _rec(1, _at(3, 8), _at(3, 9)),
        _rec(1, _at(1, 8), _at(1, 9)),
        _rec(2, _at(2, 8), _at(2, 9)),
    ])
    assert [d.date.day for d in days] == [1, 2, 3]


def test_overnight_entry_belongs_to_clock_in_date():
    days = daily_stats([_rec(1, _at(1, 22), _at(2, 6))])
    assert [d.date for d in days] == [date(2024, 1, 1)]
    assert days[0].total_hours == 8


def test_open_entries_count_as_shifts_but_add_no_hours():
    days = daily_stats([
        _rec(1, _at(1, 8), _at(1, 11)),
        _rec(2, _at(1, 9)),
    ])
    day = days[0]
    assert day.total_hours == 3
    assert day.total_shifts == 2
    assert day.unique_staff_count == 2
    assert day.avg_hours_per_shift == 1.5


def test_bucket_with_only_open_entries_is_kept():
    days = daily_stats([_rec(1, _at(1, 8))])
    assert days[0].total_hours == 0
    assert days[0].avg_hours_per_staff == 0
    assert days[0].total_shifts == 1


def test_same_worker_twice_a_day_counts_once_per_bucket():
    days = daily_stats([
        _rec(1, _at(1, 8), _at(1, 10)),
        _rec(1, _at(1, 14), _at(1, 18)),
    ])
    assert days[0].unique_staff_count == 1
    assert days[0].total_shifts == 2
    assert days[0].avg_hours_per_staff == 6


def test_staff_breakdown_sorted_descending_and_skips_open():
    staff = staff_hours_breakdown([
        _rec(1, _at(1, 8), _at(1, 10), name="Ann"),
        _rec(2, _at(1, 8), _at(1, 14), name="Bob"),
        _rec(1, _at(2, 8), _at(2, 9), name="Ann"),
        _rec(3, _at(2, 8), name="Cy"),
    ])
    assert [(s.worker_id, s.total_hours) for s in staff] == [(2, 6), (1, 3)]
    assert staff[0].name == "Bob"


def test_overall_counts_worker_on_two_days_once():
    records = [
        _rec(1, _at(1, 8), _at(1, 12)),  # Monday
        _rec(1, _at(3, 8), _at(3, 10)),  # Wednesday
        _rec(2, _at(3, 9), _at(3, 12)),
    ]
    days = daily_stats(records)
    overall = overall_stats(records, days)

    assert overall.total_unique_staff_last_week == 2
    assert overall.total_hours_last_week == 9
    assert overall.total_shifts_last_week == 3
    assert overall.avg_hours_per_day == 4.5
    assert overall.avg_people_per_day == 1.5


def test_overall_keeps_full_precision_until_output():
    # 20 minutes each: 1/3 h; rounding per bucket first would drift
    records = [_rec(1, _at(d, 8), _at(d, 8, 20)) for d in (1, 2, 3)]
    days = daily_stats(records)
    overall = overall_stats(records, days)
    assert overall.total_hours_last_week == pytest.approx(1.0)
    assert overall.avg_hours_per_day == pytest.approx(1 / 3)


def test_overall_on_empty_window():
    overall = overall_stats([], [])
    assert overall.total_hours_last_week == 0
    assert overall.total_unique_staff_last_week == 0
    assert overall.avg_hours_per_day == 0
    assert overall.avg_people_per_day == 0


def test_staff_time_entries_grouped_and_flagged():
    grouped = staff_time_entries([
        _rec(2, _at(1, 8), _at(1, 10), name="zed"),
        _rec(1, _at(1, 8), _at(1, 9), name="Amy"),
        _rec(1, _at(2, 8), name="Amy"),
    ])
    assert [g.name for g in grouped] == ["Amy", "zed"]
    amy = grouped[0]
    assert amy.is_currently_clocked_in is True
    assert amy.total_hours == 1
    assert amy.entries[0].clock_in_time == _at(2, 8)
    assert grouped[1].is_currently_clocked_in is False


@pytest.mark.parametrize("text,days", [("7d", 7), ("1d", 1), ("30D", 30), (" 14d ", 14)])
def test_parse_window(text, days):
    now = _at(8, 12)
    window = parse_window(text, now)
    assert window.end == now
    assert window.end - window.start == timedelta(days=days)


@pytest.mark.parametrize("text", ["", "7", "d", "0d", "91d", "7w", "-3d"])
def test_parse_window_rejects(text):
    with pytest.raises(ValueError):
        parse_window(text, _at(8, 12), max_days=90)


# ── Store-backed aggregator ─────────────────────────────────────────
async def _seed_entry(session_factory, worker, location, clock_in, clock_out=None):
    async with session_factory() as session:
        shift = Shift(
            worker_id=worker.id,
            location_id=location.id,
            start_time=clock_in,
            end_time=clock_out,
        )
        session.add(shift)
        await session.flush()
        session.add(
            TimeEntry(
                shift_id=shift.id,
                worker_id=worker.id,
                clock_in_time=clock_in,
                clock_out_time=clock_out,
                clock_in_latitude=location.latitude,
                clock_in_longitude=location.longitude,
            )
        )
        await session.commit()


WEEK = TimeWindow(start=_at(1, 0), end=_at(8, 0))


@pytest.mark.asyncio
async def test_aggregator_report_over_week(session_factory, make_user, location):
    a = await make_user("a@care.test", Role.CARE_WORKER, location.id, full_name="Ann")
    b = await make_user("b@care.test", Role.CARE_WORKER, location.id, full_name="Ben")
    await _seed_entry(session_factory, a, location, _at(1, 8), _at(1, 12))
    await _seed_entry(session_factory, b, location, _at(1, 9), _at(1, 15))
    await _seed_entry(session_factory, a, location, _at(3, 8), _at(3, 10))

    report = await AnalyticsAggregator(session_factory).report(WEEK)

    assert [(d.date.day, d.total_hours, d.unique_staff_count) for d in report.daily_stats] == [
        (1, 10, 2),
        (3, 2, 1),
    ]
    assert [(s.name, s.total_hours) for s in report.staff_hours_breakdown] == [("Ann", 6), ("Ben", 6)]
    assert report.overall_stats.total_unique_staff_last_week == 2
    assert report.overall_stats.total_shifts_last_week == 3


@pytest.mark.asyncio
async def test_aggregator_window_is_half_open(session_factory, care_worker, location):
    await _seed_entry(session_factory, care_worker, location, _at(1, 0), _at(1, 1))
    await _seed_entry(session_factory, care_worker, location, _at(8, 0), _at(8, 1))

    records = await AnalyticsAggregator(session_factory).fetch_entries(WEEK)
    assert [r.clock_in_time for r in records] == [_at(1, 0)]


@pytest.mark.asyncio
async def test_aggregator_location_filter(session_factory, make_user, location, other_location):
    here = await make_user("here@care.test", Role.CARE_WORKER, location.id)
    there = await make_user("there@care.test", Role.CARE_WORKER, other_location.id)
    await _seed_entry(session_factory, here, location, _at(2, 8), _at(2, 9))
    await _seed_entry(session_factory, there, other_location, _at(2, 8), _at(2, 12))

    aggregator = AnalyticsAggregator(session_factory)
    only_here = await aggregator.report(WEEK, location_id=location.id)
    everywhere = await aggregator.report(WEEK)

    assert only_here.overall_stats.total_hours_last_week == 1
    assert everywhere.overall_stats.total_hours_last_week == 5


@pytest.mark.asyncio
async def test_aggregator_only_counts_care_workers(session_factory, make_user, location):
    worker = await make_user("cw@care.test", Role.CARE_WORKER, location.id)
    promoted = await make_user("mgr@care.test", Role.MANAGER, location.id)
    await _seed_entry(session_factory, worker, location, _at(2, 8), _at(2, 9))
    await _seed_entry(session_factory, promoted, location, _at(2, 8), _at(2, 18))

    report = await AnalyticsAggregator(session_factory).report(WEEK)
    assert report.overall_stats.total_unique_staff_last_week == 1
    assert report.overall_stats.total_hours_last_week == 1
