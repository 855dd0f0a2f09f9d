"""
Tests for report aggregation and rounding.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

import timesheettool.aggregate as aggregate_module
from timesheettool.aggregate import (
    Granularity,
    RecordListReport,
    SummaryReport,
    aggregate,
    choose_granularity,
    overtime,
    round_up,
)
from timesheettool.records import Record

UTC = timezone.utc
NOW = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


def make_record(record_id, project, task, start, end=None) -> Record:
    return Record(id=record_id, project=project, task=task, started_at=start, ended_at=end)


@pytest.mark.parametrize(
    ("minutes", "expected"),
    [
        (0, 0),
        (1, 15),
        (14, 15),
        (15, 15),
        (37, 45),
        (45, 45),
        (46, 60),
        (230, 240),
    ],
)
@pytest.mark.unit
def test_round_up_quarter_hours(minutes, expected):
    """
    Ensure durations round up to the next quarter hour.

    Returns
    -------
    None
        This test asserts ceiling rounding.
    """
    assert round_up(timedelta(minutes=minutes)) == timedelta(minutes=expected)


@pytest.mark.unit
def test_round_up_custom_unit_and_seconds():
    """
    Ensure sub-minute remainders and other units round up too.

    Returns
    -------
    None
        This test asserts rounding with other units.
    """
    assert round_up(timedelta(seconds=1), timedelta(minutes=30)) == timedelta(minutes=30)
    assert round_up(timedelta(minutes=60, seconds=1), timedelta(hours=1)) == timedelta(hours=2)
    with pytest.raises(ValueError):
        round_up(timedelta(minutes=5), timedelta(0))


@pytest.mark.unit
def test_aggregate_all_orders_records_unmodified():
    """
    Ensure the all granularity returns the records sorted by start.

    Returns
    -------
    None
        This test asserts the raw listing.
    """
    late = make_record(1, "acme", "b", utc(2024, 5, 2, 9), utc(2024, 5, 2, 9, 7))
    early = make_record(2, "acme", "a", utc(2024, 5, 1, 9), utc(2024, 5, 1, 9, 7))

    report = aggregate([late, early], "all", now=NOW, tz=UTC)

    assert isinstance(report, RecordListReport)
    assert report.records == (early, late)


@pytest.mark.unit
def test_aggregate_daily_scenario():
    """
    Ensure 3h and 50m on one project total 3h50m, rounded to 4h.

    Returns
    -------
    None
        This test asserts the daily summary.
    """
    records = [
        make_record(1, "acme", "design", utc(2024, 5, 1, 9), utc(2024, 5, 1, 12)),
        make_record(2, "acme", "design", utc(2024, 5, 1, 13), utc(2024, 5, 1, 13, 50)),
    ]

    report = aggregate(records, Granularity.DAILY, now=NOW, tz=UTC)

    assert isinstance(report, SummaryReport)
    assert len(report.rows) == 1
    row = report.rows[0]
    assert (row.period, row.project, row.tasks) == ("2024-05-01", "acme", ("design",))
    assert row.raw == timedelta(hours=3, minutes=50)
    assert row.rounded == timedelta(hours=4)


@pytest.mark.parametrize(
    ("parts", "expected"),
    [
        ([37], 45),
        ([45], 45),
        ([1], 15),
        ([20, 17], 45),
        ([15, 15, 15], 45),
    ],
)
@pytest.mark.unit
def test_aggregate_daily_rounds_project_totals(parts, expected):
    """
    Ensure rounding applies to the project's day total, not each record.

    Returns
    -------
    None
        This test asserts rounding of summed durations.
    """
    records = []
    cursor = utc(2024, 5, 1, 8)
    for index, minutes in enumerate(parts, start=1):
        end = cursor + timedelta(minutes=minutes)
        records.append(make_record(index, "acme", "work", cursor, end))
        cursor = end + timedelta(minutes=5)

    report = aggregate(records, "daily", now=NOW, tz=UTC)

    assert report.rows[0].rounded == timedelta(minutes=expected)


@pytest.mark.unit
def test_aggregate_daily_orders_days_then_projects():
    """
    Ensure rows are ordered by day, then project name.

    Returns
    -------
    None
        This test asserts summary ordering.
    """
    records = [
        make_record(1, "zeta", "z", utc(2024, 5, 2, 9), utc(2024, 5, 2, 10)),
        make_record(2, "beta", "b2", utc(2024, 5, 1, 11), utc(2024, 5, 1, 12)),
        make_record(3, "alpha", "a", utc(2024, 5, 2, 8), utc(2024, 5, 2, 9)),
        make_record(4, "beta", "b1", utc(2024, 5, 1, 8), utc(2024, 5, 1, 9)),
    ]

    report = aggregate(records, "daily", now=NOW, tz=UTC)

    assert [(row.period, row.project) for row in report.rows] == [
        ("2024-05-01", "beta"),
        ("2024-05-02", "alpha"),
        ("2024-05-02", "zeta"),
    ]
    assert report.rows[0].tasks == ("b1", "b2")
    assert report.total == timedelta(hours=4)


@pytest.mark.unit
def test_aggregate_daily_counts_open_record_until_now():
    """
    Ensure an open record contributes its elapsed time.

    Returns
    -------
    None
        This test asserts open record durations.
    """
    records = [make_record(1, "acme", "design", utc(2024, 5, 10, 11, 20))]

    report = aggregate(records, "daily", now=NOW, tz=UTC)

    assert report.rows[0].raw == timedelta(minutes=40)
    assert report.rows[0].rounded == timedelta(minutes=45)


@pytest.mark.unit
def test_aggregate_daily_attributes_midnight_span_to_start_day():
    """
    Ensure a record crossing midnight counts fully on its start day.

    Returns
    -------
    None
        This test asserts midnight handling.
    """
    records = [make_record(1, "acme", "deploy", utc(2024, 5, 1, 23), utc(2024, 5, 2, 1, 10))]

    report = aggregate(records, "daily", now=NOW, tz=UTC)

    assert [(row.period, row.raw) for row in report.rows] == [
        ("2024-05-01", timedelta(hours=2, minutes=10))
    ]


@pytest.mark.unit
def test_aggregate_daily_uses_local_calendar_day():
    """
    Ensure grouping follows the requested timezone's calendar.

    Returns
    -------
    None
        This test asserts local day grouping.
    """
    plus_three = timezone(timedelta(hours=3))
    records = [make_record(1, "acme", "late", utc(2024, 5, 1, 22), utc(2024, 5, 1, 23))]

    report = aggregate(records, "daily", now=NOW, tz=plus_three)

    assert report.rows[0].period == "2024-05-02"


@pytest.mark.unit
def test_aggregate_daily_applies_daylight_saving_per_record(local_timezone):
    """
    Ensure a summer record is grouped by its own local date in winter.

    Returns
    -------
    None
        This test asserts local day grouping across clock changes.
    """
    local_timezone("CET-1CEST,M3.5.0,M10.5.0/3")
    winter_now = datetime(2024, 1, 15, 12, 0).astimezone()
    start = datetime(2024, 7, 1, 0, 30).astimezone()
    records = [make_record(1, "acme", "night", start, start + timedelta(hours=1))]

    report = aggregate(records, "daily", now=winter_now)
    rows = overtime(records, 8.0, now=winter_now)

    assert report.rows[0].period == "2024-07-01"
    assert rows[0].day == date(2024, 7, 1)


@pytest.mark.unit
def test_aggregate_weekly_sums_daily_rounded_totals():
    """
    Ensure weekly rows add up per-day rounded totals.

    Returns
    -------
    None
        This test asserts weekly aggregation.
    """
    records = [
        make_record(1, "acme", "a", utc(2024, 4, 29, 9), utc(2024, 4, 29, 9, 10)),
        make_record(2, "acme", "b", utc(2024, 4, 30, 9), utc(2024, 4, 30, 9, 10)),
        make_record(3, "acme", "a", utc(2024, 5, 6, 9), utc(2024, 5, 6, 10)),
    ]

    report = aggregate(records, "weekly", now=NOW, tz=UTC)

    assert [(row.period, row.raw, row.rounded) for row in report.rows] == [
        ("2024-W18", timedelta(minutes=20), timedelta(minutes=30)),
        ("2024-W19", timedelta(hours=1), timedelta(hours=1)),
    ]
    assert report.rows[0].tasks == ("a", "b")


@pytest.mark.unit
def test_aggregate_monthly_groups_by_month():
    """
    Ensure monthly rows group by calendar month.

    Returns
    -------
    None
        This test asserts monthly aggregation.
    """
    records = [
        make_record(1, "acme", "a", utc(2024, 4, 30, 9), utc(2024, 4, 30, 10)),
        make_record(2, "acme", "a", utc(2024, 5, 1, 9), utc(2024, 5, 1, 10)),
        make_record(3, "globex", "g", utc(2024, 5, 2, 9), utc(2024, 5, 2, 9, 1)),
    ]

    report = aggregate(records, "monthly", now=NOW, tz=UTC)

    assert [(row.period, row.project, row.rounded) for row in report.rows] == [
        ("2024-04", "acme", timedelta(hours=1)),
        ("2024-05", "acme", timedelta(hours=1)),
        ("2024-05", "globex", timedelta(minutes=15)),
    ]


@pytest.mark.unit
def test_aggregate_rejects_auto_and_unknown():
    """
    Ensure unresolved or unknown granularities raise ValueError.

    Returns
    -------
    None
        This test asserts granularity validation.
    """
    with pytest.raises(ValueError):
        aggregate([], "auto", now=NOW)
    with pytest.raises(ValueError):
        aggregate([], "hourly", now=NOW)


@pytest.mark.parametrize(
    ("days", "expected"),
    [
        (1, Granularity.ALL),
        (6, Granularity.ALL),
        (7, Granularity.DAILY),
        (28, Granularity.DAILY),
        (45, Granularity.WEEKLY),
        (90, Granularity.MONTHLY),
    ],
)
@pytest.mark.unit
def test_choose_granularity(days, expected):
    """
    Ensure automatic granularity follows the window length.

    Returns
    -------
    None
        This test asserts automatic granularity selection.
    """
    since = utc(2024, 1, 1)
    assert choose_granularity(since, since + timedelta(days=days)) is expected


@pytest.mark.unit
def test_overtime_running_balance():
    """
    Ensure overtime sums rounded project totals per day with a running balance.

    Returns
    -------
    None
        This test asserts overtime reporting.
    """
    records = [
        make_record(1, "acme", "a", utc(2024, 5, 1, 8), utc(2024, 5, 1, 16, 10)),
        make_record(2, "globex", "g", utc(2024, 5, 1, 16, 10), utc(2024, 5, 1, 16, 20)),
        make_record(3, "acme", "a", utc(2024, 5, 2, 9), utc(2024, 5, 2, 16)),
    ]

    rows = overtime(records, 8.0, now=NOW, tz=UTC)

    assert [row.day for row in rows] == [date(2024, 5, 1), date(2024, 5, 2)]
    assert rows[0].worked == timedelta(hours=8, minutes=30)
    assert rows[0].balance == timedelta(minutes=30)
    assert rows[1].worked == timedelta(hours=7)
    assert rows[1].balance == timedelta(minutes=-30)


@pytest.mark.unit
def test_aggregate_doctest_examples():
    """
    Run doctest examples embedded in the aggregation helpers.

    Returns
    -------
    None
        This test asserts doctest coverage for aggregation helpers.
    """
    import doctest

    results = doctest.testmod(aggregate_module)
    assert results.failed == 0
