#!/usr/bin/env python3
"""
Command implementations behind the tst CLI.

Each ``run_*`` function resolves user strings, calls into the record
lifecycle or aggregation code, prints the outcome and returns an exit code.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .aggregate import (
    Granularity,
    RecordListReport,
    Report,
    SummaryReport,
    aggregate,
    choose_granularity,
    overtime,
)
from .config import Config, load_config
from .errors import TimesheetError
from .lifecycle import RecordManager
from .records import Record, RecordPatch, SQLiteRecordStore
from .timestamps import (
    local_now,
    parse_duration,
    parse_relative_date,
    parse_timestamp,
    to_local,
)


def format_duration(duration: timedelta) -> str:
    """
    Format a duration as days, hours, minutes and seconds.

    Examples
    --------
    >>> format_duration(timedelta(hours=1, minutes=11, seconds=11))
    '1h 11m 11s'
    >>> format_duration(timedelta(minutes=14, seconds=4))
    '14m 4s'
    >>> format_duration(timedelta(days=1, minutes=5))
    '1d 0h 5m 0s'
    """
    total = int(duration.total_seconds())
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    parts: List[str] = []
    for value, unit in ((days, "d"), (hours, "h"), (minutes, "m"), (seconds, "s")):
        if value or parts:
            parts.append(f"{value}{unit}")
    return " ".join(parts) if parts else "0s"


def format_hours(duration: timedelta) -> str:
    """
    Format a duration as hours and minutes.

    Examples
    --------
    >>> format_hours(timedelta(hours=3, minutes=50))
    '3h 50m'
    >>> format_hours(timedelta(hours=4))
    '4h 00m'
    """
    minutes = int(duration.total_seconds()) // 60
    return f"{minutes // 60}h {minutes % 60:02d}m"


def _format_date(value: datetime) -> str:
    return value.strftime("%a")[:2] + value.strftime(" %d %b '%y")


def _format_times(record: Record) -> str:
    started = to_local(record.started_at)
    text = started.strftime("%H:%M:%S") + "-"
    if record.ended_at is None:
        return text + " " * 10
    ended = to_local(record.ended_at)
    text += ended.strftime("%H:%M:%S")
    day_gap = (ended.date() - started.date()).days
    return text + (f"+{day_gap}" if day_gap > 0 else "  ")


def format_record(record: Record, now: datetime) -> str:
    return (
        f"{_format_times(record)} {format_duration(record.duration(now)):>14}"
        f"  ({record.id:>5})  {record.project:10}  {record.task}"
    )


def render_records(records: Iterable[Record], now: datetime) -> List[str]:
    """
    Render records one per line, showing each date once.
    """
    lines: List[str] = []
    last_day = None
    for record in records:
        started = to_local(record.started_at)
        if started.date() != last_day:
            last_day = started.date()
            prefix = _format_date(started)
        else:
            prefix = " " * 13
        lines.append(f"{prefix}  {format_record(record, now)}")
    return lines


def render_summary(report: SummaryReport) -> List[str]:
    lines: List[str] = []
    last_period = None
    for row in report.rows:
        period = row.period if row.period != last_period else ""
        last_period = row.period
        lines.append(
            f"{period:10}  {row.project:12}  {format_hours(row.rounded):>8}"
            f"  ({format_hours(row.raw)})  {', '.join(row.tasks)}"
        )
    lines.append(f"{'total':10}  {'':12}  {format_hours(report.total):>8}")
    return lines


def render_report(report: Report, now: datetime) -> List[str]:
    if isinstance(report, RecordListReport):
        return render_records(report.records, now)
    return render_summary(report)


def _fail(command: str, exc: Exception) -> int:
    print(f"tst: {command} failed: {exc}", file=sys.stderr)
    return 1


def run_go(
    project: str,
    task: str,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    allow_overlap: bool = False,
    config: Optional[Config] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Record work on a task, open unless an end time is given.
    """
    config = config or load_config()
    now = now or local_now()
    try:
        start_dt = parse_timestamp(start, now) if start else None
        end_dt = parse_timestamp(end, now) if end else None
        with SQLiteRecordStore(config.database_path) as store:
            result = RecordManager(store, clock=lambda: now).create(
                project,
                task,
                start_dt,
                end_dt,
                allow_overlap=allow_overlap,
            )
    except (TimesheetError, ValueError) as exc:
        return _fail("go", exc)
    if result.closed is not None:
        print(f"Stopped {format_record(result.closed, now)}")
    print(f"Started {format_record(result.record, now)}")
    if result.resumed is not None:
        print(f"Resumed {format_record(result.resumed, now)}")
    return 0


def run_stop(
    *,
    end: Optional[str] = None,
    config: Optional[Config] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    End the open record.
    """
    config = config or load_config()
    now = now or local_now()
    try:
        end_dt = parse_timestamp(end, now) if end else None
        with SQLiteRecordStore(config.database_path) as store:
            record = RecordManager(store, clock=lambda: now).close(end_dt)
    except (TimesheetError, ValueError) as exc:
        return _fail("stop", exc)
    print(f"Stopped {format_record(record, now)}")
    return 0


def run_edit(
    record_id: int,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    project: Optional[str] = None,
    task: Optional[str] = None,
    reopen: bool = False,
    config: Optional[Config] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Change fields of an existing record.
    """
    if end and reopen:
        print("tst: edit accepts either --end or --reopen, not both.", file=sys.stderr)
        return 1
    config = config or load_config()
    now = now or local_now()
    try:
        patch = RecordPatch(
            start=parse_timestamp(start, now) if start else None,
            end=parse_timestamp(end, now) if end else None,
            project=project,
            task=task,
            reopen=reopen,
        )
        if patch.is_empty():
            print(
                "tst: edit requires --start, --end, --project, --task, or --reopen.",
                file=sys.stderr,
            )
            return 1
        with SQLiteRecordStore(config.database_path) as store:
            record = RecordManager(store, clock=lambda: now).edit(record_id, patch)
    except (TimesheetError, ValueError) as exc:
        return _fail("edit", exc)
    print(f"Updated {format_record(record, now)}")
    return 0


def run_ls(
    *,
    since: str = "1 week",
    until: str = "now",
    granularity: str = "auto",
    rounding: Optional[str] = None,
    config: Optional[Config] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    List records or aggregated totals for a window.
    """
    config = config or load_config()
    now = now or local_now()
    try:
        today = to_local(now).date()
        since_dt = parse_relative_date(since, today)
        until_dt = parse_relative_date(until, today)
        if until_dt <= since_dt:
            raise ValueError(f"'{until}' is not after '{since}'")
        selected = Granularity(granularity)
        if selected is Granularity.AUTO:
            selected = choose_granularity(since_dt, until_dt)
        unit = parse_duration(rounding) if rounding else config.rounding
        with SQLiteRecordStore(config.database_path) as store:
            records = store.list_records(since_dt, until_dt)
        report = aggregate(records, selected, now=now, rounding=unit)
    except (TimesheetError, ValueError) as exc:
        return _fail("ls", exc)
    lines = render_report(report, now) if records else []
    if not lines:
        print("No records found.")
        return 0
    for line in lines:
        print(line)
    return 0


def run_overtime(
    *,
    hours: float = 8.0,
    since: str = "1 week",
    config: Optional[Config] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Show hours worked per day and the running balance against ``hours``.
    """
    config = config or load_config()
    now = now or local_now()
    try:
        since_dt = parse_relative_date(since, to_local(now).date())
        with SQLiteRecordStore(config.database_path) as store:
            records = store.list_records(since_dt)
        rows = overtime(records, hours, now=now, rounding=config.rounding)
    except (TimesheetError, ValueError) as exc:
        return _fail("overtime", exc)
    if not rows:
        print("No records found.")
        return 0
    for row in rows:
        worked = row.worked.total_seconds() / 3600
        balance = row.balance.total_seconds() / 3600
        print(f"Hours worked for day {row.day}: {worked:.2f}   (balance: {balance:+.2f})")
    return 0
