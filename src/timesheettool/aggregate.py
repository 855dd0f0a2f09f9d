#!/usr/bin/env python3
"""
Group records into rounded per-project totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .records import Record
from .timestamps import local_now, to_local

DEFAULT_ROUNDING = timedelta(minutes=15)


class Granularity(str, Enum):
    """Report grouping resolution."""

    AUTO = "auto"
    ALL = "all"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class SummaryRow:
    """
    Aggregated time for one project in one period.

    Attributes
    ----------
    period : str
        Period key (``2024-05-01``, ``2024-W18`` or ``2024-05``).
    project : str
        Project name.
    tasks : Tuple[str, ...]
        Distinct task labels, in order of first appearance.
    raw : timedelta
        Sum of recorded durations.
    rounded : timedelta
        Billable total; rounded up per project per day.
    """

    period: str
    project: str
    tasks: Tuple[str, ...]
    raw: timedelta
    rounded: timedelta


@dataclass(frozen=True)
class RecordListReport:
    records: Tuple[Record, ...]


@dataclass(frozen=True)
class SummaryReport:
    granularity: Granularity
    rows: Tuple[SummaryRow, ...]

    @property
    def total(self) -> timedelta:
        return sum((row.rounded for row in self.rows), timedelta(0))


Report = Union[RecordListReport, SummaryReport]


@dataclass(frozen=True)
class OvertimeRow:
    """
    Hours worked on one day against the expected working hours.

    Attributes
    ----------
    day : date
        Local calendar day.
    worked : timedelta
        Sum of the day's rounded project totals.
    balance : timedelta
        Running sum of ``worked`` minus the expected hours, up to this day.
    """

    day: date
    worked: timedelta
    balance: timedelta


def round_up(duration: timedelta, unit: timedelta = DEFAULT_ROUNDING) -> timedelta:
    """
    Round a duration up to the next multiple of ``unit``.

    Parameters
    ----------
    duration : timedelta
        Duration to round.
    unit : timedelta, optional
        Rounding unit (default: 15 minutes).

    Returns
    -------
    timedelta
        Rounded duration; exact multiples and zero are unchanged.

    Examples
    --------
    >>> round_up(timedelta(minutes=37)) == timedelta(minutes=45)
    True
    >>> round_up(timedelta(minutes=45)) == timedelta(minutes=45)
    True
    >>> round_up(timedelta(minutes=1)) == timedelta(minutes=15)
    True
    """
    if unit <= timedelta(0):
        raise ValueError("Rounding unit must be positive.")
    remainder = duration % unit
    if not remainder:
        return duration
    return duration + (unit - remainder)


def choose_granularity(since: datetime, until: datetime) -> Granularity:
    """
    Pick a granularity that suits the length of a report window.

    Examples
    --------
    >>> choose_granularity(datetime(2024, 4, 1), datetime(2024, 4, 6))
    <Granularity.ALL: 'all'>
    >>> choose_granularity(datetime(2024, 3, 1), datetime(2024, 4, 1))
    <Granularity.WEEKLY: 'weekly'>
    """
    span = until - since
    if span <= timedelta(days=6):
        return Granularity.ALL
    if span <= timedelta(weeks=4):
        return Granularity.DAILY
    if span <= timedelta(days=60):
        return Granularity.WEEKLY
    return Granularity.MONTHLY


def period_key(day: date, granularity: Granularity) -> str:
    """
    Return the grouping key of a day.

    Examples
    --------
    >>> period_key(date(2024, 5, 1), Granularity.DAILY)
    '2024-05-01'
    >>> period_key(date(2024, 5, 1), Granularity.WEEKLY)
    '2024-W18'
    >>> period_key(date(2024, 5, 1), Granularity.MONTHLY)
    '2024-05'
    """
    if granularity is Granularity.DAILY:
        return day.isoformat()
    if granularity is Granularity.WEEKLY:
        iso = day.isocalendar()
        return f"{iso.year}-W{iso.week:02d}"
    if granularity is Granularity.MONTHLY:
        return day.strftime("%Y-%m")
    raise ValueError(f"Unsupported granularity: {granularity.value}")


def _daily_totals(
    records: Iterable[Record],
    now: datetime,
    tz: Optional[tzinfo],
) -> Dict[Tuple[date, str], Tuple[timedelta, List[str]]]:
    # whole durations go to the local day the record started on
    totals: Dict[Tuple[date, str], Tuple[timedelta, List[str]]] = {}
    for record in sorted(records, key=lambda item: (item.started_at, item.id)):
        duration = record.duration(now)
        if not duration:
            continue
        key = (to_local(record.started_at, tz).date(), record.project)
        raw, tasks = totals.get(key, (timedelta(0), []))
        if record.task not in tasks:
            tasks.append(record.task)
        totals[key] = (raw + duration, tasks)
    return totals


def aggregate(
    records: Iterable[Record],
    granularity: Union[Granularity, str],
    *,
    now: Optional[datetime] = None,
    rounding: timedelta = DEFAULT_ROUNDING,
    tz: Optional[tzinfo] = None,
) -> Report:
    """
    Build a report from records.

    Parameters
    ----------
    records : Iterable[Record]
        Records to report on.
    granularity : Union[Granularity, str]
        ``all``, ``daily``, ``weekly`` or ``monthly``.
    now : Optional[datetime], optional
        Reference time for open records (default: now).
    rounding : timedelta, optional
        Rounding unit applied per project per day.
    tz : Optional[tzinfo], optional
        Timezone for calendar days (default: local time).

    Returns
    -------
    Report
        ``RecordListReport`` for ``all``, otherwise ``SummaryReport`` rows
        ordered by period, then project.
    """
    granularity = Granularity(granularity)
    if granularity is Granularity.AUTO:
        raise ValueError("Resolve 'auto' with choose_granularity before aggregating.")
    if rounding <= timedelta(0):
        raise ValueError("Rounding unit must be positive.")
    now = now or local_now()
    if granularity is Granularity.ALL:
        ordered = sorted(records, key=lambda item: (item.started_at, item.id))
        return RecordListReport(records=tuple(ordered))

    grouped: Dict[Tuple[str, str], Tuple[timedelta, timedelta, List[str]]] = {}
    for (day, project), (raw, tasks) in sorted(_daily_totals(records, now, tz).items()):
        key = (period_key(day, granularity), project)
        period_raw, period_rounded, period_tasks = grouped.get(
            key, (timedelta(0), timedelta(0), [])
        )
        period_tasks.extend(task for task in tasks if task not in period_tasks)
        grouped[key] = (
            period_raw + raw,
            period_rounded + round_up(raw, rounding),
            period_tasks,
        )

    rows = tuple(
        SummaryRow(
            period=period,
            project=project,
            tasks=tuple(tasks),
            raw=raw,
            rounded=rounded,
        )
        for (period, project), (raw, rounded, tasks) in sorted(grouped.items())
    )
    return SummaryReport(granularity=granularity, rows=rows)


def overtime(
    records: Iterable[Record],
    hours_per_day: float = 8.0,
    *,
    now: Optional[datetime] = None,
    rounding: timedelta = DEFAULT_ROUNDING,
    tz: Optional[tzinfo] = None,
) -> List[OvertimeRow]:
    """
    Compare rounded daily totals with a working day of ``hours_per_day``.

    Parameters
    ----------
    records : Iterable[Record]
        Records to evaluate.
    hours_per_day : float, optional
        Expected hours per worked day (default: 8).
    now : Optional[datetime], optional
        Reference time for open records.
    rounding : timedelta, optional
        Rounding unit applied per project per day.
    tz : Optional[tzinfo], optional
        Timezone for calendar days.

    Returns
    -------
    List[OvertimeRow]
        One row per day with recorded time, in date order.
    """
    now = now or local_now()
    expected = timedelta(hours=hours_per_day)
    worked_by_day: Dict[date, timedelta] = {}
    for (day, _project), (raw, _tasks) in _daily_totals(records, now, tz).items():
        worked_by_day[day] = worked_by_day.get(day, timedelta(0)) + round_up(raw, rounding)

    rows: List[OvertimeRow] = []
    balance = timedelta(0)
    for day in sorted(worked_by_day):
        worked = worked_by_day[day]
        balance += worked - expected
        rows.append(OvertimeRow(day=day, worked=worked, balance=balance))
    return rows
