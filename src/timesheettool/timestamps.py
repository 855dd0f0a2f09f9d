#!/usr/bin/env python3
"""
Resolve user-supplied time strings into absolute instants.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

from .errors import InvalidTimestamp

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_TIMESTAMP_PATTERN = re.compile(
    r"""
    ^
    (?:
        (?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})\s*T?\s*
      |
        (?P<relative>yesterday|today|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\s*
    )?
    (?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?
    $
    """,
    re.VERBOSE | re.IGNORECASE,
)

_RELATIVE_PATTERN = re.compile(
    r"""
    ^
    (?P<count>\d+)\s*
    (?:
        (?P<days>d)(?:ay|ays)?
      | (?P<weeks>w)(?:k|ks|eek|eeks)?
      | (?P<months>m)(?:o|os|onth|onths)?
      | (?P<years>y)(?:r|rs|ear|ears)?
    )
    $
    """,
    re.VERBOSE | re.IGNORECASE,
)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def local_now() -> datetime:
    """
    Return the current local time, truncated to whole seconds.
    """
    return datetime.now().astimezone().replace(microsecond=0)


def localize(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Attach a timezone to a wall-clock time.

    Parameters
    ----------
    value : datetime
        Naive wall-clock time.
    tz : Optional[tzinfo], optional
        Timezone to attach (default: the system's local rules for the date
        of ``value``, so daylight saving is applied per date).

    Returns
    -------
    datetime
        Aware datetime. A wall-clock time that occurs twice resolves to the
        later occurrence.
    """
    if tz is None:
        return value.replace(fold=1).astimezone()
    return value.replace(tzinfo=tz, fold=1)


def to_local(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Express an instant as local wall-clock time.

    Parameters
    ----------
    value : datetime
        Instant to convert. Naive values are taken as local already.
    tz : Optional[tzinfo], optional
        Target timezone (default: the system's local rules).

    Returns
    -------
    datetime
        Converted datetime.
    """
    if value.tzinfo is None:
        return value if tz is None else value.replace(tzinfo=tz)
    if tz is None:
        return value.astimezone()
    return value.astimezone(tz)


def _resolve_day(relative: Optional[str], today: date, original: str) -> date:
    if not relative:
        return today
    name = relative.lower()
    if name == "today":
        return today
    if name == "yesterday":
        return today - timedelta(days=1)
    offset = (today.weekday() - WEEKDAYS.index(name)) % 7
    if offset == 0:
        # "monday" on a monday could mean today or a week ago
        raise InvalidTimestamp(original, f"'{relative}' is ambiguous on a {name}")
    return today - timedelta(days=offset)


def _parse_iso_timestamp(text: str, tz: Optional[tzinfo]) -> datetime:
    if ":" not in text:
        raise InvalidTimestamp(text, "expected hh:mm or an ISO date-time")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidTimestamp(text, "expected hh:mm or an ISO date-time") from exc
    parsed = parsed.replace(microsecond=0)
    if parsed.tzinfo is None:
        return localize(parsed, tz)
    return to_local(parsed, tz)


def parse_timestamp(
    value: str,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Parse a user time string relative to a reference instant.

    Parameters
    ----------
    value : str
        ``hh:mm[:ss]``, optionally preceded by ``YYYY-MM-DD`` (separated by
        whitespace or ``T``) or by ``today``, ``yesterday`` or a weekday name.
        Any other ISO 8601 date-time is accepted as well.
    now : datetime
        Reference instant supplying the default date.
    tz : Optional[tzinfo], optional
        Timezone of the wall-clock time (default: the system's local rules
        for the resolved date).

    Returns
    -------
    datetime
        Resolved instant. Wall-clock fields are kept as given, except for an
        ISO string carrying its own UTC offset, which is converted to local
        time.

    Raises
    ------
    InvalidTimestamp
        If the value matches no supported form or has out-of-range fields.

    Examples
    --------
    >>> reference = datetime(2024, 5, 1, 9, 0)
    >>> parse_timestamp("16:40", reference).strftime("%Y-%m-%d %H:%M:%S")
    '2024-05-01 16:40:00'
    >>> parse_timestamp("2022-01-05 01:05:07", reference).strftime("%Y-%m-%d %H:%M:%S")
    '2022-01-05 01:05:07'
    >>> parse_timestamp("yesterday 08:30", reference).strftime("%Y-%m-%d %H:%M:%S")
    '2024-04-30 08:30:00'
    """
    text = str(value or "").strip()
    if not text:
        raise InvalidTimestamp(str(value or ""), "a time is required")
    match = _TIMESTAMP_PATTERN.match(text)
    if match is None:
        return _parse_iso_timestamp(text, tz)

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    second = int(match.group("second") or 0)
    if hour > 23:
        raise InvalidTimestamp(text, "hour must be between 00 and 23")
    if minute > 59:
        raise InvalidTimestamp(text, "minute must be between 00 and 59")
    if second > 59:
        raise InvalidTimestamp(text, "second must be between 00 and 59")

    if match.group("year"):
        try:
            day = date(
                int(match.group("year")),
                int(match.group("month")),
                int(match.group("day")),
            )
        except ValueError as exc:
            raise InvalidTimestamp(text, str(exc)) from exc
    else:
        day = _resolve_day(match.group("relative"), to_local(now, tz).date(), text)
    return localize(datetime.combine(day, time(hour, minute, second)), tz)


def start_of_day(day: date, tz: Optional[tzinfo] = None) -> datetime:
    return localize(datetime.combine(day, time()), tz)


def _months_back(today: date, count: int) -> date:
    year, month_index = divmod(today.year * 12 + (today.month - 1) - count, 12)
    return date(year, month_index + 1, 1)


def parse_relative_date(
    value: str,
    today: date,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Parse a report window bound into the start of a local day.

    Parameters
    ----------
    value : str
        ``now``, a count with a unit (``3 days``, ``1w``, ``2 months``,
        ``1y``) or a ``YYYY-MM-DD`` date.
    today : date
        Current local date.
    tz : Optional[tzinfo], optional
        Timezone of the result (default: the system's local rules for the
        resolved day).

    Returns
    -------
    datetime
        Start of the resolved day. ``now`` resolves to the start of tomorrow
        so that a window ending "now" includes all of today. A count of one
        means the current day, week, month or year.

    Raises
    ------
    InvalidTimestamp
        If the value is not understood.

    Examples
    --------
    >>> parse_relative_date("now", date(2024, 4, 5)).date()
    datetime.date(2024, 4, 6)
    >>> parse_relative_date("1 week", date(2024, 4, 5)).date()
    datetime.date(2024, 4, 1)
    >>> parse_relative_date("4m", date(2024, 4, 5)).date()
    datetime.date(2024, 1, 1)
    """
    text = str(value or "").strip()
    if text.lower() == "now":
        return start_of_day(today + timedelta(days=1), tz)
    if _DATE_PATTERN.match(text):
        try:
            return start_of_day(date.fromisoformat(text), tz)
        except ValueError as exc:
            raise InvalidTimestamp(text, str(exc)) from exc

    match = _RELATIVE_PATTERN.match(text)
    if match is None:
        raise InvalidTimestamp(text, "expected 'now', a date, or a count such as '2 weeks'")
    count = max(int(match.group("count")) - 1, 0)
    if match.group("days"):
        day = today - timedelta(days=count)
    elif match.group("weeks"):
        monday = today - timedelta(days=today.weekday())
        day = monday - timedelta(weeks=count)
    elif match.group("months"):
        day = _months_back(today, count)
    else:
        day = date(today.year - count, 1, 1)
    return start_of_day(day, tz)


def parse_duration(value: str) -> timedelta:
    """
    Parse duration strings.

    Parameters
    ----------
    value : str
        Duration string (e.g., "15m", "1.5h", "30s", "2d"). A bare number
        is taken as hours.

    Returns
    -------
    timedelta
        Parsed duration.

    Raises
    ------
    ValueError
        If the value is malformed or not positive.

    Examples
    --------
    >>> parse_duration("15m")
    datetime.timedelta(seconds=900)
    >>> parse_duration("1.5h")
    datetime.timedelta(seconds=5400)
    >>> parse_duration("2")
    datetime.timedelta(seconds=7200)
    """
    raw = str(value).strip().lower()
    if not raw:
        raise ValueError("Duration value is required.")
    unit = raw[-1]
    if unit.isdigit() or unit == ".":
        seconds = float(raw) * 3600
    else:
        number = float(raw[:-1])
        if unit == "s":
            seconds = number
        elif unit == "m":
            seconds = number * 60
        elif unit == "h":
            seconds = number * 3600
        elif unit == "d":
            seconds = number * 86400
        else:
            raise ValueError(f"Unknown duration unit: {unit}")
    seconds = int(round(seconds))
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value}")
    return timedelta(seconds=seconds)
