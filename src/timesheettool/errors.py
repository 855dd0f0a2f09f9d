#!/usr/bin/env python3
"""
Error kinds raised by the timesheettool core.
"""

from __future__ import annotations

from typing import Iterable, Optional


class TimesheetError(Exception):
    """Base class for errors reported to the user for the current command."""


class InvalidTimestamp(TimesheetError):
    """
    Raised when a time string cannot be parsed.

    Attributes
    ----------
    value : str
        The rejected input.
    """

    def __init__(self, value: str, reason: Optional[str] = None) -> None:
        self.value = value
        self.reason = reason
        message = f"could not parse time '{value}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidInterval(TimesheetError):
    """Raised when an end time is not strictly after its start time."""


class NoOpenRecord(TimesheetError):
    def __init__(self) -> None:
        super().__init__("no open record to stop")


class RecordNotFound(TimesheetError):
    def __init__(self, record_id: int) -> None:
        self.record_id = record_id
        super().__init__(f"no record found with id {record_id}")


class ConcurrentModification(TimesheetError):
    """Raised when a record changed between being read and being written."""


class MultipleOpenRecords(ConcurrentModification):
    """Raised when more than one open record exists at the same time."""

    def __init__(self, record_ids: Iterable[int]) -> None:
        self.record_ids = tuple(record_ids)
        ids = ", ".join(str(record_id) for record_id in self.record_ids)
        super().__init__(f"more than one open record exists ({ids})")
