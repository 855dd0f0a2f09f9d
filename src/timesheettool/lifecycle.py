#!/usr/bin/env python3
"""
Create, close and edit records while keeping their intervals valid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .errors import InvalidInterval, MultipleOpenRecords, NoOpenRecord, RecordNotFound
from .records import Record, RecordPatch, RecordStore
from .timestamps import local_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateResult:
    """
    Outcome of creating a record.

    Attributes
    ----------
    record : Record
        The created record.
    closed : Optional[Record]
        Previously open record that was ended at the new record's start.
    resumed : Optional[Record]
        Continuation of the closed record, opened at the new record's end.
    """

    record: Record
    closed: Optional[Record] = None
    resumed: Optional[Record] = None


def check_interval(start: datetime, end: Optional[datetime]) -> None:
    """
    Ensure an interval ends strictly after it starts.

    Raises
    ------
    InvalidInterval
        If ``end`` is set and not after ``start``.
    """
    if end is not None and end <= start:
        raise InvalidInterval(
            f"end time {end.isoformat()} must be after start time {start.isoformat()}"
        )


def _require_name(value: str, label: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError(f"A {label} name is required.")
    return text


class RecordManager:
    """
    Record lifecycle operations on top of a record store.

    Every operation runs in a single store transaction and validates before
    writing, so a failure leaves the store unchanged.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.clock = clock or local_now

    def _load(self, record_id: int) -> Record:
        record = self.store.get_record(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    def _close_overlapped(
        self,
        start: datetime,
        end: Optional[datetime],
    ) -> Optional[Record]:
        open_record = self.store.find_open_record()
        if open_record is None:
            return None
        if open_record.started_at < start:
            self.store.update_record(
                open_record.id,
                RecordPatch(end=start),
                expect_open=True,
            )
            return self._load(open_record.id)
        if end is None or end > open_record.started_at:
            raise InvalidInterval(
                f"record would overlap open record {open_record.id} "
                f"started at {open_record.started_at.isoformat()}"
            )
        return None

    def create(
        self,
        project: str,
        task: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        *,
        allow_overlap: bool = False,
    ) -> CreateResult:
        """
        Create a record, open when ``end`` is not given.

        Parameters
        ----------
        project : str
            Project name; created if it does not exist.
        task : str
            Task label.
        start : Optional[datetime], optional
            Start time (default: now).
        end : Optional[datetime], optional
            End time.
        allow_overlap : bool, optional
            Leave an existing open record untouched. By default it is ended
            at ``start``, and resumed at ``end`` when the new record is
            closed.

        Returns
        -------
        CreateResult
            The new record and any record closed or resumed around it.

        Raises
        ------
        InvalidInterval
            If ``end`` is not after ``start``, or the record would overlap
            an open record that started later.
        """
        project = _require_name(project, "project")
        task = _require_name(task, "task")
        start = start if start is not None else self.clock()
        check_interval(start, end)

        closed = None
        resumed = None
        with self.store.transaction():
            if not allow_overlap:
                closed = self._close_overlapped(start, end)
            record = self._load(self.store.insert_record(project, task, start, end))
            if closed is not None and end is not None:
                resumed = self._load(
                    self.store.insert_record(closed.project, closed.task, end)
                )

        if closed is not None:
            logger.info("Ended previous record for %s at %s", closed.task, start.isoformat())
        if resumed is not None:
            logger.info(
                "Resumed record for %s at %s", resumed.task, resumed.started_at.isoformat()
            )
        if record.ended_at is None:
            logger.info("Added record for %s starting at %s", task, start.isoformat())
        else:
            logger.info(
                "Added record for %s starting at %s and ending at %s",
                task,
                start.isoformat(),
                record.ended_at.isoformat(),
            )
        return CreateResult(record=record, closed=closed, resumed=resumed)

    def close(self, end: Optional[datetime] = None) -> Record:
        """
        End the open record.

        Parameters
        ----------
        end : Optional[datetime], optional
            End time (default: now).

        Returns
        -------
        Record
            The closed record.

        Raises
        ------
        NoOpenRecord
            If no record is open.
        MultipleOpenRecords
            If more than one record is open.
        InvalidInterval
            If ``end`` is not after the record's start.
        ConcurrentModification
            If the record was closed while this call held it.
        """
        end = end if end is not None else self.clock()
        with self.store.transaction():
            open_record = self.store.find_open_record()
            if open_record is None:
                raise NoOpenRecord()
            check_interval(open_record.started_at, end)
            self.store.update_record(open_record.id, RecordPatch(end=end), expect_open=True)
            record = self._load(open_record.id)
        logger.info("Ended record for %s at %s", record.task, end.isoformat())
        return record

    def edit(self, record_id: int, patch: RecordPatch) -> Record:
        """
        Apply field changes to a record.

        Parameters
        ----------
        record_id : int
            Record identifier.
        patch : RecordPatch
            Changes to apply.

        Returns
        -------
        Record
            The updated record.

        Raises
        ------
        RecordNotFound
            If no record has this id.
        InvalidInterval
            If the edited record would end at or before its start.
        MultipleOpenRecords
            If reopening the record while another record is open.
        """
        if patch.project is not None:
            _require_name(patch.project, "project")
        if patch.task is not None:
            _require_name(patch.task, "task")
        with self.store.transaction():
            record = self._load(record_id)
            if patch.is_empty():
                return record
            updated = patch.apply(record)
            check_interval(updated.started_at, updated.ended_at)
            if updated.is_open and not record.is_open:
                open_record = self.store.find_open_record()
                if open_record is not None:
                    raise MultipleOpenRecords((open_record.id, record.id))
            self.store.update_record(record_id, patch)
            result = self._load(record_id)
        logger.info("Record updated: %s", result)
        return result
