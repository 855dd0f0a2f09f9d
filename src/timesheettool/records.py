#!/usr/bin/env python3
"""
Record types and SQLite-backed record storage.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Protocol

from .errors import (
    ConcurrentModification,
    InvalidInterval,
    MultipleOpenRecords,
    RecordNotFound,
)
from .timestamps import to_local

logger = logging.getLogger(__name__)

APPLICATION_ID = 0x9B34493A


@dataclass(frozen=True)
class Project:
    """
    Project a record is logged under.

    Attributes
    ----------
    id : int
        Project identifier.
    name : str
        Unique display name.
    """

    id: int
    name: str


@dataclass(frozen=True)
class Record:
    """
    One tracked interval of work.

    Attributes
    ----------
    id : int
        Record identifier.
    project : str
        Project name.
    task : str
        Task label.
    started_at : datetime
        Start of the interval.
    ended_at : Optional[datetime]
        End of the interval, or None while the record is open.
    """

    id: int
    project: str
    task: str
    started_at: datetime
    ended_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def duration(self, now: datetime) -> timedelta:
        """
        Return the recorded duration, counting open records up to ``now``.

        Parameters
        ----------
        now : datetime
            Reference time for open records.

        Returns
        -------
        timedelta
            Duration, never negative.
        """
        end = self.ended_at if self.ended_at is not None else now
        if end <= self.started_at:
            return timedelta(0)
        return end - self.started_at


@dataclass(frozen=True)
class RecordPatch:
    """
    Field changes applied by an edit.

    Attributes
    ----------
    start : Optional[datetime]
        New start time.
    end : Optional[datetime]
        New end time.
    project : Optional[str]
        New project name, created if it does not exist.
    task : Optional[str]
        New task label.
    reopen : bool
        Clear the end time, making the record open again.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    project: Optional[str] = None
    task: Optional[str] = None
    reopen: bool = False

    def is_empty(self) -> bool:
        return (
            self.start is None
            and self.end is None
            and self.project is None
            and self.task is None
            and not self.reopen
        )

    def apply(self, record: Record) -> Record:
        """
        Return ``record`` with this patch applied (without validation).
        """
        ended_at = record.ended_at
        if self.reopen:
            ended_at = None
        if self.end is not None:
            ended_at = self.end
        return Record(
            id=record.id,
            project=self.project if self.project is not None else record.project,
            task=self.task if self.task is not None else record.task,
            started_at=self.start if self.start is not None else record.started_at,
            ended_at=ended_at,
        )


class RecordStore(Protocol):
    """
    Persistence contract used by the lifecycle manager and reports.
    """

    def transaction(self) -> Any:
        ...

    def insert_record(
        self,
        project: str,
        task: str,
        started_at: datetime,
        ended_at: Optional[datetime] = None,
    ) -> int:
        ...

    def find_open_record(self) -> Optional[Record]:
        ...

    def get_record(self, record_id: int) -> Optional[Record]:
        ...

    def update_record(
        self,
        record_id: int,
        patch: RecordPatch,
        *,
        expect_open: bool = False,
    ) -> None:
        ...

    def list_records(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Record]:
        ...


def format_storage_timestamp(value: datetime) -> str:
    """
    Format timestamps for storage.

    Parameters
    ----------
    value : datetime
        Datetime to format. Naive values are local wall-clock time.

    Returns
    -------
    str
        ISO timestamp in UTC.

    Examples
    --------
    >>> format_storage_timestamp(datetime(2024, 5, 1, 16, 40, tzinfo=timezone.utc))
    '2024-05-01T16:40:00Z'
    """
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_storage_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse stored timestamps into local time.

    Parameters
    ----------
    value : Optional[str]
        Stored timestamp string.

    Returns
    -------
    Optional[datetime]
        Parsed local datetime, or None.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return to_local(parsed)


_SELECT_RECORDS = """
    SELECT records.id, projects.name, records.task, records.started_at, records.ended_at
    FROM records
    INNER JOIN projects ON projects.id = records.project_id
"""


def _row_to_record(row: Any) -> Record:
    return Record(
        id=int(row[0]),
        project=str(row[1]),
        task=str(row[2]),
        started_at=parse_storage_timestamp(row[3]),
        ended_at=parse_storage_timestamp(row[4]),
    )


class SQLiteRecordStore:
    """
    SQLite-backed record storage.

    The connection runs in autocommit mode; ``transaction()`` groups calls
    under ``BEGIN IMMEDIATE`` so a read and the write depending on it hold
    the database write lock together.
    """

    def __init__(self, path: Path, timeout: float = 5.0) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Connecting to SQLite DB at %s", self.path)
            conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None)
            conn.execute(f"PRAGMA application_id = {APPLICATION_ID}")
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA ignore_check_constraints = OFF")
            self._conn = conn
            self.ensure_schema()
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.execute("PRAGMA optimize")
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SQLiteRecordStore":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    def ensure_schema(self) -> None:
        """
        Ensure the SQLite schema exists.
        """
        conn = self._connect()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS projects (
                id INTEGER NOT NULL PRIMARY KEY,
                name TEXT UNIQUE NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS records (
                id INTEGER NOT NULL PRIMARY KEY,
                task TEXT NOT NULL,
                project_id INTEGER NOT NULL REFERENCES projects,
                started_at TEXT NOT NULL,
                ended_at TEXT,
                CONSTRAINT ended_at_gt_started_at CHECK (
                    ended_at IS NULL OR ended_at > started_at
                )
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_records_started_at ON records(started_at)"
        )

    @contextmanager
    def transaction(self) -> Iterator["SQLiteRecordStore"]:
        """
        Run the enclosed calls as one atomic unit.

        Nested uses join the outermost transaction.

        Raises
        ------
        ConcurrentModification
            If another process holds the write lock.
        """
        conn = self._connect()
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as exc:
            raise ConcurrentModification(f"database is busy: {exc}") from exc
        self._depth = 1
        try:
            yield self
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")
        finally:
            self._depth = 0

    def _execute(self, query: str, params: Any = ()) -> sqlite3.Cursor:
        try:
            return self._connect().execute(query, params)
        except sqlite3.IntegrityError as exc:
            if "CHECK constraint" in str(exc):
                raise InvalidInterval("record end must be after its start") from exc
            raise
        except sqlite3.OperationalError as exc:
            if "locked" in str(exc) or "busy" in str(exc):
                raise ConcurrentModification(f"database is busy: {exc}") from exc
            raise

    def upsert_project(self, name: str) -> Project:
        """
        Return the project called ``name``, creating it when missing.
        """
        rows = self._execute(
            """
            INSERT INTO projects (name) VALUES (?)
            ON CONFLICT (name) DO UPDATE SET name = excluded.name
            RETURNING id, name
            """,
            (name,),
        ).fetchall()
        return Project(id=int(rows[0][0]), name=str(rows[0][1]))

    def list_projects(self) -> List[Project]:
        rows = self._execute("SELECT id, name FROM projects ORDER BY name").fetchall()
        return [Project(id=int(row[0]), name=str(row[1])) for row in rows]

    def insert_record(
        self,
        project: str,
        task: str,
        started_at: datetime,
        ended_at: Optional[datetime] = None,
    ) -> int:
        """
        Insert a record, creating its project when needed.

        Parameters
        ----------
        project : str
            Project name.
        task : str
            Task label.
        started_at : datetime
            Start time.
        ended_at : Optional[datetime], optional
            End time, if known.

        Returns
        -------
        int
            Record identifier.
        """
        with self.transaction():
            project_row = self.upsert_project(project)
            cursor = self._execute(
                """
                INSERT INTO records (task, project_id, started_at, ended_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    task,
                    project_row.id,
                    format_storage_timestamp(started_at),
                    format_storage_timestamp(ended_at) if ended_at else None,
                ),
            )
            return int(cursor.lastrowid)

    def find_open_record(self) -> Optional[Record]:
        """
        Return the open record, if any.

        Raises
        ------
        MultipleOpenRecords
            If more than one record is open.
        """
        rows = self._execute(
            _SELECT_RECORDS
            + " WHERE records.ended_at IS NULL ORDER BY records.started_at DESC"
        ).fetchall()
        if len(rows) > 1:
            raise MultipleOpenRecords(int(row[0]) for row in rows)
        return _row_to_record(rows[0]) if rows else None

    def get_record(self, record_id: int) -> Optional[Record]:
        row = self._execute(
            _SELECT_RECORDS + " WHERE records.id = ?",
            (record_id,),
        ).fetchone()
        return _row_to_record(row) if row else None

    def update_record(
        self,
        record_id: int,
        patch: RecordPatch,
        *,
        expect_open: bool = False,
    ) -> None:
        """
        Update a record.

        Parameters
        ----------
        record_id : int
            Record identifier.
        patch : RecordPatch
            Fields to change.
        expect_open : bool, optional
            Only update the record while it is still open.

        Raises
        ------
        RecordNotFound
            If no record has this id.
        ConcurrentModification
            If ``expect_open`` is set and the record is no longer open.
        InvalidInterval
            If the result would end at or before its start.
        """
        updates: List[str] = []
        params: List[Any] = []
        with self.transaction():
            if patch.project is not None:
                updates.append("project_id = ?")
                params.append(self.upsert_project(patch.project).id)
            if patch.task is not None:
                updates.append("task = ?")
                params.append(patch.task)
            if patch.start is not None:
                updates.append("started_at = ?")
                params.append(format_storage_timestamp(patch.start))
            if patch.end is not None:
                updates.append("ended_at = ?")
                params.append(format_storage_timestamp(patch.end))
            elif patch.reopen:
                updates.append("ended_at = NULL")
            if not updates:
                if self.get_record(record_id) is None:
                    raise RecordNotFound(record_id)
                return
            query = f"UPDATE records SET {', '.join(updates)} WHERE id = ?"
            params.append(record_id)
            if expect_open:
                query += " AND ended_at IS NULL"
            cursor = self._execute(query, params)
            if cursor.rowcount:
                return
            if self.get_record(record_id) is None:
                raise RecordNotFound(record_id)
            raise ConcurrentModification(
                f"record {record_id} was closed by another process"
            )

    def list_records(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Record]:
        """
        List records by start time.

        Parameters
        ----------
        since : Optional[datetime], optional
            Earliest start (inclusive).
        until : Optional[datetime], optional
            Latest start (exclusive).

        Returns
        -------
        List[Record]
            Matching records ordered by start time.
        """
        query = _SELECT_RECORDS
        params: List[Any] = []
        conditions: List[str] = []
        if since is not None:
            conditions.append("records.started_at >= ?")
            params.append(format_storage_timestamp(since))
        if until is not None:
            conditions.append("records.started_at < ?")
            params.append(format_storage_timestamp(until))
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY records.started_at, records.id"
        return [_row_to_record(row) for row in self._execute(query, params)]
