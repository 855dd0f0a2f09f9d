"""
Shared pytest fixtures for timesheettool tests.
"""

from __future__ import annotations

import os
import time

import pytest

from timesheettool.config import Config
from timesheettool.records import SQLiteRecordStore


@pytest.fixture(autouse=True)
def isolate_user_paths(tmp_path, monkeypatch) -> None:
    """
    Ensure tests do not read the real config file or database.

    Parameters
    ----------
    tmp_path : pathlib.Path
        Temporary path provided by pytest.
    monkeypatch : pytest.MonkeyPatch
        Monkeypatch fixture for environment updates.
    """
    monkeypatch.setenv("TST_CONFIG_PATH", str(tmp_path / "config.toml"))
    monkeypatch.setenv("TST_DATABASE_PATH", str(tmp_path / "timesheet.db"))


@pytest.fixture(autouse=True)
def local_timezone():
    """
    Pin the process timezone to UTC unless a test selects another one.

    Yields
    ------
    Callable[[str], None]
        Setter taking a POSIX ``TZ`` value.
    """
    original = os.environ.get("TZ")

    def use(name: str) -> None:
        os.environ["TZ"] = name
        time.tzset()

    use("UTC")
    yield use
    if original is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = original
    time.tzset()


@pytest.fixture
def store(tmp_path):
    """
    Provide an SQLite record store in a temporary directory.

    Yields
    ------
    SQLiteRecordStore
        Store closed after the test.
    """
    record_store = SQLiteRecordStore(tmp_path / "records.db", timeout=0.1)
    yield record_store
    record_store.close()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(database_path=tmp_path / "cli.db")
