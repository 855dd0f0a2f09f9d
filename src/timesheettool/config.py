#!/usr/bin/env python3
"""
Load timesheettool settings from a TOML file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import tomllib

APP_NAME = "timesheettool"
DEFAULT_ROUND_MINUTES = 15

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    """
    Resolved settings.

    Attributes
    ----------
    database_path : Path
        SQLite database file.
    time_round_minutes : int
        Rounding unit for reports, in minutes.
    """

    database_path: Path
    time_round_minutes: int = DEFAULT_ROUND_MINUTES

    @property
    def rounding(self) -> timedelta:
        return timedelta(minutes=self.time_round_minutes)


def _expand(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))


def get_config_path() -> Path:
    """
    Return the configuration file path.

    Returns
    -------
    Path
        Config TOML path.

    Examples
    --------
    >>> isinstance(get_config_path(), Path)
    True
    """
    override = os.environ.get("TST_CONFIG_PATH", "").strip()
    if override:
        return _expand(override)
    return Path.home() / ".config" / APP_NAME / "config.toml"


def get_default_database_path() -> Path:
    """
    Return the database path used when the config file does not set one.
    """
    override = os.environ.get("TST_DATABASE_PATH", "").strip()
    if override:
        return _expand(override)
    return Path.home() / ".local" / "share" / APP_NAME / f"{APP_NAME}.db"


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("No config file at %s; using defaults", path)
        return {}
    logger.debug("Reading configuration at %s", path)
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("Could not parse config at %s: %s", path, exc)
        return {}


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load settings, falling back to defaults for anything missing.

    Parameters
    ----------
    path : Optional[Path], optional
        Config file (defaults to ``get_config_path()``).

    Returns
    -------
    Config
        Resolved settings.
    """
    raw = _read_config_file(path or get_config_path())

    database_path = get_default_database_path()
    raw_database = raw.get("database_path")
    if isinstance(raw_database, str) and raw_database.strip():
        database_path = _expand(raw_database.strip())
    elif raw_database is not None:
        logger.warning("Ignoring invalid database_path setting: %r", raw_database)

    round_minutes = DEFAULT_ROUND_MINUTES
    raw_round = raw.get("time_round_minutes")
    if raw_round is not None:
        if isinstance(raw_round, int) and not isinstance(raw_round, bool) and raw_round > 0:
            round_minutes = raw_round
        else:
            logger.warning("Ignoring invalid time_round_minutes setting: %r", raw_round)

    logger.debug("Config: database_path is %s", database_path)
    return Config(database_path=database_path, time_round_minutes=round_minutes)
