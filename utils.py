"""
Shared helpers for the expense tracker.

Covers where files live (data directory, SQLite database, log file) and the
date and money arithmetic used by the store and the analytics engine.
"""

import logging
import os
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_DATA_DIR = "data"
DEFAULT_DB_NAME = "expenses.db"

CENT = Decimal("0.01")


def project_path(value: Union[str, Path]) -> Path:
    """Anchor relative paths at the project directory; absolute ones pass through."""
    path = Path(value)
    return path if path.is_absolute() else BASE_DIR / path


def ensure_data_dir(config: Optional[Dict[str, Any]] = None) -> Path:
    """
    Create the configured data directory if needed.

    Args:
        config: Configuration dictionary (``database.data_dir`` is read)

    Returns:
        Absolute path of the data directory
    """
    database = (config or {}).get("database") or {}
    data_dir = project_path(database.get("data_dir") or DEFAULT_DATA_DIR)
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error(f"Could not create data directory {data_dir}: {exc}")
        raise
    return data_dir


def _prepare_sqlite_file(connection_string: str) -> None:
    """Create the parent folder of a file-backed SQLite URL."""
    try:
        url = make_url(connection_string)
    except ArgumentError as exc:
        logger.debug(f"Not preparing a directory for unparseable URL {connection_string}: {exc}")
        return

    if not url.drivername.startswith("sqlite") or url.database in (None, "", ":memory:"):
        return

    folder = project_path(url.database).parent
    try:
        folder.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error(f"Could not create database folder {folder}: {exc}")
        raise


def resolve_connection_string(config: Optional[Dict[str, Any]] = None) -> str:
    """
    Work out which database to open.

    ``DB_CONNECTION_STRING`` in the environment wins, then
    ``database.connection_string`` from the config. Otherwise a SQLite file
    named by ``database.path`` inside the data directory is used.
    """
    database = (config or {}).get("database") or {}
    explicit = os.environ.get("DB_CONNECTION_STRING") or database.get("connection_string")
    if explicit:
        _prepare_sqlite_file(explicit)
        return explicit

    db_file = Path(database.get("path") or DEFAULT_DB_NAME)
    if not db_file.is_absolute():
        db_file = ensure_data_dir(config) / db_file
    db_file.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_file.as_posix()}"


def resolve_log_path(log_path: Union[str, Path]) -> Path:
    """Return the absolute log file path, creating its folder."""
    path = project_path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def utc_now() -> datetime:
    """Return the current timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes and convert aware ones to UTC.

    SQLite drops tzinfo on round-trip, so stored timestamps come back naive.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a user-supplied amount to Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal('0.1') rather than its
    binary expansion.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, AttributeError) as exc:
            raise ValueError(f"Not a numeric amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents for display and export."""
    return value.quantize(CENT)


def month_bounds(day: date) -> Tuple[date, date]:
    """
    Get the first and last day for the month containing ``day``.

    Returns:
        Tuple of (month_start, month_end), both inclusive.
    """
    month_start = day.replace(day=1)
    if month_start.month == 12:
        month_end = month_start.replace(year=month_start.year + 1, month=1) - timedelta(days=1)
    else:
        month_end = month_start.replace(month=month_start.month + 1) - timedelta(days=1)
    return month_start, month_end


def shift_months(day: date, months: int) -> date:
    """Return the first day of the month ``months`` away from ``day``'s month."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def parse_date(value: Any) -> date:
    """
    Parse a YYYY-MM-DD string (or pass through a date).

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
