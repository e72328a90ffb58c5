"""Expressions evaluated against pipeline query results."""

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

LAST_RUN_AT_COLUMN = "LAST_RUN_AT"


def format_timestamp(value: datetime) -> str:
    """Format a datetime in UTC with millisecond precision.

    Naive datetimes are taken to be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    utc_value = value.astimezone(UTC)
    return f"{utc_value:%Y-%m-%dT%H:%M:%S}.{utc_value.microsecond // 1000:03d}"


def read_last_run_at(rows: Sequence[Mapping[str, Any]]) -> str | None:
    """Read the last run timestamp from a poll-state query result.

    Args:
        rows: Rows of the query; only the first one is read.

    Returns:
        The first row's LAST_RUN_AT formatted as ``YYYY-MM-DDTHH:MM:SS.mmm``
        in UTC, or None if there are no rows.
    """
    if not rows:
        return None
    return format_timestamp(rows[0][LAST_RUN_AT_COLUMN])
