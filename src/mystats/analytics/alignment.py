"""
Day-of-year alignment of sparse, date keyed rows.

``align`` turns ``(year, month, day, value)`` rows into one dense list per
year where list index ``i`` holds the value of day ``i + 1`` of that year.
Gaps are filled according to a ``FillPolicy``:

- ``CARRY_FORWARD``: gauge metrics (e.g. resting heart rate); the last known
  value holds until a new sample arrives.
- ``CUMULATIVE_ZERO``: counter metrics (e.g. distance, steps); rows are
  per-day sums, the series is the running total and missing days add nothing.

All years are padded to the same length so they can be compared index by
index.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

import pandas as pd

from mystats.backend.errors import TimeAnomalyError
from mystats.backend.query_executor import RowCursor
from mystats.config.settings import Settings

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class FillPolicy(str, Enum):
    """Gap fill strategy for aligned series."""

    CARRY_FORWARD = "carryForward"
    CUMULATIVE_ZERO = "cumulativeZero"


def _normalized_date(year: int, month: int, day: int) -> date:
    # Month and day overflow roll over like calendar arithmetic (Dec 32 -> Jan 1).
    extra_years, month_index = divmod(month - 1, 12)
    first = date(year + extra_years, month_index + 1, 1)
    return first + timedelta(days=day - 1)


def day_of_year(
    year: int,
    month: int,
    day: int,
    reference_hour: int = Settings.REFERENCE_HOUR,
    tz_name: str = Settings.TIMEZONE,
) -> int:
    """
    1-based day number of ``year-month-day`` counted from January 1st of ``year``.

    Both dates are placed at ``reference_hour`` local time before the elapsed
    time is measured, so a daylight saving shift moves the difference by at
    most an hour and rounding recovers the whole day count.
    """
    tz = ZoneInfo(tz_name)
    try:
        when = _normalized_date(year, month, day)
        start = datetime(year, 1, 1, reference_hour, tzinfo=tz)
    except (ValueError, OverflowError) as e:
        raise TimeAnomalyError(0, year, month, day, detail="unrepresentable date for day") from e
    now = datetime(when.year, when.month, when.day, reference_hour, tzinfo=tz)
    elapsed = now.astimezone(timezone.utc) - start.astimezone(timezone.utc)
    return round(elapsed.total_seconds() / SECONDS_PER_DAY) + 1


def align(
    cursor: RowCursor,
    years: Optional[Iterable[int]] = None,
    policy: FillPolicy = FillPolicy.CARRY_FORWARD,
    reference_hour: int = Settings.REFERENCE_HOUR,
    tz_name: str = Settings.TIMEZONE,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[int, List[float]]:
    """
    Scan ``(year, month, day, value)`` rows into dense per-year series.

    Rows must be ordered by date within each year. Only years that produced
    at least one row are present in the result; the caller intersects its
    requested years with the result keys (see ``found_years``).

    Args:
        cursor: Row cursor; closed on every exit path
        years: Requested years, used to order the result
        policy: Gap fill policy
        reference_hour: Local hour used for both ends of the day difference
        tz_name: IANA time zone used for the alignment
        cancel_event: Optional event that aborts the scan when set

    Returns:
        Mapping year -> list of floats, all of the same length

    Raises:
        TimeAnomalyError: If a row maps outside day 1..366 or goes back in time
        ScanMismatchError: If a row does not have the expected shape
    """
    policy = FillPolicy(policy)
    series: Dict[int, List[float]] = {}
    last_value: Dict[int, float] = {}
    longest = 0

    with cursor:
        for year, month, day, value in cursor.scan(int, int, int, float, cancel_event=cancel_event):
            days = day_of_year(year, month, day, reference_hour, tz_name)
            if days < 1 or days > Settings.MAX_DAY_OF_YEAR:
                logger.critical(f"Impossible day offset {days} for {year}-{month}-{day}")
                raise TimeAnomalyError(days, year, month, day)

            values = series.setdefault(year, [])
            if days <= len(values):
                raise TimeAnomalyError(days, year, month, day, detail="out of order day")
            previous = last_value.get(year, 0.0)
            # fill the gaps on days without rows
            values.extend([previous] * (days - 1 - len(values)))
            current = previous + value if policy is FillPolicy.CUMULATIVE_ZERO else value
            values.append(current)
            last_value[year] = current
            longest = max(longest, len(values))

    ordered = [year for year in (years or []) if year in series]
    ordered += [year for year in series if year not in ordered]
    result: Dict[int, List[float]] = {}
    for year in ordered:
        values = series[year]
        values.extend([last_value[year]] * (longest - len(values)))
        result[year] = values

    logger.debug(f"Aligned {cursor.rows_read} rows into {len(result)} years of {longest} days ({policy.value})")
    return result


def found_years(requested: Iterable[int], series: Dict[int, List[float]]) -> List[int]:
    """Sorted intersection of the requested years and the years present in ``series``."""
    return sorted(set(requested) & set(series))


def smooth(values: Sequence[float], window: int) -> List[float]:
    """
    Centered moving average over ``[i - window, i + window]``, truncated at the edges.

    Args:
        values: Aligned daily values of one year
        window: Number of days on each side; negative values count as positive

    Returns:
        List of averages, same length as ``values``
    """
    window = abs(int(window))
    if not values:
        return []
    rolling = pd.Series(values, dtype="float64").rolling(window=2 * window + 1, center=True, min_periods=1)
    return rolling.mean().tolist()


def series_frame(series: Dict[int, List[float]], years: Optional[Iterable[int]] = None) -> pd.DataFrame:
    """
    Chart ready frame: one column per year, indexed by the dates of the newest year.

    Args:
        series: Output of ``align``
        years: Requested years; defaults to every year in ``series``

    Returns:
        DataFrame, empty when none of the requested years has data
    """
    columns = found_years(series.keys() if years is None else years, series)
    if not columns:
        return pd.DataFrame()
    length = len(series[columns[0]])
    index = pd.date_range(start=date(max(columns), 1, 1), periods=length, freq="D", name="date")
    return pd.DataFrame({year: series[year] for year in columns}, index=index)
