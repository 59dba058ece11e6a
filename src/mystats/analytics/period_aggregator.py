"""
Period aggregation of activity rows.

Consumers in this module drain a ``RowCursor`` into structured results:
per-period totals for each year, top-N rankings, best efforts, activity
listings and splits. Values are kept numeric; a bucket that received no rows
is absent from its dict so that "blank" stays distinguishable from 0.0.
"""

from __future__ import annotations

import calendar
import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from mystats.backend.errors import BadOptionsError, ScanMismatchError
from mystats.backend.query_executor import RowCursor

logger = logging.getLogger(__name__)

PERIOD_BUCKETS: Dict[str, int] = {
    "month": 12,
    "week": 53,
}


def measure_unit(measure: str) -> Tuple[float, str]:
    """
    Unit conversion for an aggregated measure.

    Distance sums are stored in meters and reported in kilometers, time sums
    are stored in seconds and reported in hours. Counts are never converted.
    Matching is case-sensitive on lowercase names, so callers pass the
    measure in its lowercase form.

    Returns:
        Tuple of (divisor, unit label)
    """
    if "count" in measure:
        return 1.0, ""
    if "distance" in measure:
        return 1000.0, "km"
    if "time" in measure:
        return 3600.0, "h"
    return 1.0, "m"


@dataclass(frozen=True)
class PeriodTable:
    """Per-period values for each year plus yearly totals."""

    period: str
    years: Tuple[int, ...]
    buckets: List[Dict[int, float]]
    totals: Dict[int, float]
    unit: str = ""

    def value(self, period_value: int, year: int) -> Optional[float]:
        """Value of one cell, or None when no rows fell into it."""
        return self.buckets[period_value - 1].get(year)


@dataclass(frozen=True)
class TopEntry:
    value: float
    year: int
    period_value: int
    label: str


@dataclass(frozen=True)
class BestEffortEntry:
    date: date
    name: str
    effort_time: int
    distance_km: float
    total_time: int
    external_id: int


@dataclass(frozen=True)
class ActivityEntry:
    external_id: int
    date: date
    name: str
    distance_km: float
    elevation: float
    elapsed_time: int
    sport: str
    workout: str


@dataclass(frozen=True)
class SplitEntry:
    split: int
    elapsed_time: int
    elevation_diff: float
    total_time: int
    ascent: float
    descent: float


def aggregate_period(
    cursor: RowCursor,
    period: str,
    years: Optional[Iterable[int]] = None,
    measure: str = "",
    divisor: Optional[float] = None,
    unit: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> PeriodTable:
    """
    Bucket ``(year, period_value, measure)`` rows by period.

    Args:
        cursor: Rows ordered any way; closed before returning
        period: "month" (12 buckets) or "week" (53 ISO weeks)
        years: Requested years; each gets a total even without rows
        measure: Measure expression, drives the unit conversion
        divisor: Explicit divisor overriding the measure based conversion
        unit: Unit label used together with ``divisor``
        cancel_event: Optional event that aborts the scan when set

    Returns:
        PeriodTable with blank cells left out of the bucket dicts
    """
    with cursor:
        if period not in PERIOD_BUCKETS:
            raise BadOptionsError(f"unknown period: {period}")
        if divisor is None:
            divisor, default_unit = measure_unit(measure)
            unit = default_unit if unit is None else unit
        year_list: List[int] = list(years or [])
        buckets: List[Dict[int, float]] = [{} for _ in range(PERIOD_BUCKETS[period])]
        totals: Dict[int, float] = {year: 0.0 for year in year_list}

        for year, period_value, value in cursor.scan(int, int, float, cancel_event=cancel_event):
            if not 1 <= period_value <= len(buckets):
                raise ScanMismatchError(f"{period} value {period_value} out of range for year {year}")
            if year not in totals:
                year_list.append(year)
                totals[year] = 0.0
            value = value / divisor
            totals[year] += value
            bucket = buckets[period_value - 1]
            bucket[year] = bucket.get(year, 0.0) + value

    logger.debug(f"Aggregated {cursor.rows_read} rows by {period} for years {year_list}")
    return PeriodTable(period=period, years=tuple(year_list), buckets=buckets, totals=totals, unit=unit or "")


def top(cursor: RowCursor, period: str, cancel_event: Optional[threading.Event] = None) -> List[TopEntry]:
    """Label pre-ordered ``(total, year, period_value)`` rows."""
    results: List[TopEntry] = []
    with cursor:
        for value, year, period_value in cursor.scan(float, int, int, cancel_event=cancel_event):
            label = str(period_value)
            if period == "month":
                if not 1 <= period_value <= 12:
                    raise ScanMismatchError(f"month value {period_value} out of range")
                label = calendar.month_name[period_value]
            results.append(TopEntry(value=value, year=year, period_value=period_value, label=label))
    return results


def best_efforts(cursor: RowCursor, cancel_event: Optional[threading.Event] = None) -> List[BestEffortEntry]:
    """
    Collect best effort rows.

    Expected columns: Year, Month, Day, activity name, activity distance,
    activity elapsed time, effort moving time, effort elapsed time and the
    activity id.
    """
    results: List[BestEffortEntry] = []
    with cursor:
        rows = cursor.scan(int, int, int, str, float, int, int, int, int, cancel_event=cancel_event)
        for year, month, day, name, distance, total_time, _moving, elapsed, external_id in rows:
            results.append(
                BestEffortEntry(
                    date=_row_date(year, month, day),
                    name=name,
                    effort_time=elapsed,
                    distance_km=distance / 1000,
                    total_time=total_time,
                    external_id=external_id,
                )
            )
    return results


def activities(cursor: RowCursor, cancel_event: Optional[threading.Event] = None) -> List[ActivityEntry]:
    """Collect activity listing rows (year, month, day, name, distance, elevation,
    elapsed time, type, workout type, id)."""
    results: List[ActivityEntry] = []
    with cursor:
        rows = cursor.scan(int, int, int, str, float, float, int, str, str, int, cancel_event=cancel_event)
        for year, month, day, name, distance, elevation, elapsed, sport, workout, external_id in rows:
            results.append(
                ActivityEntry(
                    external_id=external_id,
                    date=_row_date(year, month, day),
                    name=name,
                    distance_km=distance / 1000,
                    elevation=elevation,
                    elapsed_time=elapsed,
                    sport=sport,
                    workout=workout,
                )
            )
    return results


def splits(cursor: RowCursor, cancel_event: Optional[threading.Event] = None) -> List[SplitEntry]:
    """Collect ``(split, elapsed time, elevation diff)`` rows with running totals."""
    results: List[SplitEntry] = []
    total_time = 0
    ascent = descent = 0.0
    with cursor:
        for split, elapsed, elevation_diff in cursor.scan(int, int, float, cancel_event=cancel_event):
            total_time += elapsed
            if elevation_diff < 0:
                descent -= elevation_diff
            else:
                ascent += elevation_diff
            results.append(
                SplitEntry(
                    split=split,
                    elapsed_time=elapsed,
                    elevation_diff=elevation_diff,
                    total_time=total_time,
                    ascent=ascent,
                    descent=descent,
                )
            )
    return results


def _row_date(year: int, month: int, day: int) -> date:
    try:
        return date(year, month, day)
    except ValueError as e:
        raise ScanMismatchError(f"invalid date {year}-{month}-{day}") from e
