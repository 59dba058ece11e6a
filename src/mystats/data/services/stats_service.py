"""Caller facing statistics operations built on the query executor."""

from __future__ import annotations

import contextlib
import logging
import re
import threading
from pathlib import Path
from typing import Dict, Generator, List, Optional, Sequence

from mystats.analytics import alignment, period_aggregator
from mystats.analytics.alignment import FillPolicy
from mystats.analytics.period_aggregator import (
    ActivityEntry,
    BestEffortEntry,
    PeriodTable,
    SplitEntry,
    TopEntry,
)
from mystats.backend.errors import BadOptionsError
from mystats.backend.query_executor import QueryExecutor
from mystats.config.database import DatabaseConfig
from mystats.config.settings import Settings
from mystats.utils.logger_setup import setup_logging
from mystats.utils.query_builder import (
    OrderConfig,
    QueryOption,
    with_day_of_year,
    with_external_id,
    with_name,
    with_order,
    with_sports,
    with_table,
    with_workouts,
    with_years,
)

# Measure name -> aggregate expression used by rankings and year-to-date series
TOP_MEASURES: Dict[str, str] = {
    "time": "sum(ElapsedTime)/3600",
    "distance": "sum(Distance)/1000",
    "elevation": "sum(Elevation)",
}
TOP_PERIODS = ("month", "week", "day")

STEPS_DIVISOR = 1000.0

# Aggregates accepted by period statistics, e.g. "sum(distance)" or "count(*)"
STATS_AGGREGATES = ("sum", "count", "avg", "min", "max")
_MEASURE_PATTERN = re.compile(r"^\s*([A-Za-z]+)\s*\(\s*(\*|[A-Za-z]+)\s*\)\s*$")


def stats_measure(measure: str) -> str:
    """
    Validate a period statistics measure and return its lowercase form.

    The measure must be one aggregate over a Summary column or ``*``; the
    column name "time" stands for elapsed time.

    Raises:
        BadOptionsError: If the measure is anything else
    """
    match = _MEASURE_PATTERN.match(measure) if isinstance(measure, str) else None
    if match is None:
        raise BadOptionsError(f"invalid measure: {measure!r}")
    func, column = match.group(1).lower(), match.group(2).lower()
    if func not in STATS_AGGREGATES:
        raise BadOptionsError(f"valid aggregates are {', '.join(STATS_AGGREGATES)} (not {func})")
    if column == "time":
        column = "elapsedtime"
    columns = {name.lower() for name in DatabaseConfig.get_columns(DatabaseConfig.SUMMARY_TABLE)}
    if column == "*" and func != "count":
        raise BadOptionsError(f"only count accepts *: {measure!r}")
    if column != "*" and column not in columns:
        raise BadOptionsError(f"unknown measure column: {column}")
    return f"{func}({column})"


class StatsService:
    """Service combining query building, execution and aggregation."""

    def __init__(self, executor: QueryExecutor, logger_obj: Optional[logging.Logger] = None):
        self.executor = executor
        self.logger = logger_obj or logging.getLogger(__name__)

    @classmethod
    @contextlib.contextmanager
    def open(
        cls,
        db_path: Optional[Path] = None,
        log_level: int = logging.INFO,
        log_dir: Optional[Path] = None,
    ) -> Generator["StatsService", None, None]:
        """
        Configure package logging, open the database read-only and yield a service.

        This is the entry point for applications; the connection is closed
        when the block exits.
        """
        logger = setup_logging("mystats", log_level, log_dir)
        with QueryExecutor.open(db_path, read_only=True, logger_obj=logger) as executor:
            logger.info(f"Statistics service ready on {Settings.get_db_path(db_path)}")
            yield cls(executor, logger)

    # ----------------------------- Listings -----------------------------
    def years(self, *options: QueryOption) -> List[int]:
        return self.executor.query_years(*options)

    def sports(self) -> List[str]:
        return self.executor.query_sports()

    def workouts(self) -> List[str]:
        return self.executor.query_workouts()

    def best_effort_distances(self) -> List[str]:
        return self.executor.query_best_effort_distances()

    # ------------------------------ Periods ------------------------------
    def stats(
        self,
        measure: str,
        period: str,
        sports: Sequence[str] = (),
        workouts: Sequence[str] = (),
        month: Optional[int] = None,
        day: Optional[int] = None,
        years: Optional[Sequence[int]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PeriodTable:
        """
        Per-period totals of ``measure`` (e.g. "sum(distance)") for each year.

        When ``years`` is omitted the table covers every year in the Summary
        table, regardless of the sport, workout and cutoff filters. Years with
        no matching activities show up as all-zero rows.

        Args:
            measure: One of sum, count, avg, min or max over a Summary column
                (or count(*)); "(time)" means elapsed time
            period: "month" or "week"
            sports: Sport types to include (all when empty)
            workouts: Workout types to include (all when empty)
            month: Year-to-date cutoff month, used together with ``day``
            day: Year-to-date cutoff day
            years: Years to include; defaults to every year in the store
            cancel_event: Optional event that aborts the scan when set

        Returns:
            PeriodTable for the requested years

        Raises:
            BadOptionsError: If the measure or period is not recognised
        """
        if period not in period_aggregator.PERIOD_BUCKETS:
            raise BadOptionsError(f"unknown period: {period}")
        measure = stats_measure(measure)
        if years is None:
            years = self.years()
        group = [period, "Year"]
        options = [
            with_table(DatabaseConfig.SUMMARY_TABLE),
            *self._cutoff(month, day),
            with_order(OrderConfig(group_by=group, order_by=group)),
            with_sports(*sports),
            with_workouts(*workouts),
            with_years(*years),
        ]
        cursor = self.executor.build_and_run(["Year", period, measure], *options)
        return period_aggregator.aggregate_period(
            cursor, period, years, measure=measure, cancel_event=cancel_event
        )

    def steps_stats(
        self,
        period: str,
        month: Optional[int] = None,
        day: Optional[int] = None,
        years: Optional[Sequence[int]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PeriodTable:
        """Per-period step counts in thousands."""
        if period not in period_aggregator.PERIOD_BUCKETS:
            raise BadOptionsError(f"unknown period: {period}")
        table_option = with_table(DatabaseConfig.DAILY_STEPS_TABLE)
        cutoff = self._cutoff(month, day)
        if years is None:
            years = self.years(table_option, *cutoff)
        group = [period, "Year"]
        cursor = self.executor.build_and_run(
            ["Year", period, "sum(TotalSteps)"],
            table_option,
            *cutoff,
            with_order(OrderConfig(group_by=group, order_by=group)),
            with_years(*years),
        )
        return period_aggregator.aggregate_period(
            cursor, period, years, divisor=STEPS_DIVISOR, unit="k", cancel_event=cancel_event
        )

    # ----------------------------- Rankings -----------------------------
    def top(
        self,
        measure: str,
        period: str,
        sports: Sequence[str] = (),
        workouts: Sequence[str] = (),
        limit: int = Settings.DEFAULT_TOP_LIMIT,
        years: Sequence[int] = (),
    ) -> List[TopEntry]:
        """Best periods ranked by ``measure`` (time, distance or elevation)."""
        if measure not in TOP_MEASURES:
            raise BadOptionsError(f"valid values for top measure are {', '.join(TOP_MEASURES)} (not {measure})")
        if period not in TOP_PERIODS:
            raise BadOptionsError(f"valid values for top query are month, week and day (not {period})")
        cursor = self.executor.build_and_run(
            [f"{TOP_MEASURES[measure]} as total", "Year", period],
            with_order(OrderConfig(
                group_by=["Year", period],
                order_by=["total desc", "Year desc", f"{period} desc"],
                limit=limit,
            )),
            with_table(DatabaseConfig.SUMMARY_TABLE),
            with_sports(*sports),
            with_workouts(*workouts),
            with_years(*years),
        )
        return period_aggregator.top(cursor, period)

    def best(self, distance: str, limit: int = Settings.DEFAULT_TOP_LIMIT) -> List[BestEffortEntry]:
        """Fastest efforts for a best effort label such as "5k"."""
        summary = DatabaseConfig.SUMMARY_TABLE
        effort = DatabaseConfig.BEST_EFFORT_TABLE
        cursor = self.executor.build_and_run(
            [
                f"{summary}.Year", f"{summary}.Month", f"{summary}.Day",
                f"{summary}.Name", f"{summary}.Distance", f"{summary}.ElapsedTime",
                f"{effort}.MovingTime", f"{effort}.ElapsedTime", f"{summary}.ExternalID",
            ],
            with_name(distance),
            with_table(summary),
            with_table(effort),
            with_order(OrderConfig(
                order_by=[f"{effort}.MovingTime", "Year desc", "Month desc", "Day desc"],
                limit=limit,
            )),
        )
        return period_aggregator.best_efforts(cursor)

    def list_activities(
        self,
        sports: Sequence[str] = (),
        workouts: Sequence[str] = (),
        years: Sequence[int] = (),
        limit: int = Settings.DEFAULT_LIST_LIMIT,
        name: Optional[str] = None,
    ) -> List[ActivityEntry]:
        """Activities matching the filters, most recent first."""
        options: List[QueryOption] = [
            with_table(DatabaseConfig.SUMMARY_TABLE),
            with_sports(*sports),
            with_workouts(*workouts),
            with_years(*years),
            with_order(OrderConfig(order_by=["Year desc", "Month desc", "Day desc"], limit=limit)),
        ]
        if name:
            options.append(with_name(name))
        cursor = self.executor.build_and_run(
            [
                "Year", "Month", "Day", "Name", "Distance", "Elevation", "ElapsedTime",
                "Type", DatabaseConfig.WORKOUT_OR_EMPTY, "ExternalID",
            ],
            *options,
        )
        return period_aggregator.activities(cursor)

    def splits(self, external_id: int) -> List[SplitEntry]:
        cursor = self.executor.build_and_run(
            ["Split", "ElapsedTime", "ElevationDiff"],
            with_table(DatabaseConfig.SPLIT_TABLE),
            with_external_id(external_id),
            with_order(OrderConfig(order_by=["Split"])),
        )
        return period_aggregator.splits(cursor)

    # --------------------------- Aligned series ---------------------------
    def year_to_date(
        self,
        measure: str,
        sports: Sequence[str] = (),
        workouts: Sequence[str] = (),
        month: Optional[int] = None,
        day: Optional[int] = None,
        years: Sequence[int] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[int, List[float]]:
        """Cumulative daily ``measure`` (time, distance or elevation) for each year."""
        if measure not in TOP_MEASURES:
            raise BadOptionsError(f"unknown measure: {measure}")
        options = [
            with_table(DatabaseConfig.SUMMARY_TABLE),
            *self._cutoff(month, day),
            with_sports(*sports),
            with_workouts(*workouts),
            with_years(*years),
        ]
        return self._aligned(TOP_MEASURES[measure], options, years, FillPolicy.CUMULATIVE_ZERO, cancel_event)

    def daily_steps(
        self,
        month: Optional[int] = None,
        day: Optional[int] = None,
        years: Sequence[int] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[int, List[float]]:
        """Cumulative step counts for each year."""
        options = [
            with_table(DatabaseConfig.DAILY_STEPS_TABLE),
            *self._cutoff(month, day),
            with_years(*years),
        ]
        return self._aligned("sum(TotalSteps)", options, years, FillPolicy.CUMULATIVE_ZERO, cancel_event)

    def heart_rate(
        self,
        month: Optional[int] = None,
        day: Optional[int] = None,
        years: Sequence[int] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[int, List[float]]:
        """Resting heart rate for each year, carrying the last reading over missing days."""
        options = [
            with_table(DatabaseConfig.HEART_RATE_TABLE),
            *self._cutoff(month, day),
            with_years(*years),
        ]
        return self._aligned("min(RestingHR)", options, years, FillPolicy.CARRY_FORWARD, cancel_event)

    # ------------------------------ Helpers ------------------------------
    @staticmethod
    def _cutoff(month: Optional[int], day: Optional[int]) -> List[QueryOption]:
        if month is None or day is None:
            return []
        return [with_day_of_year(day, month)]

    def _aligned(
        self,
        measure: str,
        options: List[QueryOption],
        years: Sequence[int],
        policy: FillPolicy,
        cancel_event: Optional[threading.Event],
    ) -> Dict[int, List[float]]:
        group = ["Year", "Month", "Day"]
        cursor = self.executor.build_and_run(
            ["Year", "Month", "Day", measure],
            *options,
            with_order(OrderConfig(group_by=group, order_by=group)),
        )
        series = alignment.align(cursor, years, policy, cancel_event=cancel_event)
        self.logger.info(f"Aligned {len(series)} years with {policy.value} policy")
        return series
