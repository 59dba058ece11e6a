"""Result consumers: period aggregation and day-of-year alignment."""

from .alignment import FillPolicy, align, day_of_year, found_years, series_frame, smooth
from .period_aggregator import PeriodTable, aggregate_period, measure_unit

__all__ = [
    "FillPolicy",
    "align",
    "day_of_year",
    "found_years",
    "series_frame",
    "smooth",
    "PeriodTable",
    "aggregate_period",
    "measure_unit",
]
