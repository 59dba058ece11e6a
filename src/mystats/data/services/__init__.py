"""Service layer combining query building, execution and aggregation."""

from .stats_service import StatsService

__all__ = ["StatsService"]
