"""Error taxonomy for query building, execution and scanning."""

from typing import Optional


class MyStatsError(Exception):
    """Base class for all errors raised by the mystats core."""


class BadOptionsError(MyStatsError, ValueError):
    """Raised when the query builder or a service is called with invalid options."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"query builder rejected: {message}")


class QueryFailedError(MyStatsError):
    """Raised when the store rejects or fails to execute a bound query."""

    def __init__(self, query: str, cause: Optional[BaseException] = None):
        self.query = query
        self.cause = cause
        super().__init__(f"select caused: {cause} (query: {query})")


class ScanMismatchError(MyStatsError):
    """Raised when a row does not match the expected scan targets."""


class TimeAnomalyError(MyStatsError):
    """Raised when day-of-year alignment computes an impossible day offset."""

    def __init__(self, days: int, year: int, month: int, day: int, detail: str = "impossible number"):
        self.days = days
        self.year = year
        self.month = month
        self.day = day
        super().__init__(
            f"days got {detail} {days} (year={year}, month={month}, day={day})"
        )


class ScanCancelledError(MyStatsError):
    """Raised when the caller cancels a scan before the cursor is drained."""

    def __init__(self, message: str = "scan cancelled before the cursor was drained"):
        self.message = message
        super().__init__(self.message)
