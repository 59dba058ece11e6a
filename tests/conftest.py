# tests/conftest.py
import os
import sys
from unittest.mock import MagicMock

import pytest

# 1. Make sure `src/` is on the import path:
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, os.path.join(ROOT, "src"))

from mystats.backend.query_executor import QueryExecutor, RowCursor  # noqa: E402
from mystats.data.services.stats_service import StatsService  # noqa: E402


SUMMARY_ROWS = [
    # Year, Month, Day, Week, ExternalID, Name, Type, WorkoutType, Distance, Elevation, ElapsedTime, MovingTime
    (2023, 1, 5, 1, 101, "Morning Run", "Run", None, 10000.0, 50.0, 3600, 3500),
    (2023, 1, 20, 3, 102, "Evening Ride", "Ride", None, 30000.0, 200.0, 5400, 5000),
    (2023, 3, 10, 10, 103, "Long Run", "Run", "Long Run", 21000.0, 150.0, 7200, 7000),
    (2024, 1, 3, 1, 104, "New Year Run", "Run", "Race", 5000.0, 20.0, 1500, 1450),
    (2024, 2, 14, 7, 105, "Valentine Run", "Run", None, 8000.0, 40.0, 2700, 2600),
    (2024, 6, 1, 22, 106, "Summer Ride", "Ride", None, 50000.0, 500.0, 9000, 8500),
]

BEST_EFFORT_ROWS = [
    # ExternalID, Name, ElapsedTime, MovingTime, Distance
    (101, "5k", 1500, 1480, 5000.0),
    (101, "10k", 3400, 3380, 10000.0),
    (103, "5k", 1450, 1440, 5000.0),
    (103, "10k", 3100, 3050, 10000.0),
    (104, "5k", 1480, 1470, 5000.0),
]

SPLIT_ROWS = [
    # ExternalID, Split, ElapsedTime, MovingTime, Distance, ElevationDiff
    (103, 1, 300, 295, 1000.0, 5.0),
    (103, 2, 310, 305, 1000.0, -3.0),
    (103, 3, 305, 300, 1000.0, 2.0),
    (101, 1, 360, 355, 1000.0, 1.0),
]

DAILY_STEPS_ROWS = [
    # Year, Month, Day, Week, TotalSteps, StepGoal
    (2023, 1, 1, 52, 5000, 7000),
    (2023, 1, 3, 1, 7000, 7000),
    (2024, 1, 1, 1, 4000, 7000),
    (2024, 1, 2, 1, 6000, 7000),
    (2024, 1, 5, 1, 3000, 7000),
]

HEART_RATE_ROWS = [
    # Year, Month, Day, Week, WellnessMinAvgHR, WellnessMaxAvgHR, RestingHR
    (2024, 1, 1, 1, 50, 120, 52),
    (2024, 1, 4, 1, 49, 130, 50),
]


def create_schema(con):
    """Create the statistics tables and load the sample rows."""
    con.execute(
        """
        CREATE TABLE Summary (
            Year INTEGER, Month INTEGER, Day INTEGER, Week INTEGER, ExternalID BIGINT,
            Name VARCHAR, Type VARCHAR, WorkoutType VARCHAR, Distance DOUBLE,
            Elevation DOUBLE, ElapsedTime INTEGER, MovingTime INTEGER
        );
        """
    )
    con.execute(
        """
        CREATE TABLE BestEffort (
            ExternalID BIGINT, Name VARCHAR, ElapsedTime INTEGER, MovingTime INTEGER, Distance DOUBLE
        );
        """
    )
    con.execute(
        """
        CREATE TABLE Split (
            ExternalID BIGINT, Split INTEGER, ElapsedTime INTEGER, MovingTime INTEGER,
            Distance DOUBLE, ElevationDiff DOUBLE
        );
        """
    )
    con.execute(
        """
        CREATE TABLE DailySteps (
            Year INTEGER, Month INTEGER, Day INTEGER, Week INTEGER, TotalSteps INTEGER, StepGoal INTEGER
        );
        """
    )
    con.execute(
        """
        CREATE TABLE HeartRate (
            Year INTEGER, Month INTEGER, Day INTEGER, Week INTEGER,
            WellnessMinAvgHR INTEGER, WellnessMaxAvgHR INTEGER, RestingHR INTEGER
        );
        """
    )
    con.executemany("INSERT INTO Summary VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", SUMMARY_ROWS)
    con.executemany("INSERT INTO BestEffort VALUES (?, ?, ?, ?, ?)", BEST_EFFORT_ROWS)
    con.executemany("INSERT INTO Split VALUES (?, ?, ?, ?, ?, ?)", SPLIT_ROWS)
    con.executemany("INSERT INTO DailySteps VALUES (?, ?, ?, ?, ?, ?)", DAILY_STEPS_ROWS)
    con.executemany("INSERT INTO HeartRate VALUES (?, ?, ?, ?, ?, ?, ?)", HEART_RATE_ROWS)


@pytest.fixture(scope="function")
def duckdb_conn(tmp_path):
    """Provide isolated DuckDB connection per test, loaded with sample rows."""
    import duckdb

    db_path = tmp_path / "test.duckdb"
    con = duckdb.connect(str(db_path))
    create_schema(con)

    yield con
    con.close()


@pytest.fixture
def db_file(tmp_path):
    """Provide a closed database file with the sample rows."""
    import duckdb

    db_path = tmp_path / "stats.duckdb"
    con = duckdb.connect(str(db_path))
    create_schema(con)
    con.close()
    return db_path


@pytest.fixture
def executor(duckdb_conn):
    return QueryExecutor(duckdb_conn)


@pytest.fixture
def stats_service(executor):
    return StatsService(executor)


class FakeCursor:
    """In-memory stand-in for a DuckDB cursor: fetchmany and close only."""

    def __init__(self, rows):
        self._rows = list(rows)
        self.close_calls = 0

    def fetchmany(self, size):
        batch, self._rows = self._rows[:size], self._rows[size:]
        return batch

    def close(self):
        self.close_calls += 1


@pytest.fixture
def make_cursor():
    """Factory building a RowCursor over in-memory rows."""

    def factory(rows, batch_size=2):
        return RowCursor(FakeCursor(rows), query="select fake", batch_size=batch_size)

    return factory


@pytest.fixture
def mock_logger():
    """Provide a mock logger."""
    return MagicMock()
