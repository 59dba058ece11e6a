"""Tests for query execution and row scanning."""

import threading
from decimal import Decimal
from unittest.mock import MagicMock

import duckdb
import pytest

from mystats.backend.errors import QueryFailedError, ScanCancelledError, ScanMismatchError
from mystats.backend.query_executor import QueryExecutor, RowCursor, scan_row
from mystats.utils.query_builder import (
    BoundQuery,
    OrderConfig,
    with_day_of_year,
    with_order,
    with_sports,
    with_table,
    with_years,
)


class TestScanRow:
    def test_converts_columns(self):
        assert scan_row((2024, 3, Decimal("1.5"), "Run"), (int, int, float, str)) == (2024, 3, 1.5, "Run")

    def test_int_widens_to_float(self):
        assert scan_row((7,), (float,)) == (7.0,)

    def test_arity_mismatch(self):
        with pytest.raises(ScanMismatchError, match="expected 2 columns"):
            scan_row((1, 2, 3), (int, int))

    def test_type_mismatch(self):
        with pytest.raises(ScanMismatchError):
            scan_row(("2024",), (int,))
        with pytest.raises(ScanMismatchError):
            scan_row((None,), (float,))

    def test_unsupported_target(self):
        with pytest.raises(ScanMismatchError, match="unsupported scan target"):
            scan_row((1,), (bytes,))


class TestRowCursor:
    def test_iterates_all_batches(self, make_cursor):
        rows = [(i, float(i)) for i in range(5)]
        cursor = make_cursor(rows, batch_size=2)
        assert list(cursor.scan(int, float)) == rows
        assert cursor.rows_read == 5

    def test_close_is_idempotent(self, make_cursor):
        cursor = make_cursor([(1,)])
        with cursor:
            list(cursor)
        cursor.close()
        assert cursor.closed
        assert cursor._raw.close_calls == 1

    def test_closed_on_scan_error(self, make_cursor):
        cursor = make_cursor([(1,), ("bad",)])
        with pytest.raises(ScanMismatchError):
            with cursor:
                list(cursor.scan(int))
        assert cursor.closed
        assert cursor._raw.close_calls == 1

    def test_cancel_closes_and_raises(self, make_cursor):
        event = threading.Event()
        cursor = make_cursor([(1,), (2,), (3,)], batch_size=1)
        seen = []
        with pytest.raises(ScanCancelledError):
            for (value,) in cursor.scan(int, cancel_event=event):
                seen.append(value)
                event.set()
        assert seen == [1]
        assert cursor.closed

    def test_fetch_error_becomes_query_failed(self):
        raw = MagicMock()
        raw.fetchmany.side_effect = duckdb.Error("boom")
        cursor = RowCursor(raw, query="select 1")
        with pytest.raises(QueryFailedError) as excinfo:
            list(cursor)
        assert excinfo.value.query == "select 1"


class TestQueryExecutor:
    def test_execute_bound_query(self, executor):
        with executor.execute(BoundQuery("select Name from Summary where Year=? order by Name", (2024,))) as cursor:
            names = [name for (name,) in cursor.scan(str)]
        assert names == ["New Year Run", "Summer Ride", "Valentine Run"]

    def test_build_and_run_with_filters(self, executor):
        with executor.build_and_run(
            ["Year", "sum(Distance)"],
            with_table("Summary"),
            with_sports("Run"),
            with_years(2023, 2024),
            with_order(OrderConfig(group_by=["Year"], order_by=["Year"])),
        ) as cursor:
            rows = list(cursor.scan(int, float))
        assert rows == [(2023, 31000.0), (2024, 13000.0)]

    def test_day_of_year_filter_against_store(self, executor):
        with executor.build_and_run(
            ["ExternalID"],
            with_day_of_year(20, 1),
            with_order(OrderConfig(order_by=["ExternalID"])),
        ) as cursor:
            ids = [external_id for (external_id,) in cursor.scan(int)]
        assert ids == [101, 102, 104]

    def test_failed_query_raises_with_query_text(self, executor, mock_logger):
        executor.logger = mock_logger
        bound = BoundQuery("select Nope from Summary")
        with pytest.raises(QueryFailedError) as excinfo:
            executor.execute(bound)
        assert excinfo.value.query == bound.text
        assert str(excinfo.value).startswith("select caused: ")
        assert isinstance(excinfo.value.__cause__, duckdb.Error)
        mock_logger.error.assert_called_once()

    def test_each_query_gets_its_own_cursor(self, duckdb_conn):
        executor = QueryExecutor(duckdb_conn, batch_size=1)
        first = executor.execute(BoundQuery("select ExternalID from Summary order by ExternalID"))
        second = executor.execute(BoundQuery("select Name from Summary order by Name"))
        with first, second:
            assert next(iter(first.scan(int))) == (101,)
            assert next(iter(second.scan(str))) == ("Evening Ride",)
            assert [external_id for (external_id,) in first.scan(int)] == [102, 103, 104, 105, 106]

    def test_query_years(self, executor):
        assert executor.query_years() == [2024, 2023]
        assert executor.query_years(with_table("HeartRate")) == [2024]
        assert executor.query_years(with_sports("Ride"), with_order(OrderConfig(order_by=["Year"]))) == [2024, 2023]

    def test_query_sports_and_workouts(self, executor):
        assert executor.query_sports() == ["Ride", "Run"]
        assert executor.query_workouts() == ["Long Run", "Race"]

    def test_query_best_effort_distances(self, executor):
        assert executor.query_best_effort_distances() == ["10k", "5k"]

    def test_open_uses_database_file(self, db_file):
        with QueryExecutor.open(db_file) as executor:
            assert executor.query_years() == [2024, 2023]
