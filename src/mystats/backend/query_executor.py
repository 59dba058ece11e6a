"""
Query execution against the DuckDB store.

``QueryExecutor`` wraps one long-lived connection handed to it by the caller.
Every query runs on its own DuckDB cursor, so several callers may share the
executor without interleaving rows of the same result set. Results are
returned as ``RowCursor`` objects which must be closed by the consumer,
preferably with a ``with`` block.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from decimal import Decimal
from pathlib import Path
from typing import Any, Generator, Iterator, List, Optional, Sequence, Tuple

import duckdb

from mystats.backend.connection_manager import CURSOR, get_db_connection, resource_monitor
from mystats.backend.errors import QueryFailedError, ScanCancelledError, ScanMismatchError
from mystats.config.database import DatabaseConfig
from mystats.config.settings import Settings
from mystats.utils.query_builder import (
    BoundQuery,
    OrderConfig,
    OrderOption,
    QueryOption,
    TableOption,
    build_query,
    with_order,
    with_table,
)


def _convert(value: Any, target: type, index: int) -> Any:
    if target is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif target is float:
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return float(value)
    elif target is str:
        if isinstance(value, str):
            return value
    else:
        raise ScanMismatchError(f"unsupported scan target {target!r} for column {index}")
    raise ScanMismatchError(
        f"column {index}: cannot scan {value!r} ({type(value).__name__}) into {target.__name__}"
    )


def scan_row(row: Sequence[Any], types: Sequence[type]) -> Tuple[Any, ...]:
    """
    Convert one row into a typed tuple.

    Args:
        row: Raw row values from the store
        types: Expected python type (int, float or str) for each column

    Returns:
        Tuple of converted values

    Raises:
        ScanMismatchError: If the row has the wrong arity or a value cannot be converted
    """
    if len(row) != len(types):
        raise ScanMismatchError(f"expected {len(types)} columns, got {len(row)}: {tuple(row)!r}")
    return tuple(_convert(value, target, idx) for idx, (value, target) in enumerate(zip(row, types)))


class RowCursor:
    """Forward-only, lazily fetched rows of one query. Closed exactly once."""

    def __init__(self, raw_cursor: Any, query: str = "", batch_size: int = Settings.FETCH_BATCH_SIZE):
        self._raw = raw_cursor
        self.query = query
        self._batch_size = batch_size
        self._closed = False
        self.rows_read = 0
        resource_monitor.register(self, CURSOR, query)

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        while not self._closed:
            try:
                batch = self._raw.fetchmany(self._batch_size)
            except duckdb.Error as e:
                raise QueryFailedError(self.query, e) from e
            if not batch:
                return
            for row in batch:
                self.rows_read += 1
                yield tuple(row)

    def scan(
        self, *types: type, cancel_event: Optional[threading.Event] = None
    ) -> Iterator[Tuple[Any, ...]]:
        """Iterate rows converted to ``types``, stopping if ``cancel_event`` gets set."""
        for row in self:
            if cancel_event is not None and cancel_event.is_set():
                self.close()
                raise ScanCancelledError()
            yield scan_row(row, types)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        resource_monitor.release(self)
        self._raw.close()

    def __enter__(self) -> "RowCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class QueryExecutor:
    """Submits bound queries to DuckDB and hands back row cursors."""

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        logger_obj: Optional[logging.Logger] = None,
        batch_size: int = Settings.FETCH_BATCH_SIZE,
    ):
        self.conn = conn
        self.logger = logger_obj or logging.getLogger(__name__)
        self.batch_size = batch_size

    @classmethod
    @contextlib.contextmanager
    def open(
        cls,
        db_path: Optional[Path] = None,
        read_only: bool = True,
        logger_obj: Optional[logging.Logger] = None,
    ) -> Generator["QueryExecutor", None, None]:
        """Open the database and yield an executor bound to it for the block's lifetime."""
        with get_db_connection(Settings.get_db_path(db_path), read_only=read_only, logger_obj=logger_obj) as conn:
            yield cls(conn, logger_obj)

    def execute(self, bound: BoundQuery) -> RowCursor:
        """
        Run a bound query.

        Raises:
            QueryFailedError: If DuckDB rejects or fails to run the query
        """
        self.logger.debug(f"Executing query: {bound.text}")
        self.logger.debug(f"Query params: {list(bound.params)}")
        raw_cursor = self.conn.cursor()
        try:
            raw_cursor.execute(bound.text, list(bound.params))
        except duckdb.Error as e:
            raw_cursor.close()
            self.logger.error(f"Query execution error: {e}\nQuery: {bound.text}", exc_info=True)
            raise QueryFailedError(bound.text, e) from e
        return RowCursor(raw_cursor, bound.text, self.batch_size)

    def build_and_run(self, fields: Sequence[str], *options: QueryOption) -> RowCursor:
        return self.execute(build_query(fields, *options))

    # ----------------------------- Listings -----------------------------
    def query_years(self, *options: QueryOption) -> List[int]:
        """Distinct years matching ``options``, newest first. Defaults to the Summary table."""
        opts: List[QueryOption] = [o for o in options if not isinstance(o, OrderOption)]
        if not any(isinstance(o, TableOption) for o in opts):
            opts.insert(0, with_table(DatabaseConfig.SUMMARY_TABLE))
        opts.append(with_order(OrderConfig(group_by=["Year"], order_by=["Year desc"])))
        with self.build_and_run(["Year"], *opts) as cursor:
            return [year for (year,) in cursor.scan(int)]

    def query_sports(self) -> List[str]:
        """Distinct sport types in the Summary table."""
        with self.build_and_run(
            ["Type"],
            with_table(DatabaseConfig.SUMMARY_TABLE),
            with_order(OrderConfig(group_by=["Type"], order_by=["Type"])),
        ) as cursor:
            return [sport for (sport,) in cursor.scan(str)]

    def query_workouts(self) -> List[str]:
        """Distinct, non-empty workout types in the Summary table."""
        with self.build_and_run(
            [DatabaseConfig.WORKOUT_OR_EMPTY],
            with_table(DatabaseConfig.SUMMARY_TABLE),
            with_order(OrderConfig(group_by=["WorkoutType"], order_by=["WorkoutType"])),
        ) as cursor:
            return [workout for (workout,) in cursor.scan(str) if workout]

    def query_best_effort_distances(self) -> List[str]:
        """Best effort labels ordered from the longest distance to the shortest."""
        with self.build_and_run(
            ["Name", "max(Distance)"],
            with_table(DatabaseConfig.BEST_EFFORT_TABLE),
            with_order(OrderConfig(group_by=["Name"], order_by=["max(Distance) desc"])),
        ) as cursor:
            return [name for name, _ in cursor.scan(str, float)]
