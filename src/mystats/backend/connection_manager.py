"""
DuckDB connection handling and open-handle tracking.

``get_db_connection`` opens the statistics store for the lifetime of a
``with`` block. Every connection it opens and every row cursor the executor
hands out is registered with the module level ``ResourceMonitor`` so that a
handle dropped without ``close()`` shows up in the logs.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
import weakref
from pathlib import Path
from typing import Any, Dict, Generator, Optional

import duckdb

CONNECTION = "connection"
CURSOR = "cursor"


class ResourceMonitor:
    """Keeps track of open connections and row cursors."""

    def __init__(self):
        self._handles: Dict[int, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._logger = logging.getLogger(__name__)

    def register(self, handle: Any, kind: str, label: str) -> None:
        """Start tracking ``handle`` until ``release`` is called."""
        with self._lock:
            self._handles[id(handle)] = {
                "kind": kind,
                "label": label,
                "opened_at": time.time(),
                "thread_id": threading.get_ident(),
                "ref": weakref.ref(handle, self._collected),
            }
        self._logger.debug(f"Opened {kind} {id(handle)}: {label}")

    def release(self, handle: Any) -> None:
        with self._lock:
            info = self._handles.pop(id(handle), None)
        if info is not None:
            self._logger.debug(f"Closed {info['kind']} {id(handle)}: {info['label']}")

    def _collected(self, ref: weakref.ref) -> None:
        with self._lock:
            for handle_id, info in list(self._handles.items()):
                if info["ref"] is ref:
                    del self._handles[handle_id]
                    break
            else:
                return
        self._logger.warning(
            f"{info['kind'].capitalize()} {handle_id} ({info['label']}) was garbage collected without close()"
        )

    def active(self, kind: Optional[str] = None) -> Dict[int, Dict[str, Any]]:
        """Snapshot of the tracked handles, optionally restricted to one kind."""
        with self._lock:
            return {
                handle_id: dict(info)
                for handle_id, info in list(self._handles.items())
                if kind is None or info["kind"] == kind
            }

    def log_stats(self) -> None:
        handles = self.active()
        if not handles:
            self._logger.debug("No open connections or cursors")
            return
        self._logger.warning(f"Open handles: {len(handles)}")
        now = time.time()
        for handle_id, info in handles.items():
            self._logger.warning(
                f"  {info['kind']} {handle_id}: {info['label']}, "
                f"age: {now - info['opened_at']:.1f}s, thread: {info['thread_id']}"
            )


resource_monitor = ResourceMonitor()


@contextlib.contextmanager
def get_db_connection(
    db_path: Path, read_only: bool = True, logger_obj: Optional[logging.Logger] = None
) -> Generator[duckdb.DuckDBPyConnection, None, None]:
    """
    Open the statistics store for the duration of a ``with`` block.

    A missing database opened read-only is replaced by an empty in-memory
    store so listing calls return nothing instead of failing; a writable
    open creates the file.

    Args:
        db_path: Path to the DuckDB file
        read_only: Whether to open in read-only mode
        logger_obj: Optional logger, defaults to this module's logger

    Yields:
        The open connection; closed when the block exits

    Raises:
        duckdb.Error: If the store cannot be opened
    """
    logger_obj = logger_obj or logging.getLogger(__name__)

    database = db_path.as_posix()
    if not db_path.exists():
        if read_only:
            logger_obj.warning(f"Database {db_path} not found, using an empty in-memory store")
            database, read_only = ":memory:", False
        else:
            logger_obj.info(f"Creating database {db_path}")

    try:
        conn = duckdb.connect(database=database, read_only=read_only)
    except duckdb.Error as e:
        logger_obj.error(f"Cannot open database {database}: {e}", exc_info=True)
        raise

    resource_monitor.register(conn, CONNECTION, database)
    try:
        yield conn
    finally:
        resource_monitor.release(conn)
        conn.close()


def get_connection_stats() -> Dict[str, Any]:
    """Counts of the connections and cursors that are still open."""
    handles = resource_monitor.active()
    kinds = [info["kind"] for info in handles.values()]
    return {
        "active_count": kinds.count(CONNECTION),
        "open_cursors": kinds.count(CURSOR),
        "handles": handles,
    }


def log_connection_leaks() -> None:
    """Log every connection or cursor that has not been closed yet."""
    resource_monitor.log_stats()
