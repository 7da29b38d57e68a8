"""
DuckDB store via ibis.

Statements go through the ibis DuckDB backend's ``raw_sql`` so that
transactions, DDL and bound parameters all run on the same underlying
connection.
"""

import re
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import ibis

from driftfix.exceptions import StoreError
from driftfix.stores.base import BaseStore
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.stores.duckdb")


class DuckDBStore(BaseStore):
    """DuckDB store wrapper using ibis.

    One DuckDB connection is shared by every caller in the process, so all
    statement execution is serialized through a re-entrant lock. An open
    transaction holds the lock until it commits or rolls back.
    """

    supports_transactions = True

    def __init__(self, name: str = "default", config: dict[str, Any] | None = None):
        super().__init__(name, config or {})
        self._connection: ibis.BaseBackend | None = None
        self._lock = threading.RLock()
        self._tx_depth = 0

    @property
    def path(self) -> str:
        return str(self.config.get("path", ":memory:"))

    @property
    def connection(self) -> ibis.BaseBackend:
        """
        Get DuckDB connection via ibis (lazy initialization).

        Returns:
            ibis.BaseBackend: ibis DuckDB backend
        """
        if self._connection is None:
            path = self.path
            if path == ":memory:":
                self._connection = ibis.duckdb.connect()
            else:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
                try:
                    self._connection = ibis.duckdb.connect(path)
                except Exception as e:
                    error_str = str(e)
                    if "lock" in error_str.lower() or "conflicting" in error_str.lower():
                        pid_match = re.search(r"PID\s+(\d+)", error_str)
                        pid_info = f" (PID: {pid_match.group(1)})" if pid_match else ""
                        raise StoreError(
                            f"Cannot open DuckDB database '{path}': file is locked by another process{pid_info}.\n"
                            f"Close other processes using this database and retry.",
                            details={"path": path},
                        ) from e
                    raise StoreError(f"Cannot open DuckDB database '{path}': {error_str}", details={"path": path}) from e
            logger.debug(f"Opened DuckDB store '{self.name}' at {path}")
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    def _raw(self, query: str, params: Sequence[Any] | None = None) -> Any:
        try:
            return self.connection.raw_sql(query, parameters=list(params) if params is not None else None)
        except StoreError:
            raise
        except Exception as e:
            summary = " ".join(query.split())[:200]
            raise StoreError(f"Statement failed on store '{self.name}': {e}", details={"query": summary}) from e

    def execute(self, query: str, params: Sequence[Any] | None = None) -> None:
        with self._lock:
            self._raw(query, params)

    def fetch_all(self, query: str, params: Sequence[Any] | None = None) -> list[tuple]:
        with self._lock:
            return [tuple(row) for row in self._raw(query, params).fetchall()]

    def table_exists(self, table_name: str) -> bool:
        count = self.fetch_value(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_schema = current_schema() AND table_name = ?",
            [table_name],
        )
        return bool(count)

    @contextmanager
    def transaction(self) -> Iterator["DuckDBStore"]:
        """
        Run the enclosed statements in one DuckDB transaction.

        Nested calls join the outermost transaction; an exception anywhere
        rolls the whole transaction back.
        """
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield self
                finally:
                    self._tx_depth -= 1
                return

            self._raw("BEGIN TRANSACTION")
            self._tx_depth = 1
            try:
                yield self
            except BaseException:
                self._tx_depth = 0
                try:
                    self._raw("ROLLBACK")
                except StoreError as rollback_error:
                    logger.error(f"Rollback failed on store '{self.name}': {rollback_error}")
                raise
            else:
                self._tx_depth = 0
                self._raw("COMMIT")

    def close(self) -> None:
        """Close connection and cleanup resources."""
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.disconnect()
                except Exception as e:
                    logger.debug(f"Error during disconnect() for {self.name}: {e}")
                self._connection = None
