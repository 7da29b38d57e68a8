"""
Abstract base store class.

A store is the persistent database a migration runs against. Steps talk to
it through plain SQL with bound parameters; the runner uses
``transaction()`` when ``supports_transactions`` is True.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.stores.base")


class BaseStore(ABC):
    """
    Base class for migration stores.

    Subclasses provide statement execution and table introspection. Stores
    that can group statements atomically set ``supports_transactions`` and
    override ``transaction()``; others run each statement directly and rely
    on step-level idempotency.
    """

    supports_transactions: bool = False

    def __init__(self, name: str, config: dict[str, Any]):
        """
        Initialize store.

        Args:
            name: Store name (for logs and errors)
            config: Store configuration dictionary
        """
        self.name = name
        self.config = config

    @abstractmethod
    def execute(self, query: str, params: Sequence[Any] | None = None) -> None:
        """Execute a statement that returns no rows (DDL/DML)."""

    @abstractmethod
    def fetch_all(self, query: str, params: Sequence[Any] | None = None) -> list[tuple]:
        """Execute a query and return all rows as tuples."""

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        """Return True if the table exists in the store."""

    def fetch_one(self, query: str, params: Sequence[Any] | None = None) -> tuple | None:
        """Execute a query and return the first row, or None."""
        rows = self.fetch_all(query, params)
        return rows[0] if rows else None

    def fetch_value(self, query: str, params: Sequence[Any] | None = None) -> Any:
        """Execute a query and return the first column of the first row, or None."""
        row = self.fetch_one(query, params)
        return row[0] if row else None

    @contextmanager
    def transaction(self) -> Iterator["BaseStore"]:
        """Group statements atomically (no-op for non-transactional stores)."""
        yield self

    def close(self) -> None:
        """Close the store and release resources."""

    def __enter__(self) -> "BaseStore":
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        try:
            self.close()
        except Exception as e:
            # Don't override the original exception if one occurred
            if exc_type is None:
                raise
            logger.warning(f"Error closing store {self.name} during context exit: {e}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
