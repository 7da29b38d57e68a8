"""
Migration stores.

The store is the database a run reads and writes; ``create_store`` builds
one from the ``store`` section of the configuration.
"""

from typing import Any

from driftfix.exceptions import ConfigurationError
from driftfix.stores.base import BaseStore
from driftfix.stores.duckdb import DuckDBStore


def create_store(store_config: dict[str, Any], name: str = "default") -> BaseStore:
    """
    Create a store from configuration.

    Args:
        store_config: The ``store`` configuration section
        name: Store name used in logs

    Returns:
        Store instance (not yet connected)
    """
    store_type = store_config.get("type", "duckdb")
    if store_type == "duckdb":
        return DuckDBStore(name, store_config)
    raise ConfigurationError(
        f"Unsupported store type '{store_type}'. Supported types: duckdb",
        details={"type": store_type},
    )


__all__ = ["BaseStore", "DuckDBStore", "create_store"]
