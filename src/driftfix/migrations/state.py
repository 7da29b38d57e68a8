"""
Persistent migration state.

Keeps three small tables in the store, created on first use:

* ``<prefix>applied_versions`` - one watermark row per scope
* ``<prefix>step_progress`` - batch checkpoints of interrupted steps
* ``<prefix>run_locks`` - "migration in progress" markers per scope
"""

import os
import socket
import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from packaging.version import Version

from driftfix.exceptions import ScopeLockedError, StoreError
from driftfix.migrations.step import ZERO_VERSION, parse_version
from driftfix.stores.base import BaseStore
from driftfix.utils.logging import get_logger
from driftfix.utils.sql_escape import escape_identifier, validate_identifier

logger = get_logger("driftfix.migrations.state")


@dataclass(frozen=True)
class Watermark:
    """Highest applied version of a scope and the step that reached it."""

    version: Version = ZERO_VERSION
    step_name: str | None = None

    @property
    def is_initial(self) -> bool:
        return self.version == ZERO_VERSION and self.step_name is None


def _default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{threading.get_ident()}:{uuid.uuid4().hex[:8]}"


class MigrationState:
    """Reads and writes watermarks, checkpoints and scope locks."""

    def __init__(self, store: BaseStore, table_prefix: str = "driftfix_"):
        """
        Initialize migration state.

        Args:
            store: Store holding the state tables
            table_prefix: Prefix of the state table names
        """
        if not validate_identifier(table_prefix):
            raise ValueError(f"Invalid state table prefix: {table_prefix!r}")
        self.store = store
        self.table_prefix = table_prefix
        self._initialized = False
        self._init_lock = threading.Lock()

    @property
    def versions_table(self) -> str:
        return escape_identifier(f"{self.table_prefix}applied_versions")

    @property
    def progress_table(self) -> str:
        return escape_identifier(f"{self.table_prefix}step_progress")

    @property
    def locks_table(self) -> str:
        return escape_identifier(f"{self.table_prefix}run_locks")

    def ensure_tables(self) -> None:
        """Create state tables if they don't exist."""
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            self.store.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.versions_table} (
                    scope_id VARCHAR NOT NULL,
                    version VARCHAR NOT NULL,
                    step_name VARCHAR,
                    updated_at DOUBLE
                )
                """
            )
            self.store.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.progress_table} (
                    scope_id VARCHAR NOT NULL,
                    step_name VARCHAR NOT NULL,
                    last_key VARCHAR NOT NULL,
                    updated_at DOUBLE
                )
                """
            )
            self.store.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.locks_table} (
                    scope_id VARCHAR NOT NULL,
                    owner VARCHAR NOT NULL,
                    acquired_at DOUBLE NOT NULL
                )
                """
            )
            self._initialized = True
            logger.debug(f"Migration state tables ready (prefix '{self.table_prefix}')")

    # ------------------------------------------------------------------
    # Watermarks
    # ------------------------------------------------------------------

    def get_watermark(self, scope_id: str) -> Watermark:
        """Applied watermark of a scope; an absent record means version zero."""
        self.ensure_tables()
        row = self.store.fetch_one(
            f"SELECT version, step_name FROM {self.versions_table} WHERE scope_id = ?",
            [scope_id],
        )
        if row is None:
            return Watermark()
        try:
            return Watermark(parse_version(row[0]), row[1])
        except ValueError as e:
            raise StoreError(
                f"Stored watermark of scope '{scope_id}' is not a valid version: {row[0]!r}",
                details={"scope": scope_id, "version": row[0]},
            ) from e

    def set_watermark(self, scope_id: str, version: Version | str, step_name: str | None) -> None:
        """Advance (or set) the watermark of a scope."""
        self.ensure_tables()
        version_str = str(parse_version(version))
        with self.store.transaction():
            exists = self.store.fetch_value(
                f"SELECT COUNT(*) FROM {self.versions_table} WHERE scope_id = ?",
                [scope_id],
            )
            if exists:
                self.store.execute(
                    f"UPDATE {self.versions_table} SET version = ?, step_name = ?, updated_at = ? "
                    f"WHERE scope_id = ?",
                    [version_str, step_name, time.time(), scope_id],
                )
            else:
                self.store.execute(
                    f"INSERT INTO {self.versions_table} (scope_id, version, step_name, updated_at) VALUES (?, ?, ?, ?)",
                    [scope_id, version_str, step_name, time.time()],
                )

    def purge(self, scope_id: str | None = None) -> int:
        """
        Delete watermark, checkpoint and lock records.

        Args:
            scope_id: Only purge this scope (default: every scope)

        Returns:
            Number of watermark records removed
        """
        self.ensure_tables()
        where, params = ("WHERE scope_id = ?", [scope_id]) if scope_id is not None else ("", [])
        with self.store.transaction():
            removed = self.store.fetch_value(f"SELECT COUNT(*) FROM {self.versions_table} {where}", params) or 0
            for table in (self.versions_table, self.progress_table, self.locks_table):
                self.store.execute(f"DELETE FROM {table} {where}", params)
        return int(removed)

    # ------------------------------------------------------------------
    # Batch checkpoints
    # ------------------------------------------------------------------

    def get_checkpoint(self, scope_id: str, step_name: str) -> str | None:
        self.ensure_tables()
        return self.store.fetch_value(
            f"SELECT last_key FROM {self.progress_table} WHERE scope_id = ? AND step_name = ?",
            [scope_id, step_name],
        )

    def save_checkpoint(self, scope_id: str, step_name: str, last_key: str) -> None:
        self.ensure_tables()
        with self.store.transaction():
            exists = self.store.fetch_value(
                f"SELECT COUNT(*) FROM {self.progress_table} WHERE scope_id = ? AND step_name = ?",
                [scope_id, step_name],
            )
            if exists:
                self.store.execute(
                    f"UPDATE {self.progress_table} SET last_key = ?, updated_at = ? "
                    f"WHERE scope_id = ? AND step_name = ?",
                    [last_key, time.time(), scope_id, step_name],
                )
            else:
                self.store.execute(
                    f"INSERT INTO {self.progress_table} (scope_id, step_name, last_key, updated_at) VALUES (?, ?, ?, ?)",
                    [scope_id, step_name, last_key, time.time()],
                )

    def clear_checkpoint(self, scope_id: str, step_name: str) -> None:
        self.ensure_tables()
        self.store.execute(
            f"DELETE FROM {self.progress_table} WHERE scope_id = ? AND step_name = ?",
            [scope_id, step_name],
        )

    # ------------------------------------------------------------------
    # Scope locks
    # ------------------------------------------------------------------

    def try_acquire_lock(self, scope_id: str, owner: str, stale_after: float) -> bool:
        """
        Place the in-progress marker for a scope if nobody holds it.

        A marker older than ``stale_after`` seconds is taken over.
        """
        self.ensure_tables()
        now = time.time()
        with self.store.transaction():
            row = self.store.fetch_one(
                f"SELECT owner, acquired_at FROM {self.locks_table} WHERE scope_id = ?",
                [scope_id],
            )
            if row is not None:
                holder, acquired_at = row
                if now - float(acquired_at) < stale_after:
                    return False
                logger.warning(f"Taking over stale migration lock on scope '{scope_id}' held by {holder}")
                self.store.execute(f"DELETE FROM {self.locks_table} WHERE scope_id = ?", [scope_id])
            self.store.execute(
                f"INSERT INTO {self.locks_table} (scope_id, owner, acquired_at) VALUES (?, ?, ?)",
                [scope_id, owner, now],
            )
        return True

    def release_lock(self, scope_id: str, owner: str) -> None:
        self.ensure_tables()
        self.store.execute(
            f"DELETE FROM {self.locks_table} WHERE scope_id = ? AND owner = ?",
            [scope_id, owner],
        )

    def lock_holder(self, scope_id: str) -> str | None:
        self.ensure_tables()
        return self.store.fetch_value(f"SELECT owner FROM {self.locks_table} WHERE scope_id = ?", [scope_id])

    def refresh_lock(self, scope_id: str, owner: str) -> None:
        """
        Renew the marker of a lock held by ``owner``.

        Raises:
            ScopeLockedError: If the marker is gone or another run took it over
        """
        self.ensure_tables()
        with self.store.transaction():
            holder = self.lock_holder(scope_id)
            if holder != owner:
                raise ScopeLockedError(scope_id, owner=holder)
            self.store.execute(
                f"UPDATE {self.locks_table} SET acquired_at = ? WHERE scope_id = ? AND owner = ?",
                [time.time(), scope_id, owner],
            )

    def _keep_alive(self, scope_id: str, owner: str, interval: float, stop: threading.Event) -> None:
        while not stop.wait(interval):
            try:
                self.refresh_lock(scope_id, owner)
            except ScopeLockedError as e:
                logger.warning(f"Lost migration lock on scope '{scope_id}': {e}")
                return
            except StoreError as e:
                logger.warning(f"Could not renew migration lock on scope '{scope_id}': {e}")

    @contextmanager
    def scope_lock(
        self,
        scope_id: str,
        *,
        timeout: float = 30.0,
        stale_after: float = 900.0,
        poll_interval: float = 0.1,
        owner: str | None = None,
    ) -> Iterator[str]:
        """
        Hold the migration lock of a scope for the duration of the block.

        Waits up to ``timeout`` seconds for a concurrent run to finish. While
        the block runs, a background thread renews the marker every third of
        ``stale_after`` so a long run is never mistaken for a crashed one.

        Raises:
            ScopeLockedError: If the lock could not be acquired in time
        """
        owner = owner or _default_owner()
        deadline = time.monotonic() + timeout
        while not self.try_acquire_lock(scope_id, owner, stale_after):
            if time.monotonic() >= deadline:
                holder = self.lock_holder(scope_id)
                logger.warning(f"Could not acquire migration lock on scope '{scope_id}' within {timeout}s")
                raise ScopeLockedError(scope_id, owner=holder)
            time.sleep(poll_interval)

        stop = threading.Event()
        keeper = threading.Thread(
            target=self._keep_alive,
            args=(scope_id, owner, stale_after / 3, stop),
            name=f"driftfix-lock-{scope_id}",
            daemon=True,
        )
        keeper.start()
        try:
            yield owner
        finally:
            stop.set()
            keeper.join()
            self.release_lock(scope_id, owner)
