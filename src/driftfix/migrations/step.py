"""
Migration step contract.

A step is one named, idempotent unit of change tagged with the schema
version that introduced it. Steps are plain immutable values; the runner
decides when to apply them.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from packaging.version import InvalidVersion, Version

from driftfix.utils.logging import get_logger

if TYPE_CHECKING:
    from driftfix.migrations.state import MigrationState
    from driftfix.scopes import Scope
    from driftfix.stores.base import BaseStore

SchemaVersion = Version

ZERO_VERSION = Version("0")


def parse_version(value: str | int | Version) -> Version:
    """
    Coerce a version-like value to a SchemaVersion.

    Args:
        value: "0.29.0", 3, or an existing Version

    Returns:
        Version instance

    Raises:
        ValueError: If the value is not a valid version
    """
    if isinstance(value, Version):
        return value
    try:
        return Version(str(value))
    except InvalidVersion as e:
        raise ValueError(f"Invalid schema version: {value!r}") from e


@dataclass
class StepContext:
    """Everything a step may touch while it runs for one scope."""

    store: BaseStore
    scope: Scope
    step: MigrationStep
    state: MigrationState
    batch_size: int = 100
    services: dict[str, Any] = field(default_factory=dict)
    mutations: int = 0
    lock_owner: str | None = None

    @property
    def logger(self):
        return get_logger(f"driftfix.steps.{self.step.name}")

    def record(self, count: int = 1) -> None:
        """Count rows changed by the step."""
        self.mutations += count

    def load_checkpoint(self) -> str | None:
        """Key of the last record fully processed by an interrupted run."""
        return self.state.get_checkpoint(self.scope.id, self.step.name)

    def save_checkpoint(self, key: Any) -> None:
        """
        Record progress of a batch step.

        Raises:
            ScopeLockedError: If the scope lock was taken over by another run
        """
        if self.lock_owner is not None:
            self.state.refresh_lock(self.scope.id, self.lock_owner)
        self.state.save_checkpoint(self.scope.id, self.step.name, str(key))

    def clear_checkpoint(self) -> None:
        self.state.clear_checkpoint(self.scope.id, self.step.name)


@dataclass(frozen=True)
class MigrationStep:
    """
    One versioned, idempotent migration.

    Attributes:
        version: Schema version the step belongs to
        name: Unique step name
        apply: Callable receiving a StepContext; raises on failure
        description: Human-readable summary
        transactional: When True the runner wraps ``apply`` in a store
            transaction (if the store supports one). Batch steps set this to
            False and commit per batch instead.
    """

    version: Version
    name: str
    apply: Callable[[StepContext], Any]
    description: str = ""
    transactional: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "version", parse_version(self.version))
        if not self.name or not self.name.strip():
            raise ValueError("Migration step name cannot be empty")
        if not callable(self.apply):
            raise TypeError(f"Migration step '{self.name}' apply must be callable")

    @property
    def display_name(self) -> str:
        return f"{self.version}:{self.name}"


def migration_step(
    version: str | int | Version,
    name: str | None = None,
    *,
    description: str | None = None,
    transactional: bool = True,
) -> Callable[[Callable[[StepContext], Any]], MigrationStep]:
    """
    Decorator that turns a function into a MigrationStep.

    Example:
        @migration_step("0.30.0", "rename-site-notification-option")
        def rename_option(ctx):
            ...
    """

    def decorator(func: Callable[[StepContext], Any]) -> MigrationStep:
        doc = inspect.getdoc(func) or ""
        return MigrationStep(
            version=parse_version(version),
            name=name or func.__name__.replace("_", "-"),
            apply=func,
            description=description if description is not None else doc.split("\n", 1)[0],
            transactional=transactional,
        )

    return decorator
