"""
Migration runner.

Applies pending steps of a registry to one scope at a time, advancing the
scope's watermark after each step that succeeds.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from packaging.version import Version

from driftfix.exceptions import DriftfixError, ScopeLockedError, StepFailed
from driftfix.migrations.registry import MigrationRegistry
from driftfix.migrations.state import MigrationState, Watermark
from driftfix.migrations.step import ZERO_VERSION, MigrationStep, StepContext
from driftfix.scopes import Scope
from driftfix.stores.base import BaseStore
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.migrations.runner")


@dataclass
class StepOutcome:
    """Result of one applied step."""

    name: str
    version: Version
    mutations: int = 0
    duration: float = 0.0


@dataclass
class ScopeResult:
    """Outcome of running migrations for one scope."""

    scope_id: str
    from_version: Version
    to_version: Version
    outcomes: list[StepOutcome] = field(default_factory=list)
    error: DriftfixError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def mutations(self) -> int:
        return sum(o.mutations for o in self.outcomes)

    @property
    def applied(self) -> list[str]:
        return [o.name for o in self.outcomes]

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "scope": self.scope_id,
            "success": self.success,
            "from_version": str(self.from_version),
            "to_version": str(self.to_version),
            "applied": self.applied,
            "mutations": self.mutations,
        }
        if self.error is not None:
            data["error"] = {
                "type": type(self.error).__name__,
                "message": str(self.error),
                "details": self.error.details,
            }
            if isinstance(self.error, StepFailed):
                data["error"]["cause"] = str(self.error.cause)
        return data


@dataclass
class RunReport:
    """Aggregate of per-scope results for a multi-scope run."""

    results: list[ScopeResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ScopeResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[ScopeResult]:
        return [r for r in self.results if not r.success]

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        """True when some scopes succeeded and others failed."""
        return bool(self.succeeded) and bool(self.failed)

    @property
    def mutations(self) -> int:
        return sum(r.mutations for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "partial": self.partial,
            "scopes": [r.to_dict() for r in self.results],
        }


@dataclass
class ScopeStatus:
    """Watermark and pending steps of a scope."""

    scope_id: str
    watermark: Watermark
    pending: list[MigrationStep]

    @property
    def up_to_date(self) -> bool:
        return not self.pending

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope_id,
            "version": str(self.watermark.version),
            "last_step": self.watermark.step_name,
            "pending": [step.name for step in self.pending],
        }


class MigrationRunner:
    """
    Executes pending migration steps against a store.

    The registry, store and state are passed in explicitly; the runner holds
    no process-wide state of its own and performs no authorization.
    """

    def __init__(
        self,
        registry: MigrationRegistry,
        store: BaseStore,
        state: MigrationState | None = None,
        *,
        batch_size: int = 100,
        services: dict[str, Any] | None = None,
        lock_timeout: float = 30.0,
        lock_stale_after: float = 900.0,
    ):
        """
        Initialize runner.

        Args:
            registry: Steps to apply
            store: Store the steps operate on
            state: Watermark/lock storage (default: state tables in ``store``)
            batch_size: Records per batch for batch steps
            services: Collaborators exposed to steps (e.g. a geocoder)
            lock_timeout: Seconds to wait for a concurrent run on the same scope
            lock_stale_after: Seconds after which a left-over lock marker is ignored
        """
        self.registry = registry
        self.store = store
        self.state = state or MigrationState(store)
        self.batch_size = batch_size
        self.services = services or {}
        self.lock_timeout = lock_timeout
        self.lock_stale_after = lock_stale_after

    def status(self, scope: Scope) -> ScopeStatus:
        watermark = self.state.get_watermark(scope.id)
        pending = list(self.registry.pending(watermark.version, after_step=watermark.step_name))
        return ScopeStatus(scope.id, watermark, pending)

    def run(self, scope: Scope) -> ScopeResult:
        """
        Apply every pending step to a scope, in ascending version order.

        The watermark advances after each successful step. The first failing
        step stops the run; its error is returned in ``ScopeResult.error``,
        as is any other driftfix error that prevents the scope from running
        (lock contention, an unreadable watermark, a store failure).
        """
        result = ScopeResult(scope.id, ZERO_VERSION, ZERO_VERSION)
        try:
            watermark = self.state.get_watermark(scope.id)
            result.from_version = result.to_version = watermark.version
            with self.state.scope_lock(
                scope.id, timeout=self.lock_timeout, stale_after=self.lock_stale_after
            ) as owner:
                self._run_locked(scope, owner, result)
        except StepFailed as e:
            result.error = e
        except DriftfixError as e:
            result.error = e
            logger.error(f"Scope '{scope.id}' not migrated: {e}")
        return result

    def _run_locked(self, scope: Scope, owner: str, result: ScopeResult) -> None:
        watermark = self.state.get_watermark(scope.id)
        result.from_version = result.to_version = watermark.version

        pending = self.registry.pending(watermark.version, after_step=watermark.step_name)
        if not pending:
            logger.info(f"Scope '{scope.id}' is up to date at {watermark.version}")
            return

        logger.info(f"Migrating scope '{scope.id}' from {watermark.version} ({len(pending)} pending step(s))")
        for step in pending:
            self.state.refresh_lock(scope.id, owner)
            try:
                outcome = self._apply(scope, step, owner, advance=True)
            except StepFailed:
                logger.error(
                    f"Scope '{scope.id}' halted at {step.display_name}; watermark stays at {result.to_version}"
                )
                raise
            result.outcomes.append(outcome)
            result.to_version = step.version

        logger.info(
            f"Scope '{scope.id}' migrated to {result.to_version} "
            f"({len(result.outcomes)} step(s), {result.mutations} change(s))"
        )

    def run_many(self, scopes: Iterable[Scope]) -> RunReport:
        """Run each scope in turn; a failing scope does not stop the others."""
        report = RunReport()
        for scope in scopes:
            report.results.append(self.run(scope))
        if report.partial:
            logger.warning(f"{len(report.failed)} of {len(report.results)} scope(s) failed to migrate")
        return report

    def run_step(self, scope: Scope, name: str) -> StepOutcome:
        """
        Re-apply one named step to a scope, regardless of its watermark.

        The watermark is left unchanged.

        Raises:
            StepNotFoundError: If no step has that name
            StepFailed: If the step fails
            ScopeLockedError: If another run holds the scope
        """
        step = self.registry.get(name)
        with self.state.scope_lock(
            scope.id, timeout=self.lock_timeout, stale_after=self.lock_stale_after
        ) as owner:
            return self._apply(scope, step, owner, advance=False)

    def _advance(self, scope: Scope, step: MigrationStep, owner: str) -> None:
        # A run whose lock was taken over must not move the watermark
        self.state.refresh_lock(scope.id, owner)
        self.state.set_watermark(scope.id, step.version, step.name)

    def _apply(self, scope: Scope, step: MigrationStep, owner: str, *, advance: bool) -> StepOutcome:
        ctx = StepContext(
            store=self.store,
            scope=scope,
            step=step,
            state=self.state,
            batch_size=self.batch_size,
            services=self.services,
            lock_owner=owner,
        )
        logger.info(f"[{scope.id}] Applying {step.display_name}")
        start = time.monotonic()
        try:
            if step.transactional and self.store.supports_transactions:
                with self.store.transaction():
                    step.apply(ctx)
                    if advance:
                        self._advance(scope, step, owner)
            else:
                step.apply(ctx)
                if advance:
                    self._advance(scope, step, owner)
        except ScopeLockedError:
            logger.error(f"[{scope.id}] {step.display_name} stopped: scope lock was taken over")
            raise
        except Exception as e:
            logger.error(f"[{scope.id}] {step.display_name} failed: {e}")
            raise StepFailed(step.name, e, version=str(step.version), scope=scope.id) from e

        duration = time.monotonic() - start
        logger.info(f"[{scope.id}] {step.display_name} done ({ctx.mutations} change(s), {duration:.2f}s)")
        return StepOutcome(step.name, step.version, ctx.mutations, duration)
