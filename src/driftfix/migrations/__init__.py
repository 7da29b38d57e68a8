"""
Versioned, idempotent data migrations.

A ``MigrationRegistry`` holds the steps; a ``MigrationRunner`` applies the
pending ones to each scope and records the watermark in ``MigrationState``.
"""

from driftfix.migrations.registry import MigrationRegistry, PendingSteps
from driftfix.migrations.runner import MigrationRunner, RunReport, ScopeResult, ScopeStatus, StepOutcome
from driftfix.migrations.state import MigrationState, Watermark
from driftfix.migrations.step import (
    ZERO_VERSION,
    MigrationStep,
    SchemaVersion,
    StepContext,
    migration_step,
    parse_version,
)

__all__ = [
    "MigrationRegistry",
    "MigrationRunner",
    "MigrationState",
    "MigrationStep",
    "PendingSteps",
    "RunReport",
    "SchemaVersion",
    "ScopeResult",
    "ScopeStatus",
    "StepContext",
    "StepOutcome",
    "Watermark",
    "ZERO_VERSION",
    "migration_step",
    "parse_version",
]
