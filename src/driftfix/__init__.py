"""
driftfix - versioned, idempotent data migrations.

Detects and repairs data-schema drift between releases of the GatherPress
WordPress plugin: table renames, remapped post types, meta keys and
options, rewritten block markup and geocoded venue backfills.
"""

__version__ = "0.33.0"

# Exceptions
from driftfix.exceptions import (
    AuthorizationDenied,
    ConfigurationError,
    DriftfixError,
    DuplicateVersionError,
    ExternalLookupFailed,
    InitializationError,
    MigrationError,
    ScopeLockedError,
    StepFailed,
    StepNotFoundError,
    StoreError,
)

# Migrations
from driftfix.migrations import (
    MigrationRegistry,
    MigrationRunner,
    MigrationState,
    MigrationStep,
    RunReport,
    ScopeResult,
    StepContext,
    migration_step,
)
from driftfix.scopes import Scope, discover_scopes, site_scope
from driftfix.stores import DuckDBStore, create_store

__all__ = [
    "__version__",
    "AuthorizationDenied",
    "ConfigurationError",
    "DriftfixError",
    "DuckDBStore",
    "DuplicateVersionError",
    "ExternalLookupFailed",
    "InitializationError",
    "MigrationError",
    "MigrationRegistry",
    "MigrationRunner",
    "MigrationState",
    "MigrationStep",
    "RunReport",
    "Scope",
    "ScopeLockedError",
    "ScopeResult",
    "StepContext",
    "StepFailed",
    "StepNotFoundError",
    "StoreError",
    "create_store",
    "discover_scopes",
    "migration_step",
    "site_scope",
]
