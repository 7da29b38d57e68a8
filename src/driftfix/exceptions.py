"""
driftfix exception hierarchy.

All domain-specific exceptions inherit from DriftfixError, making it easy
to catch any migration error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    DriftfixError
    ├── ConfigurationError        - config loading, parsing, validation
    ├── InitializationError       - startup orchestration failures
    ├── StoreError                - store connection / statement failures
    ├── MigrationError            - structural failure raised inside a step
    ├── DuplicateVersionError     - step registered twice (programmer error)
    ├── StepNotFoundError         - named step is not registered
    ├── StepFailed                - a step failed at the step boundary
    ├── ScopeLockedError          - another run holds the scope lock
    ├── ExternalLookupFailed      - one external lookup failed (per record)
    └── AuthorizationDenied       - trigger adapter rejected the caller
"""

from __future__ import annotations


class DriftfixError(Exception):
    """Base exception for all driftfix errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(DriftfixError):
    """Raised when configuration loading, parsing, or validation fails."""


class InitializationError(DriftfixError):
    """Raised during startup when a required component fails to initialize.

    Exception chaining is suppressed (``from None``) by the initializer to
    keep CLI output clean.
    """


# --- Store -------------------------------------------------------------------


class StoreError(DriftfixError):
    """Raised when the store cannot be reached or a statement fails."""


# --- Migrations --------------------------------------------------------------


class MigrationError(DriftfixError):
    """Raised by a step when its target state is inconsistent.

    Example: both the old and the new name of a renamed table exist.
    """


class DuplicateVersionError(DriftfixError):
    """Raised when a step with the same name is registered twice."""

    def __init__(self, step_name: str, version: str | None = None) -> None:
        super().__init__(
            f"Migration step '{step_name}' is already registered",
            details={"step": step_name, "version": version},
        )
        self.step_name = step_name
        self.version = version


class StepNotFoundError(DriftfixError):
    """Raised when a step name is not present in the registry."""

    def __init__(self, step_name: str) -> None:
        super().__init__(f"Migration step not found: {step_name}", details={"step": step_name})
        self.step_name = step_name


class StepFailed(DriftfixError):
    """Raised (or reported) when a step fails; the run halts for that scope."""

    def __init__(self, step_name: str, cause: BaseException, *, version: str | None = None, scope: str | None = None) -> None:
        full = f"Migration step '{step_name}' failed: {cause}"
        super().__init__(full, details={"step": step_name, "version": version, "scope": scope})
        self.step_name = step_name
        self.cause = cause
        self.version = version
        self.scope = scope
        self.__cause__ = cause


class ScopeLockedError(DriftfixError):
    """Raised when a scope lock cannot be acquired in time, or is lost mid-run."""

    def __init__(self, scope_id: str, *, owner: str | None = None) -> None:
        holder = f" (held by {owner})" if owner else ""
        super().__init__(
            f"Scope '{scope_id}' is locked by another migration run{holder}",
            details={"scope": scope_id, "owner": owner},
        )
        self.scope_id = scope_id
        self.owner = owner


class ExternalLookupFailed(DriftfixError):
    """Raised when a single external lookup fails.

    Steps catch this per record, log it and skip the record; it is never
    escalated to StepFailed.
    """

    def __init__(self, query: str, reason: str) -> None:
        super().__init__(f"Lookup failed for '{query}': {reason}", details={"query": query})
        self.query = query
        self.reason = reason


# --- Authorization -----------------------------------------------------------


class AuthorizationDenied(DriftfixError):
    """Raised by a trigger adapter when the caller is not allowed to run migrations."""

    def __init__(self, message: str, *, reason: str = "forbidden") -> None:
        super().__init__(message, details={"reason": reason})
        self.reason = reason
