"""
Tests for the exception hierarchy.
"""

import pytest

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


class TestHierarchy:
    """Verify all exceptions inherit from DriftfixError."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            AuthorizationDenied,
            ConfigurationError,
            DuplicateVersionError,
            ExternalLookupFailed,
            InitializationError,
            MigrationError,
            ScopeLockedError,
            StepFailed,
            StepNotFoundError,
            StoreError,
        ],
    )
    def test_inherits_from_driftfix_error(self, exc_class):
        assert issubclass(exc_class, DriftfixError)

    def test_lookup_failure_is_not_step_failure(self):
        assert not issubclass(ExternalLookupFailed, StepFailed)


class TestExceptionMessages:
    """Test exception constructors and details."""

    def test_driftfix_error(self):
        e = DriftfixError("boom", details={"k": 1})
        assert str(e) == "boom"
        assert e.message == "boom"
        assert e.details == {"k": 1}

    def test_default_details(self):
        assert MigrationError("x").details == {}

    def test_step_failed(self):
        cause = ValueError("bad row")
        e = StepFailed("rename-post-types", cause, version="0.29.0", scope="site-1")
        assert "rename-post-types" in str(e)
        assert "bad row" in str(e)
        assert e.cause is cause
        assert e.__cause__ is cause
        assert e.details == {"step": "rename-post-types", "version": "0.29.0", "scope": "site-1"}

    def test_duplicate_version(self):
        e = DuplicateVersionError("a", "1.0")
        assert e.step_name == "a"
        assert e.details["version"] == "1.0"

    def test_step_not_found(self):
        assert "missing" in str(StepNotFoundError("missing"))

    def test_scope_locked(self):
        e = ScopeLockedError("site-2", owner="host:1")
        assert "site-2" in str(e)
        assert "host:1" in str(e)
        assert ScopeLockedError("site-2").owner is None

    def test_external_lookup_failed(self):
        e = ExternalLookupFailed("Paris", "HTTP 503")
        assert e.query == "Paris"
        assert e.reason == "HTTP 503"
        assert "Paris" in str(e)

    def test_authorization_denied(self):
        e = AuthorizationDenied("nope", reason="invalid_token")
        assert e.reason == "invalid_token"
        assert e.details == {"reason": "invalid_token"}

    def test_catchable_with_base(self):
        with pytest.raises(DriftfixError):
            raise StepFailed("x", RuntimeError("y"))
