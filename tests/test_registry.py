"""
Tests for the migration step contract and registry ordering.
"""

import pytest
from packaging.version import Version

from driftfix.exceptions import DuplicateVersionError, StepNotFoundError
from driftfix.migrations.registry import MigrationRegistry
from driftfix.migrations.step import ZERO_VERSION, MigrationStep, migration_step, parse_version


def noop(ctx):
    return None


def step(version, name, **kwargs):
    return MigrationStep(version, name, noop, **kwargs)


@pytest.mark.unit
class TestParseVersion:
    def test_string(self):
        assert parse_version("0.29.0") == Version("0.29.0")

    def test_int(self):
        assert parse_version(3) == Version("3")

    def test_passthrough(self):
        v = Version("1.2")
        assert parse_version(v) is v

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid schema version"):
            parse_version("not-a-version")

    def test_semantic_order(self):
        assert parse_version("0.10.0") > parse_version("0.9.0")


@pytest.mark.unit
class TestMigrationStep:
    def test_version_coerced(self):
        s = step("0.30.0", "a")
        assert s.version == Version("0.30.0")
        assert s.display_name == "0.30.0:a"

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            step("1", "  ")

    def test_apply_must_be_callable(self):
        with pytest.raises(TypeError):
            MigrationStep("1", "a", "not callable")

    def test_decorator_defaults(self):
        @migration_step("0.31.0")
        def backfill_things(ctx):
            """Backfill things.

            Longer explanation.
            """

        assert backfill_things.name == "backfill-things"
        assert backfill_things.description == "Backfill things."
        assert backfill_things.transactional is True

    def test_decorator_explicit(self):
        @migration_step("2", "explicit", description="desc", transactional=False)
        def f(ctx):
            pass

        assert f.name == "explicit"
        assert f.description == "desc"
        assert f.transactional is False


@pytest.mark.unit
class TestRegistryOrdering:
    def test_ordered_by_version_regardless_of_registration(self):
        registry = MigrationRegistry([step("3", "c"), step("1", "a"), step("2", "b")])
        assert [s.name for s in registry.ordered()] == ["a", "b", "c"]

    def test_ties_keep_registration_order(self):
        registry = MigrationRegistry([step("2", "z"), step("1", "first"), step("2", "a"), step("2", "m")])
        assert [s.name for s in registry] == ["first", "z", "a", "m"]

    def test_latest_version(self):
        assert MigrationRegistry().latest_version() == ZERO_VERSION
        assert MigrationRegistry([step("0.9", "a"), step("0.10", "b")]).latest_version() == Version("0.10")

    def test_duplicate_name_raises(self):
        registry = MigrationRegistry([step("1", "a")])
        with pytest.raises(DuplicateVersionError) as exc_info:
            registry.register(step("2", "a"))
        assert exc_info.value.step_name == "a"
        assert len(registry) == 1

    def test_get(self):
        s = step("1", "a")
        registry = MigrationRegistry([s])
        assert registry.get("a") is s
        assert "a" in registry
        with pytest.raises(StepNotFoundError):
            registry.get("missing")


@pytest.mark.unit
class TestPending:
    @pytest.fixture
    def registry(self):
        return MigrationRegistry(
            [step("1", "v1"), step("2", "v2a"), step("2", "v2b"), step("3", "v3")]
        )

    def test_nothing_applied(self, registry):
        assert registry.pending().names() == ["v1", "v2a", "v2b", "v3"]
        assert registry.pending(None).names() == ["v1", "v2a", "v2b", "v3"]

    def test_strictly_greater(self, registry):
        assert registry.pending("2").names() == ["v3"]

    def test_up_to_date(self, registry):
        pending = registry.pending("3")
        assert not pending
        assert len(pending) == 0

    def test_watermark_beyond_registry(self, registry):
        assert registry.pending("10").names() == []

    def test_tie_resumes_after_last_applied_step(self, registry):
        assert registry.pending("2", after_step="v2a").names() == ["v2b", "v3"]
        assert registry.pending("2", after_step="v2b").names() == ["v3"]

    def test_unknown_after_step_treats_version_as_done(self, registry):
        assert registry.pending("2", after_step="gone").names() == ["v3"]

    def test_restartable(self, registry):
        pending = registry.pending("1")
        assert list(pending) == list(pending)
        assert len(pending) == 3

    def test_snapshot_ignores_later_registration(self, registry):
        pending = registry.pending("3")
        registry.register(step("4", "v4"))
        assert pending.names() == []
        assert registry.pending("3").names() == ["v4"]
