"""
Tests for configuration loading and resolution.
"""

import pytest

from driftfix.config.loader import DEFAULTS, Config, _merge_dict, config_from_dict, load_config
from driftfix.config.resolver import unresolved_placeholders
from driftfix.exceptions import ConfigurationError


class TestConfig:
    """Tests for Config class."""

    def test_basic_access(self):
        cfg = Config({"name": "test", "store": {"type": "duckdb"}})
        assert cfg.get("name") == "test"
        assert cfg.store == {"type": "duckdb"}

    def test_dot_notation(self):
        cfg = Config({"store": {"path": "site.duckdb"}})
        assert cfg.get("store.path") == "site.duckdb"

    def test_dot_notation_missing_returns_default(self):
        cfg = Config({"a": 1})
        assert cfg.get("a.b.c", "fallback") == "fallback"

    def test_contains(self):
        cfg = Config({"a": {"b": 1}})
        assert "a" in cfg
        assert "a.b" in cfg
        assert "a.c" not in cfg
        assert "z" not in cfg

    def test_getitem(self):
        cfg = Config({"name": "test", "nested": {"key": "val"}})
        assert cfg["name"] == "test"
        nested = cfg["nested"]
        assert isinstance(nested, Config)
        assert nested["key"] == "val"
        assert cfg["nested.key"] == "val"

    def test_getitem_missing_raises(self):
        with pytest.raises(KeyError):
            _ = Config({"a": 1})["missing"]

    def test_iter_keys_values_items(self):
        data = {"a": 1, "b": 2}
        cfg = Config(data)
        assert list(cfg) == ["a", "b"]
        assert set(cfg.keys()) == {"a", "b"}
        assert set(cfg.values()) == {1, 2}
        assert set(cfg.items()) == {("a", 1), ("b", 2)}


class TestValidate:
    def test_defaults_are_valid(self):
        config_from_dict({}).validate()

    def test_section_must_be_dict(self):
        with pytest.raises(ConfigurationError, match="must be a dictionary"):
            config_from_dict({"store": "bad"}).validate()

    @pytest.mark.parametrize("value", [0, -5, "10", True])
    def test_batch_size(self, value):
        with pytest.raises(ConfigurationError, match="batch_size"):
            config_from_dict({"migrations": {"batch_size": value}}).validate()

    def test_lock_timeout(self):
        with pytest.raises(ConfigurationError, match="lock_timeout"):
            config_from_dict({"migrations": {"lock_timeout": 0}}).validate()

    def test_table_prefix(self):
        with pytest.raises(ConfigurationError, match="table_prefix"):
            config_from_dict({"site": {"table_prefix": ""}}).validate()

    def test_api_keys_must_be_list(self):
        with pytest.raises(ConfigurationError, match="api_keys"):
            config_from_dict({"service": {"auth": {"api_keys": "secret"}}}).validate()

    def test_unset_secret_variable_rejected(self, monkeypatch):
        monkeypatch.delenv("DRIFTFIX_UNSET_KEY", raising=False)
        monkeypatch.delenv("DRIFTFIX_UNSET_CSRF", raising=False)
        cfg = config_from_dict(
            {
                "service": {
                    "auth": {
                        "api_keys": [{"name": "ops", "key": "${DRIFTFIX_UNSET_KEY}"}],
                        "csrf_secret": "${DRIFTFIX_UNSET_CSRF}",
                    }
                }
            }
        )
        with pytest.raises(ConfigurationError) as exc_info:
            cfg.validate()
        message = str(exc_info.value)
        assert "'service.auth.api_keys[0].key' references unset environment variable 'DRIFTFIX_UNSET_KEY'" in message
        assert "'service.auth.csrf_secret' references unset environment variable 'DRIFTFIX_UNSET_CSRF'" in message

    def test_set_secret_variable_accepted(self, monkeypatch):
        monkeypatch.setenv("DRIFTFIX_TEST_KEY", "s3cret")
        cfg = config_from_dict({"service": {"auth": {"api_keys": [{"name": "ops", "key": "${DRIFTFIX_TEST_KEY}"}]}}})
        cfg.validate()
        assert cfg.get("service.auth.api_keys")[0]["key"] == "s3cret"

    def test_unset_variable_outside_auth_allowed(self, monkeypatch):
        monkeypatch.delenv("DRIFTFIX_UNSET_VAR", raising=False)
        config_from_dict({"geocoding": {"user_agent": "${DRIFTFIX_UNSET_VAR}"}}).validate()

    def test_errors_collected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            config_from_dict({"migrations": {"batch_size": 0, "lock_timeout": -1}}).validate()
        assert "batch_size" in str(exc_info.value)
        assert "lock_timeout" in str(exc_info.value)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_defaults_merged(self, tmp_path):
        (tmp_path / "config.yaml").write_text("store:\n  path: site.duckdb\n")
        cfg = load_config(tmp_path)
        assert cfg.get("store.path") == "site.duckdb"
        assert cfg.get("store.type") == "duckdb"
        assert cfg.get("migrations.batch_size") == DEFAULTS["migrations"]["batch_size"]
        assert cfg.get("site.table_prefix") == "wp_"

    def test_defaults_not_mutated(self, tmp_path):
        (tmp_path / "config.yaml").write_text("migrations:\n  batch_size: 7\n")
        load_config(tmp_path)
        assert DEFAULTS["migrations"]["batch_size"] == 100

    def test_missing_config_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml"):
            load_config(tmp_path)

    def test_env_overlay(self, tmp_path):
        (tmp_path / "config.yaml").write_text("site:\n  table_prefix: wp_\n  multisite: false\n")
        (tmp_path / "config.prod.yaml").write_text("site:\n  multisite: true\n")
        cfg = load_config(tmp_path, env="prod")
        assert cfg.get("site.table_prefix") == "wp_"
        assert cfg.get("site.multisite") is True

    def test_empty_config_uses_defaults(self, tmp_path):
        (tmp_path / "config.yaml").write_text("")
        cfg = load_config(tmp_path)
        assert cfg.get("store.path") == ":memory:"

    def test_invalid_yaml_raises(self, tmp_path):
        (tmp_path / "config.yaml").write_text(":\n  :\n  invalid: [")
        with pytest.raises(ConfigurationError, match="Error parsing"):
            load_config(tmp_path)

    def test_non_mapping_raises(self, tmp_path):
        (tmp_path / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_config(tmp_path)

    def test_env_var_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DRIFTFIX_TEST_KEY", "s3cret")
        (tmp_path / "config.yaml").write_text(
            "service:\n  auth:\n    api_keys:\n      - name: ops\n        key: ${DRIFTFIX_TEST_KEY}\n"
        )
        cfg = load_config(tmp_path)
        assert cfg.get("service.auth.api_keys")[0]["key"] == "s3cret"

    def test_unset_env_var_left_as_is(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DRIFTFIX_UNSET_VAR", raising=False)
        (tmp_path / "config.yaml").write_text("geocoding:\n  user_agent: ${DRIFTFIX_UNSET_VAR}\n")
        assert load_config(tmp_path).get("geocoding.user_agent") == "${DRIFTFIX_UNSET_VAR}"

    def test_env_placeholder_substitution(self, tmp_path):
        (tmp_path / "config.yaml").write_text("store:\n  path: data/{env}/site.duckdb\n")
        cfg = load_config(tmp_path, env="staging")
        assert cfg.get("store.path") == "data/staging/site.duckdb"


class TestMergeDict:
    """Tests for _merge_dict helper."""

    def test_simple_override(self):
        base = {"a": 1, "b": 2}
        _merge_dict(base, {"b": 3})
        assert base == {"a": 1, "b": 3}

    def test_nested_merge(self):
        base = {"a": {"x": 1, "y": 2}}
        _merge_dict(base, {"a": {"y": 3, "z": 4}})
        assert base == {"a": {"x": 1, "y": 3, "z": 4}}

    def test_replace_non_dict_with_dict(self):
        base = {"a": "string"}
        _merge_dict(base, {"a": {"nested": True}})
        assert base == {"a": {"nested": True}}


class TestUnresolvedPlaceholders:
    def test_paths_reported(self):
        data = {"a": {"b": "x-${ONE}-${TWO}", "c": ["ok", "${THREE}"]}, "d": 5}
        assert list(unresolved_placeholders(data)) == [("a.b", "ONE"), ("a.b", "TWO"), ("a.c[1]", "THREE")]

    def test_env_name_is_not_a_variable(self):
        assert list(unresolved_placeholders({"path": "data/{env}/x", "price": "$5"})) == []
