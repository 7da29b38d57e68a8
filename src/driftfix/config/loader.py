"""
Configuration file loading.

Loads config.yaml (plus an optional config.{env}.yaml overlay) from the
project directory and merges it over built-in defaults.
"""

import copy
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from driftfix.config.resolver import resolve_config, unresolved_placeholders
from driftfix.exceptions import ConfigurationError

DEFAULTS: dict[str, Any] = {
    "store": {"type": "duckdb", "path": ":memory:"},
    "site": {"table_prefix": "wp_", "multisite": False},
    "migrations": {
        "state_table_prefix": "driftfix_",
        "batch_size": 100,
        "lock_timeout": 30,
        "lock_stale_after": 900,
    },
    "geocoding": {
        "base_url": "https://nominatim.openstreetmap.org",
        "timeout": 10,
        "user_agent": "driftfix",
    },
    "service": {"host": "127.0.0.1", "port": 8080, "auth": {"api_keys": [], "csrf_ttl": 3600}},
    "companion": {},
    "logging": {},
}


class Config:
    """driftfix configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        self.store = data.get("store", {})
        self.site = data.get("site", {})
        self.migrations = data.get("migrations", {})

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        keys = key.split(".")
        value = self.data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if isinstance(key, str) and "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        if isinstance(key, str) and "." in key:
            value = self.data
            for k in key.split("."):
                if not isinstance(value, dict) or k not in value:
                    return False
                value = value[k]
            return True
        return key in self.data

    def __iter__(self) -> "Iterator[str]":
        return iter(self.data)

    def keys(self):
        return self.data.keys()

    def values(self):
        return self.data.values()

    def items(self):
        return self.data.items()

    def validate(self) -> None:
        """Validate configuration structure and content."""
        errors = []

        for section in ("store", "site", "migrations", "geocoding", "service", "logging"):
            value = self.data.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{section}' must be a dictionary, got {type(value).__name__}")

        batch_size = self.get("migrations.batch_size")
        if not isinstance(batch_size, int) or isinstance(batch_size, bool) or batch_size < 1:
            errors.append(f"'migrations.batch_size' must be a positive integer, got {batch_size!r}")

        for key in ("migrations.lock_timeout", "migrations.lock_stale_after", "geocoding.timeout"):
            value = self.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                errors.append(f"'{key}' must be a positive number, got {value!r}")

        prefix = self.get("site.table_prefix")
        if not isinstance(prefix, str) or not prefix:
            errors.append("'site.table_prefix' must be a non-empty string")

        api_keys = self.get("service.auth.api_keys", [])
        if not isinstance(api_keys, list):
            errors.append("'service.auth.api_keys' must be a list")

        # An unset variable must not turn into a literal API key or secret
        for path, var in unresolved_placeholders(self.get("service.auth", {}), "service.auth"):
            errors.append(f"'{path}' references unset environment variable '{var}'")

        if errors:
            raise ConfigurationError("\n".join(errors))


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load driftfix configuration.

    Args:
        project_path: Path to project root (default: current directory)
        env: Environment name (dev, staging, prod)

    Returns:
        Config instance with defaults, file values and env overrides merged
    """
    if project_path is None:
        project_path = Path.cwd()

    base_config_path = project_path / "config.yaml"
    if not base_config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a config.yaml file in your project root"
        )

    if not base_config_path.is_file():
        raise FileNotFoundError(f"Configuration path is not a file: {base_config_path}")

    config_data = copy.deepcopy(DEFAULTS)
    _merge_dict(config_data, _read_yaml(base_config_path))

    if env:
        env_config_path = project_path / f"config.{env}.yaml"
        if env_config_path.exists():
            _merge_dict(config_data, _read_yaml(env_config_path))

    config_data = resolve_config(config_data, env or "dev")

    return Config(config_data)


def config_from_dict(data: dict[str, Any], env: str = "dev") -> Config:
    """Build a Config from an in-memory mapping, merged over the defaults."""
    config_data = copy.deepcopy(DEFAULTS)
    _merge_dict(config_data, copy.deepcopy(data))
    return Config(resolve_config(config_data, env))


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read one YAML file, turning parse errors into actionable messages."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                raise ConfigurationError(
                    f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                    f"  {e}\n"
                    f"  File: {path}"
                ) from e
            raise ConfigurationError(f"Error parsing {path.name}: {e}\n  File: {path}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}\n  File: {path}")
    return data


def _merge_dict(base: dict, override: dict):
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
