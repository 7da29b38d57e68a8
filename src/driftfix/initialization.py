"""
driftfix startup initialization.

Builds every component explicitly, in order:
1. Config (with validation)
2. Logging
3. Store
4. Migration state, registry and runner

The result is returned to the caller and passed on to the trigger adapters;
nothing is kept in module-level globals.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from driftfix.config.loader import Config, load_config
from driftfix.exceptions import DriftfixError, InitializationError
from driftfix.gatherpress import build_registry
from driftfix.migrations.registry import MigrationRegistry
from driftfix.migrations.runner import MigrationRunner
from driftfix.migrations.state import MigrationState
from driftfix.scopes import Scope, discover_scopes
from driftfix.steps.geocode import NominatimGeocoder
from driftfix.stores import create_store
from driftfix.stores.base import BaseStore
from driftfix.utils.logging import setup_logging_from_config


@dataclass
class Environment:
    """Initialized components of one driftfix project."""

    config: Config
    store: BaseStore
    state: MigrationState
    registry: MigrationRegistry
    runner: MigrationRunner

    @property
    def base_prefix(self) -> str:
        return self.config.get("site.table_prefix", "wp_")

    def scopes(self, network: bool | None = None) -> list[Scope]:
        """Scopes of a run; ``network`` defaults to ``site.multisite``."""
        if network is None:
            network = bool(self.config.get("site.multisite", False))
        return discover_scopes(self.store, self.base_prefix, network=network)

    def close(self) -> None:
        self.store.close()


def build_environment(config: Config, registry: MigrationRegistry | None = None) -> Environment:
    """
    Wire store, state, registry and runner from an already loaded config.

    Args:
        config: Validated configuration
        registry: Steps to run (default: the GatherPress release steps)
    """
    store_config = dict(config.get("store", {}))
    project_dir = config.get("_project_dir")
    path = store_config.get("path", ":memory:")
    if project_dir is not None and path != ":memory:" and not Path(path).is_absolute():
        store_config["path"] = str(Path(project_dir) / path)
    store = create_store(store_config)
    state = MigrationState(store, config.get("migrations.state_table_prefix", "driftfix_"))
    registry = registry if registry is not None else build_registry()
    geocoder = NominatimGeocoder(
        base_url=config.get("geocoding.base_url"),
        timeout=float(config.get("geocoding.timeout", 10)),
        user_agent=config.get("geocoding.user_agent", "driftfix"),
    )
    runner = MigrationRunner(
        registry,
        store,
        state,
        batch_size=int(config.get("migrations.batch_size", 100)),
        services={"geocoder": geocoder},
        lock_timeout=float(config.get("migrations.lock_timeout", 30)),
        lock_stale_after=float(config.get("migrations.lock_stale_after", 900)),
    )
    return Environment(config, store, state, registry, runner)


class DriftfixInitializer:
    """Handles complete initialization of a driftfix project."""

    def __init__(self, project_dir: Path, env: str | None = None):
        self.project_dir = Path(project_dir)
        self.env = env or os.environ.get("DRIFTFIX_ENV", "dev")
        self.config: Config | None = None

    def initialize_all(self, registry: MigrationRegistry | None = None) -> Environment:
        """
        Initialize all components in the correct order.

        Raises:
            InitializationError: If any initialization step fails
        """
        self.config = self._initialize_config()
        self._initialize_logging()
        try:
            return build_environment(self.config, registry)
        except DriftfixError:
            raise
        except Exception as e:
            raise InitializationError(f"Failed to initialize migration runner: {e}") from None

    def _initialize_config(self) -> Config:
        """Initialize and validate configuration."""
        try:
            config = load_config(self.project_dir, env=self.env)
            config.validate()
            config.data["_env"] = self.env
            config.data["_project_dir"] = self.project_dir
            return config
        except (FileNotFoundError, PermissionError, ValueError, yaml.YAMLError) as e:
            raise InitializationError(str(e)) from None
        except DriftfixError:
            raise
        except Exception as e:
            raise InitializationError(f"Unexpected error loading config: {e}") from None

    def _initialize_logging(self) -> None:
        try:
            setup_logging_from_config(self.config.data, self.project_dir)
        except (OSError, ValueError, TypeError) as e:
            raise InitializationError(f"Failed to initialize logging: {e}") from None


def initialize(project_dir: Path, env: str | None = None) -> Environment:
    """
    Initialize a driftfix project.

    Args:
        project_dir: Directory holding config.yaml
        env: Environment name (default: $DRIFTFIX_ENV or "dev")

    Returns:
        Environment with config, store, state, registry and runner
    """
    return DriftfixInitializer(project_dir, env).initialize_all()
