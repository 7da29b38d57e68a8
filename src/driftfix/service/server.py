"""
HTTP trigger service.

Serves the migration endpoints with aiohttp. The service is handed an
initialized Environment; it never builds its own registry or runner.
"""

from pathlib import Path
from typing import Any

from aiohttp import web

from driftfix.exceptions import InitializationError
from driftfix.initialization import Environment, initialize
from driftfix.service.api import setup_routes
from driftfix.service.api.middleware import error_middleware, setup_auth
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.service.server")


class MigrationService:
    """Holds the components the HTTP handlers work with."""

    def __init__(self, environment: Environment):
        self.environment = environment

    @property
    def config(self) -> Any:
        return self.environment.config


def create_app(environment: Environment, auth_config: dict[str, Any] | None = None) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        environment: Initialized components
        auth_config: Auth settings (default: ``service.auth`` from the config)
    """
    service = MigrationService(environment)
    if auth_config is None:
        auth_config = environment.config.get("service.auth", {}) or {}

    app = web.Application(middlewares=[error_middleware])
    setup_auth(app, auth_config)
    setup_routes(app, service)

    async def on_cleanup(app: web.Application) -> None:
        environment.close()

    app.on_cleanup.append(on_cleanup)
    return app


def run_service(*, project_dir: Path, env: str | None, host: str | None = None, port: int | None = None) -> None:
    """
    Run the HTTP trigger service (blocking).

    Args:
        project_dir: Project directory path
        env: Environment name
        host: Host to bind to (default: ``service.host``)
        port: Port to bind to (default: ``service.port``)
    """
    try:
        environment = initialize(project_dir, env)
    except InitializationError as e:
        raise RuntimeError(f"Initialization failed: {e}") from None

    host = host or environment.config.get("service.host", "127.0.0.1")
    port = port or int(environment.config.get("service.port", 8080))
    app = create_app(environment)

    async def on_startup(app: web.Application) -> None:
        logger.info(f"driftfix service started on http://{host}:{port}")
        logger.info(f"API available at http://{host}:{port}/api/v1/")

    app.on_startup.append(on_startup)
    web.run_app(app, host=host, port=port, access_log=None)
