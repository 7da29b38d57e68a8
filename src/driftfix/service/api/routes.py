"""
API route registration.
"""

from typing import TYPE_CHECKING

from aiohttp import web

from driftfix.service.api.handlers.health import HealthHandler
from driftfix.service.api.handlers.migrations import MigrationsHandler

if TYPE_CHECKING:
    from driftfix.service.server import MigrationService


def setup_routes(app: web.Application, service: "MigrationService") -> None:
    """
    Register all API routes.

    Args:
        app: aiohttp Application
        service: MigrationService instance for handler access
    """
    health = HealthHandler(service)
    migrations = MigrationsHandler(service)

    prefix = "/api/v1"

    app.router.add_routes(
        [
            web.get("/health", health.health),
            web.get(f"{prefix}/migrations/token", migrations.token),
            web.get(f"{prefix}/migrations/status", migrations.status),
            web.post(f"{prefix}/migrations/run", migrations.run),
        ]
    )
