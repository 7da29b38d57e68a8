"""
Migration endpoints: CSRF token, status and run.
"""

import asyncio
from typing import Any

from aiohttp import web

from driftfix.exceptions import ScopeLockedError
from driftfix.service.api.errors import ErrorCode, ValidationError
from driftfix.service.api.handlers import BaseHandler
from driftfix.service.api.middleware.auth import AUTH_CONFIG_KEY, MANAGE_NETWORK, MANAGE_OPTIONS, authorize
from driftfix.service.api.tokens import RUN_MIGRATIONS_ACTION
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.service.api.handlers.migrations")


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("1", "true", "yes", "0", "false", "no", ""):
        return value.lower() in ("1", "true", "yes")
    raise ValidationError(f"'{name}' must be a boolean", details={name: value})


class MigrationsHandler(BaseHandler):
    """Trigger surface for the migration runner."""

    async def token(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/migrations/token

        Issue a CSRF token for running migrations, bound to the calling key.
        """
        api_key = request["auth_key"]
        token, expires = request.app[AUTH_CONFIG_KEY].tokens.issue(api_key.name, RUN_MIGRATIONS_ACTION)
        return await self.json_response(
            {"token": token, "action": RUN_MIGRATIONS_ACTION, "expires_at": expires},
            request=request,
        )

    async def status(self, request: web.Request) -> web.Response:
        """
        GET /api/v1/migrations/status?network=true

        Watermark and pending steps per scope.
        """
        network = _parse_bool(request.query.get("network", "false"), "network")
        authorize(request, MANAGE_NETWORK if network else MANAGE_OPTIONS)

        def collect() -> list[dict[str, Any]]:
            env = self.environment
            return [env.runner.status(scope).to_dict() for scope in env.scopes(network=network)]

        scopes = await asyncio.to_thread(collect)
        return await self.json_response(
            {"latest_version": str(self.runner.registry.latest_version()), "scopes": scopes},
            request=request,
        )

    async def run(self, request: web.Request) -> web.Response:
        """
        POST /api/v1/migrations/run

        Body (optional JSON): {"network": false, "token": "<csrf token>"}.
        The token may also be sent in the X-CSRF-Token header. Requires
        manage_options (manage_network for a network run) and a valid token.
        """
        body: dict[str, Any] = {}
        if request.can_read_body:
            body = await request.json()
            if not isinstance(body, dict):
                raise ValidationError("Request body must be a JSON object")

        network = _parse_bool(body.get("network", False), "network")
        csrf_token = request.headers.get("X-CSRF-Token") or body.get("token")
        api_key = authorize(
            request,
            MANAGE_NETWORK if network else MANAGE_OPTIONS,
            action=RUN_MIGRATIONS_ACTION,
            token=csrf_token,
        )

        logger.info(f"Migration run requested by key '{api_key.name}' (network={network})")

        def run_all():
            env = self.environment
            return env.runner.run_many(env.scopes(network=network))

        report = await asyncio.to_thread(run_all)
        data = report.to_dict()
        if not report.success:
            locked = all(isinstance(r.error, ScopeLockedError) for r in report.failed)
            data["code"] = (ErrorCode.SCOPE_LOCKED if locked else ErrorCode.MIGRATION_FAILED).value
            data["message"] = "Migrations failed for one or more scopes"
        return await self.json_response(data, status=200 if report.success else 500, request=request)
