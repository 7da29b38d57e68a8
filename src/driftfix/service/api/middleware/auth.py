"""
API key authentication and authorization.

Every ``/api/`` request must carry a configured API key (Authorization:
Bearer <key> or X-API-Key). Handlers then call ``authorize`` which checks
the key's permission AND, for state-changing actions, a CSRF token.
Either check failing denies the request.
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Any

from aiohttp import web

from driftfix.exceptions import AuthorizationDenied
from driftfix.service.api.errors import APIError, ErrorCode
from driftfix.service.api.tokens import CSRFTokens
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.service.api.middleware.auth")

MANAGE_OPTIONS = "manage_options"
MANAGE_NETWORK = "manage_network"


@dataclass
class APIKey:
    """A configured API key with associated permissions."""

    name: str
    key: str
    permissions: list[str] = field(default_factory=lambda: [MANAGE_OPTIONS])


class AuthConfig:
    """Parsed authentication configuration."""

    def __init__(self, config: dict[str, Any]) -> None:
        self.api_keys: list[APIKey] = []
        self.whitelist: list[str] = config.get("whitelist", ["/health"])

        for key_conf in config.get("api_keys", []) or []:
            name = key_conf.get("name", "unnamed")
            key_value = key_conf.get("key", "")
            if not key_value:
                logger.warning(f"API key '{name}' has no key value, skipping")
                continue
            perms = list(key_conf.get("permissions", [MANAGE_OPTIONS]))
            self.api_keys.append(APIKey(name=name, key=str(key_value), permissions=perms))

        self.tokens = CSRFTokens(config.get("csrf_secret"), float(config.get("csrf_ttl", 3600)))

        # Lookup by key hash for constant-time comparison
        self._key_lookup: dict[str, APIKey] = {}
        for api_key in self.api_keys:
            key_hash = hashlib.sha256(api_key.key.encode()).hexdigest()
            self._key_lookup[key_hash] = api_key

    def find_key(self, provided: str) -> APIKey | None:
        """Find an API key by value using constant-time comparison."""
        provided_hash = hashlib.sha256(provided.encode()).hexdigest()
        for stored_hash, api_key in self._key_lookup.items():
            if hmac.compare_digest(provided_hash, stored_hash):
                return api_key
        return None


AUTH_CONFIG_KEY = web.AppKey("auth_config", AuthConfig)


def _is_whitelisted(path: str, whitelist: list[str]) -> bool:
    """Exact matches, or prefix matches for entries ending with *."""
    for entry in whitelist:
        if entry.endswith("*"):
            if path.startswith(entry[:-1]):
                return True
        elif path == entry:
            return True
    return False


def authorize(request: web.Request, permission: str, *, action: str | None = None, token: str | None = None) -> APIKey:
    """
    Check that the authenticated key holds ``permission`` and, when
    ``action`` is given, that ``token`` is a valid CSRF token for it.

    Raises:
        AuthorizationDenied: If either check fails
    """
    api_key: APIKey | None = request.get("auth_key")
    if api_key is None:
        raise AuthorizationDenied("Request is not authenticated", reason="unauthenticated")

    if permission not in api_key.permissions:
        raise AuthorizationDenied(
            f"API key '{api_key.name}' lacks '{permission}' permission",
            reason="missing_permission",
        )

    if action is not None:
        auth_config = request.app[AUTH_CONFIG_KEY]
        if not auth_config.tokens.verify(token, api_key.name, action):
            raise AuthorizationDenied(f"Missing or invalid CSRF token for '{action}'", reason="invalid_token")

    return api_key


def setup_auth(app: web.Application, config: dict[str, Any]) -> AuthConfig:
    """
    Setup API key authentication middleware.

    Config schema (from config.yaml):
        service:
          auth:
            api_keys:
              - name: "ops"
                key: "${DRIFTFIX_API_KEY}"
                permissions: ["manage_options", "manage_network"]
            csrf_secret: "${DRIFTFIX_CSRF_SECRET}"
            csrf_ttl: 3600

    Args:
        app: aiohttp Application
        config: Auth configuration dict from ``config["service"]["auth"]``
    """
    auth_config = AuthConfig(config)
    app[AUTH_CONFIG_KEY] = auth_config

    if not auth_config.api_keys:
        logger.warning("No API keys configured; all API requests will be rejected")

    @web.middleware
    async def auth_middleware(request: web.Request, handler: Any) -> web.Response:
        path = request.path

        if _is_whitelisted(path, auth_config.whitelist) or not path.startswith("/api/"):
            return await handler(request)

        token: str | None = None
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
        if not token:
            token = request.headers.get("X-API-Key") or None

        if not token:
            raise APIError(
                code=ErrorCode.UNAUTHORIZED,
                message="Missing API key. Provide via Authorization: Bearer <key> or X-API-Key header.",
                status=401,
            )

        api_key = auth_config.find_key(token)
        if api_key is None:
            raise APIError(code=ErrorCode.UNAUTHORIZED, message="Invalid API key", status=401)

        request["auth_key"] = api_key
        return await handler(request)

    app.middlewares.append(auth_middleware)
    logger.info(f"API authentication enabled with {len(auth_config.api_keys)} key(s)")
    return auth_config
