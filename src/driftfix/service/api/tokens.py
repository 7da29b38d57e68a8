"""
CSRF tokens for state-changing requests.

A token is ``<expires>.<signature>`` where the signature is an HMAC-SHA256
over the API key name, the action and the expiry time. Tokens are bound to
one key and one action and stop verifying once expired.
"""

import hashlib
import hmac
import secrets
import time

RUN_MIGRATIONS_ACTION = "run-migrations"


class CSRFTokens:
    """Issues and verifies time-limited, action-bound tokens."""

    def __init__(self, secret: str | None = None, ttl: float = 3600):
        """
        Args:
            secret: Signing secret (a random per-process secret if omitted)
            ttl: Token lifetime in seconds
        """
        self._secret = (secret or secrets.token_hex(32)).encode()
        self.ttl = ttl

    def _sign(self, key_name: str, action: str, expires: int) -> str:
        message = f"{key_name}|{action}|{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def issue(self, key_name: str, action: str, now: float | None = None) -> tuple[str, int]:
        """Return a new token and its expiry (unix time)."""
        expires = int((now if now is not None else time.time()) + self.ttl)
        return f"{expires}.{self._sign(key_name, action, expires)}", expires

    def verify(self, token: str | None, key_name: str, action: str, now: float | None = None) -> bool:
        if not token or "." not in token:
            return False
        expires_str, signature = token.split(".", 1)
        try:
            expires = int(expires_str)
        except ValueError:
            return False
        if expires < (now if now is not None else time.time()):
            return False
        return hmac.compare_digest(signature, self._sign(key_name, action, expires))
