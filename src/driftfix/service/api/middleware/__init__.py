"""
API middleware components.

Provides error handling and authentication.
"""

from driftfix.service.api.middleware.auth import authorize, setup_auth
from driftfix.service.api.middleware.error import error_middleware

__all__ = ["authorize", "error_middleware", "setup_auth"]
