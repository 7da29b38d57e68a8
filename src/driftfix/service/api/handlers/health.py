"""
Health endpoint.
"""

import time

from aiohttp import web

from driftfix import __version__
from driftfix.service.api.handlers import BaseHandler


class HealthHandler(BaseHandler):
    def __init__(self, service):
        super().__init__(service)
        self._start_time = time.time()

    async def health(self, request: web.Request) -> web.Response:
        """
        GET /health

        Liveness check; does not touch the store.
        """
        data = {
            "status": "ok",
            "version": __version__,
            "uptime_seconds": round(time.time() - self._start_time, 2),
            "latest_migration": str(self.runner.registry.latest_version()),
        }
        return await self.json_response(data, request=request)
