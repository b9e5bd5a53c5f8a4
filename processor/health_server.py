"""HTTP health endpoint for the processor container."""

import asyncio
import json
from functools import partial
from typing import Callable, Optional

import structlog
from aiohttp import web

from processor.config import settings

logger = structlog.get_logger()

_dumps = partial(json.dumps, default=str)


class HealthServer:
    """Serves ``GET /health`` with the processor's component status.

    Responds 503 when the status callback fails or reports a stopped component.
    """

    def __init__(self, status_callback: Optional[Callable[[], dict]] = None, port: Optional[int] = None):
        self.status_callback = status_callback
        self.port = port or settings.HEALTH_PORT
        self.app = web.Application()
        self.app.router.add_get("/health", self.health_handler)
        self.runner: Optional[web.AppRunner] = None
        self.running = False

    async def health_handler(self, request: web.Request) -> web.Response:
        if not self.status_callback:
            return web.json_response({"status": "ok"})

        try:
            details = self.status_callback()
        except Exception as e:
            logger.warning("Failed to get status details", error=str(e))
            return web.json_response({"status": "unhealthy", "error": str(e)}, status=503)

        stopped = [
            name
            for name, component in details.items()
            if isinstance(component, dict) and component.get("running") is False
        ]
        if stopped:
            return web.json_response(
                {"status": "unhealthy", "stopped": stopped, "details": details},
                status=503,
                dumps=_dumps,
            )
        return web.json_response({"status": "ok", "details": details}, dumps=_dumps)

    async def run(self) -> None:
        self.running = True
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Health server started", port=self.port)

        while self.running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        self.running = False
        if self.runner:
            await self.runner.cleanup()
            logger.info("Health server stopped")
