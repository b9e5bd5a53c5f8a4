"""Heartbeat file for external liveness checks."""

import asyncio
import json
import os
from typing import Callable, Optional

import structlog

from api.models.applications import utcnow
from processor.config import settings

logger = structlog.get_logger()


class HeartbeatWriter:
    """Periodically rewrites a small JSON file describing the processor's state."""

    def __init__(
        self,
        status_callback: Optional[Callable[[], dict]] = None,
        file_path: Optional[str] = None,
    ):
        self.file_path = file_path or settings.HEARTBEAT_FILE
        self.interval = settings.HEARTBEAT_INTERVAL
        self.status_callback = status_callback
        self.running = False
        self.pid = os.getpid()

    async def run(self) -> None:
        self.running = True
        logger.info("Heartbeat writer started", file=self.file_path, interval=self.interval)

        while self.running:
            try:
                self.write()
            except OSError as e:
                logger.error("Heartbeat write failed", error=str(e))

            await asyncio.sleep(self.interval)

        logger.info("Heartbeat writer stopped")

    async def stop(self) -> None:
        self.running = False

    def write(self) -> dict:
        """Write one heartbeat and return what was written."""
        data = {
            "timestamp": utcnow().isoformat() + "Z",
            "pid": self.pid,
            "status": "running",
        }

        if self.status_callback:
            try:
                data.update(self.status_callback())
            except Exception as e:
                logger.error("Status callback failed", error=str(e))
                data["status"] = "degraded"

        # Readers never see a half-written file
        temp_path = f"{self.file_path}.tmp"
        with open(temp_path, "w") as f:
            json.dump(data, f, default=str)
        os.replace(temp_path, self.file_path)
        return data
