"""Main entry point for the processor service."""

import asyncio
import logging
import signal
import sys
from typing import List

import structlog

from processor.config import settings
from processor.database import SessionLocal
from processor.health_server import HealthServer
from processor.heartbeat import HeartbeatWriter
from processor.outbox_dispatcher import OutboxDispatcher
from processor.processors import EvaluateProcessor
from processor.scheduler import Scheduler
from processor.worker import Worker

# Configure stdlib logging level (required for structlog.stdlib.filter_by_level)
logging.basicConfig(
    format="%(message)s",
    stream=sys.stdout,
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.LOG_FORMAT == "json" else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


class ProcessorService:
    """Runs the job worker, outbox dispatcher, calibration scheduler and monitoring."""

    def __init__(self):
        self.worker = Worker(SessionLocal)
        self.dispatcher = OutboxDispatcher(SessionLocal)
        self.scheduler = Scheduler(SessionLocal)
        self.heartbeat = HeartbeatWriter(status_callback=self._get_status)
        self.health = HealthServer(status_callback=self._get_status)
        self.running = False
        self.tasks: List[asyncio.Task] = []

    def _get_status(self) -> dict:
        status = {"worker": self.worker.get_status()}
        if settings.OUTBOX_DISPATCH_ENABLED:
            status["dispatcher"] = self.dispatcher.get_status()
        if settings.SCHEDULER_ENABLED:
            status["scheduler"] = self.scheduler.get_status()
        return status

    async def start(self) -> None:
        """Start all processor components."""
        self.running = True
        logger.info("Starting processor service")

        self.worker.register_processor(EvaluateProcessor)

        self.tasks = [
            asyncio.create_task(self.worker.run(), name="worker"),
            asyncio.create_task(self.heartbeat.run(), name="heartbeat"),
            asyncio.create_task(self.health.run(), name="health"),
        ]

        if settings.OUTBOX_DISPATCH_ENABLED:
            self.tasks.append(asyncio.create_task(self.dispatcher.run(), name="outbox_dispatcher"))
        else:
            logger.info("Outbox dispatcher disabled by configuration")

        if settings.SCHEDULER_ENABLED:
            self.tasks.append(asyncio.create_task(self.scheduler.run(), name="scheduler"))
        else:
            logger.info("Scheduler disabled by configuration")

        logger.info(
            "Processor service started",
            components=[t.get_name() for t in self.tasks],
        )

        try:
            await asyncio.gather(*self.tasks)
        except asyncio.CancelledError:
            logger.info("Tasks cancelled")

    async def stop(self) -> None:
        """Stop all processor components gracefully."""
        logger.info("Stopping processor service")
        self.running = False

        self.dispatcher.stop()
        await asyncio.gather(
            self.worker.stop(),
            self.scheduler.stop(),
            self.heartbeat.stop(),
            self.health.stop(),
        )

        for task in self.tasks:
            if not task.done():
                task.cancel()

        logger.info("Processor service stopped")


async def main() -> None:
    """Main entry point."""
    service = ProcessorService()

    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await service.start()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        await service.stop()
    except Exception as e:
        logger.error("Processor service error", error=str(e), exc_info=True)
        await service.stop()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
