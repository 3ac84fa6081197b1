import asyncio
import time
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger()


def seconds_until_next_tick(now: float, interval: float) -> float:
    """Delay from `now` (epoch seconds) to the next wall-clock multiple of `interval`."""
    return interval - (now % interval)


class BaseWorker(ABC):
    """Base class for interval-driven background workers."""

    def __init__(self, worker_name: str, interval: float = 60):
        self.worker_name = worker_name
        self.interval = interval
        self.is_running = False
        self.shutdown_event = asyncio.Event()
        self.last_run_at: float | None = None
        self.last_success: bool | None = None

    async def shutdown(self) -> None:
        """Graceful shutdown of worker."""
        self.is_running = False
        self.shutdown_event.set()
        logger.info("worker_shutting_down", worker=self.worker_name)

    async def run(self) -> None:
        """Main worker loop: execute, then wait for the next interval boundary or shutdown."""
        self.is_running = True
        logger.info("worker_started", worker=self.worker_name, interval=self.interval)

        while self.is_running and not self.shutdown_event.is_set():
            start_time = time.monotonic()
            try:
                success = await self.execute()
            except asyncio.CancelledError:
                logger.info("worker_cancelled", worker=self.worker_name)
                break
            except Exception as e:
                logger.error("worker_tick_failed", worker=self.worker_name, error=str(e), exc_info=True)
                success = False

            self.last_run_at = time.time()
            self.last_success = success
            duration = time.monotonic() - start_time
            if success:
                logger.info("worker_tick_completed", worker=self.worker_name, duration=duration)
            else:
                logger.warning("worker_tick_completed_with_errors", worker=self.worker_name, duration=duration)

            # Wait for the next aligned tick, but wake up immediately on shutdown
            try:
                await asyncio.wait_for(
                    self.shutdown_event.wait(),
                    timeout=seconds_until_next_tick(time.time(), self.interval),
                )
            except asyncio.TimeoutError:
                pass

        self.is_running = False
        logger.info("worker_stopped", worker=self.worker_name)

    def get_health_status(self) -> dict:
        return {
            "status": "running" if self.is_running else "stopped",
            "last_run_at": self.last_run_at,
            "last_success": self.last_success,
        }

    @abstractmethod
    async def execute(self) -> bool:
        """Execute one tick. Must be implemented by subclasses."""
        pass
