import asyncio
import signal
from typing import Dict, Iterable, Optional

import structlog

from dispatch.container import DispatchContainer
from dispatch.domain.value_objects import TriggerKind
from dispatch.workers.base_worker import BaseWorker
from dispatch.workers.trigger_worker import TriggerWorker

logger = structlog.get_logger()

SCHEDULED_KINDS = (TriggerKind.REMINDER, TriggerKind.SURVEY, TriggerKind.UPSELL)


class WorkerManager:
    """Manager for all background workers."""

    def __init__(self):
        self.workers: Dict[str, BaseWorker] = {}
        self.tasks: Dict[str, asyncio.Task] = {}
        self.shutdown_event = asyncio.Event()

    def register_worker(self, worker: BaseWorker) -> None:
        """Register a worker with the manager."""
        self.workers[worker.worker_name] = worker
        logger.info("worker_registered", worker=worker.worker_name)

    def setup_signal_handlers(self) -> None:
        """Shut down gracefully on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(self.shutdown()))

    async def start_all(self, install_signal_handlers: bool = True) -> None:
        """Start all registered workers."""
        if install_signal_handlers:
            self.setup_signal_handlers()

        logger.info("workers_starting", count=len(self.workers))
        for worker_name, worker in self.workers.items():
            self.tasks[worker_name] = asyncio.create_task(worker.run(), name=f"worker_{worker_name}")
            logger.info("worker_task_started", worker=worker_name)

    async def shutdown(self) -> None:
        """Graceful shutdown of all workers."""
        logger.info("workers_shutdown_initiated")
        for worker in self.workers.values():
            await worker.shutdown()

        if self.tasks:
            await asyncio.gather(*self.tasks.values(), return_exceptions=True)

        self.shutdown_event.set()
        logger.info("workers_shutdown_complete")

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal."""
        await self.shutdown_event.wait()

    def get_worker_status(self) -> Dict[str, str]:
        return {name: "running" if w.is_running else "stopped" for name, w in self.workers.items()}


def create_worker_manager(
    container: DispatchContainer,
    kinds: Optional[Iterable[TriggerKind]] = None,
) -> WorkerManager:
    """Create a manager with one TriggerWorker per scheduled kind."""
    manager = WorkerManager()
    for kind in kinds or SCHEDULED_KINDS:
        manager.register_worker(TriggerWorker(kind, container))
    return manager
