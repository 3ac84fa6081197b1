import structlog

from dispatch.container import DispatchContainer
from dispatch.domain.exceptions import DispatchError
from dispatch.domain.value_objects import TriggerKind
from dispatch.workers.base_worker import BaseWorker

logger = structlog.get_logger()


class TriggerWorker(BaseWorker):
    """Runs one scheduled trigger kind per tick."""

    def __init__(self, kind: TriggerKind, container: DispatchContainer, interval: float | None = None):
        super().__init__(
            worker_name=f"{kind.value}_trigger",
            interval=interval or container.settings.worker_interval_seconds,
        )
        self.kind = kind
        self.container = container

    async def execute(self) -> bool:
        """A failed run is logged; the worker waits for the next tick."""
        try:
            summary = await self.container.runner(self.kind).run()
        except DispatchError as e:
            logger.error("scheduled_run_failed", worker=self.worker_name, error=str(e))
            return False
        return summary.errors == 0
