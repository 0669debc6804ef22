"""Wiring of the job engine: one store, one manager and one runner per process."""

from dataclasses import dataclass
from typing import Optional

from tariffworks.config import Settings
from tariffworks.jobs.manager import JobManager
from tariffworks.jobs.runner import JobRunner
from tariffworks.logging_config import get_logger
from tariffworks.storage.job_store import JobStore

logger = get_logger(__name__)


@dataclass
class JobContext:
    settings: Settings
    store: JobStore
    manager: JobManager
    runner: JobRunner

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[JobStore] = None) -> "JobContext":
        store = store or JobStore.from_settings(settings)
        manager = JobManager(store)
        return cls(settings=settings, store=store, manager=manager, runner=JobRunner(manager))

    async def init(self) -> None:
        await self.store.init()
        await self.runner.start()
        logger.info(
            f"Job engine started (storage: {self.store.mode}, "
            f"chunk sizes: {self.settings.chunk_sizes})"
        )

    async def close(self) -> None:
        await self.runner.stop()
        await self.store.close()
        logger.info("Job engine stopped")

    async def __aenter__(self) -> "JobContext":
        await self.init()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
