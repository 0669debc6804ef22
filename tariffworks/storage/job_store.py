"""Keyed job storage: in-memory index plus an optional durable backend.

Memory-only mode loses every job on process restart. File mode writes one JSON
record per job and reloads it lazily on a memory miss.
"""

import asyncio
from typing import Callable, Dict, List, Optional

from tariffworks.config import Settings
from tariffworks.jobs.models import JobRecord, now_ms
from tariffworks.logging_config import get_logger
from tariffworks.storage.job_backends import FileJobBackend, JobBackend

logger = get_logger(__name__)


class JobStore:
    """Fast in-memory read path with write-through to ``backend``.

    Also owns the periodic eviction sweep that bounds storage growth.
    """

    def __init__(
        self,
        backend: Optional[JobBackend] = None,
        max_age_ms: int = 60 * 60 * 1000,
        sweep_interval_ms: int = 5 * 60 * 1000,
        auto_cleanup: bool = True,
    ):
        self._jobs: Dict[str, JobRecord] = {}
        self._backend = backend
        self._max_age_ms = max_age_ms
        self._sweep_interval_ms = sweep_interval_ms
        self._auto_cleanup = auto_cleanup
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "JobStore":
        backend = FileJobBackend(settings.storage_path) if settings.durable_storage else None
        return cls(
            backend=backend,
            max_age_ms=settings.job_max_age_ms,
            sweep_interval_ms=settings.cleanup_check_interval_ms,
            auto_cleanup=settings.auto_cleanup_enabled,
        )

    @property
    def durable(self) -> bool:
        return self._backend is not None

    @property
    def mode(self) -> str:
        return "file" if self.durable else "memory"

    async def _run_blocking(self, fn: Callable, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open the backing store and start the eviction sweep."""
        if self._backend is not None:
            await self._run_blocking(self._backend.init)
        logger.info(f"Job store ready ({self.mode} mode)")
        if self._auto_cleanup:
            await self.start()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Auto cleanup enabled")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def close(self) -> None:
        await self.stop()

    async def __aenter__(self) -> "JobStore":
        await self.init()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def save(self, job: JobRecord) -> None:
        self._jobs[job.id] = job
        if self._backend is not None:
            await self._run_blocking(self._backend.write, job.id, job.to_dict())

    async def load(self, job_id: str) -> Optional[JobRecord]:
        job = self._jobs.get(job_id)
        if job is not None:
            return job
        if self._backend is None:
            return None

        job = await self.read_persisted(job_id)
        if job is not None:
            self._jobs[job_id] = job
        return job

    async def delete(self, job_id: str) -> bool:
        removed = self._jobs.pop(job_id, None) is not None
        if self._backend is not None:
            removed = await self._run_blocking(self._backend.delete, job_id) or removed
        return removed

    async def read_persisted(self, job_id: str) -> Optional[JobRecord]:
        """Read the durable copy of a record. The memory index is left untouched."""
        if self._backend is None:
            return None
        raw = await self._run_blocking(self._backend.read, job_id)
        if raw is None:
            return None
        try:
            return JobRecord.from_dict(raw)
        except ValueError as e:
            logger.warning(f"Discarding malformed job record {job_id}: {e}")
            return None

    def adopt(self, job: JobRecord) -> None:
        """Replace the cached copy with a record read from durable backing."""
        self._jobs[job.id] = job

    def cached_ids(self) -> List[str]:
        return list(self._jobs.keys())

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    async def sweep_expired(
        self,
        max_age_ms: Optional[int] = None,
        now: Optional[int] = None,
    ) -> int:
        """Delete records whose ``updatedAt`` is older than ``max_age_ms``.

        Returns the number of deleted records.
        """
        max_age = self._max_age_ms if max_age_ms is None else max_age_ms
        current = now_ms() if now is None else now
        cleaned = 0

        if self._backend is not None:
            records = await self._run_blocking(lambda: list(self._backend.list_records()))
            for raw in records:
                job_id = raw.get("id")
                updated_at = raw.get("updatedAt")
                if not job_id or not isinstance(updated_at, (int, float)):
                    continue
                if current - updated_at > max_age:
                    await self._run_blocking(self._backend.delete, job_id)
                    self._jobs.pop(job_id, None)
                    cleaned += 1
        else:
            for job_id, job in list(self._jobs.items()):
                if current - job.updated_at > max_age:
                    del self._jobs[job_id]
                    cleaned += 1

        if cleaned > 0:
            logger.info(f"Cleaned up {cleaned} old jobs")
        return cleaned

    async def _sweep_loop(self) -> None:
        """Run the eviction sweep on a fixed interval until stopped."""
        interval = self._sweep_interval_ms / 1000.0
        while self._running:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            try:
                await self.sweep_expired()
            except OSError as e:
                logger.error(f"Error during cleanup: {e}")
