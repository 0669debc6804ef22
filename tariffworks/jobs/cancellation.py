"""Cooperative cancellation tokens polled by pipelines between chunks."""

from typing import TYPE_CHECKING

from tariffworks.jobs.models import JobStatus

if TYPE_CHECKING:
    from tariffworks.storage.job_store import JobStore


class CancelToken:
    """Reports whether a job has been cancelled.

    The local flag is tripped by ``JobManager.cancel`` in this process. When the
    store is durable the persisted record is read as well, so a cancel issued by
    another process sharing the same storage directory is also observed.
    """

    def __init__(self, job_id: str, store: "JobStore"):
        self.job_id = job_id
        self._store = store
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def tripped(self) -> bool:
        return self._cancelled

    async def is_cancelled(self) -> bool:
        if self._cancelled:
            return True
        job = await self._store.load(self.job_id)
        if job is not None and job.status == JobStatus.CANCELLED:
            self._cancelled = True
        elif self._store.durable:
            persisted = await self._store.read_persisted(self.job_id)
            if persisted is not None and persisted.status == JobStatus.CANCELLED:
                # Cancelled by another process; the cached copy is stale
                self._store.adopt(persisted)
                self._cancelled = True
        return self._cancelled
