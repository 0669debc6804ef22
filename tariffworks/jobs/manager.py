"""
Job lifecycle state machine on top of ``JobStore``.

pending -> processing -> completed | failed | cancelled. The last three are
terminal: no status transition leaves them.
"""

from typing import Any, Dict, Optional

from tariffworks.errors import InvalidJobStateError, JobNotFoundError
from tariffworks.jobs.cancellation import CancelToken
from tariffworks.jobs.models import JobRecord, JobStatus, JobStatusView
from tariffworks.logging_config import get_logger
from tariffworks.storage.job_store import JobStore

logger = get_logger(__name__)

MSG_CREATED = "Job created"
MSG_COMPLETED = "Job completed successfully"
MSG_FAILED = "Job failed"
MSG_CANCELLED = "Job cancelled by user"


def clamp_progress(progress: float) -> int:
    """Round to an integer percentage inside [0, 100]."""
    return int(min(100, max(0, round(progress))))


class JobManager:
    """
    The only writer of job records.

    Every mutator raises ``JobNotFoundError`` for an unknown id instead of
    creating a record. ``get_status`` is the polling path and never mutates.

    Example:
        >>> manager = JobManager(store)
        >>> job_id = await manager.create("processing", {"filename": "tarif.xlsx"})
        >>> await manager.report_progress(job_id, 40, "Processing chunk 2/5")
        >>> (await manager.get_status(job_id)).progress
        40
    """

    def __init__(self, store: JobStore):
        self.store = store
        self._tokens: Dict[str, CancelToken] = {}

    async def _require(self, job_id: str) -> JobRecord:
        job = await self.store.load(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def create(self, job_type: str, data: Optional[Dict[str, Any]] = None) -> str:
        """
        Create a pending job and persist it.

        Args:
            job_type: Pipeline tag, e.g. "processing" or "double-check".
            data: Initial caller metadata.

        Returns:
            The new job id.
        """
        job = JobRecord(type=job_type, data=dict(data or {}), message=MSG_CREATED)
        await self.store.save(job)
        logger.info(f"Job created: {job.id} ({job_type})")
        return job.id

    async def report_progress(
        self,
        job_id: str,
        progress: float,
        message: str = "",
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Move the job to processing and record its progress.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job already reached a terminal status.
        """
        job = await self._require(job_id)
        if job.status.is_terminal:
            raise InvalidJobStateError(
                job_id, job.status.value,
                f"Cannot report progress on {job.status.value} job",
            )

        job.status = JobStatus.PROCESSING
        job.progress = clamp_progress(progress)
        job.message = message
        if data:
            job.data = {**job.data, **data}
        job.touch()

        await self.store.save(job)
        logger.info(f"Job {job_id}: {job.progress}% - {message}")

    def _check_finish(self, job: JobRecord, target: JobStatus) -> None:
        # Repeating the same outcome overwrites; switching terminal status does not
        if job.status.is_terminal and job.status != target:
            raise InvalidJobStateError(
                job.id, job.status.value,
                f"Cannot mark {job.status.value} job as {target.value}",
            )

    async def complete(self, job_id: str, result: Any) -> None:
        """
        Mark the job completed with its result.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job already failed or was cancelled.
        """
        job = await self._require(job_id)
        self._check_finish(job, JobStatus.COMPLETED)

        job.status = JobStatus.COMPLETED
        job.progress = 100
        job.message = MSG_COMPLETED
        job.result = result
        job.error = None
        job.touch()

        await self.store.save(job)
        self._tokens.pop(job_id, None)
        logger.info(f"Job completed: {job_id}")

    async def fail(self, job_id: str, error: Any) -> None:
        """Mark the job failed. Exceptions are stored as their message text.

        Raises ``InvalidJobStateError`` if the job already completed or was
        cancelled.
        """
        job = await self._require(job_id)
        self._check_finish(job, JobStatus.FAILED)

        if isinstance(error, BaseException):
            error = str(error) or type(error).__name__
        job.status = JobStatus.FAILED
        job.message = MSG_FAILED
        job.error = str(error)
        job.result = None
        job.touch()

        await self.store.save(job)
        self._tokens.pop(job_id, None)
        logger.error(f"Job failed: {job_id} - {job.error}")

    async def cancel(self, job_id: str) -> None:
        """
        Cancel a pending or processing job.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidJobStateError: If the job already completed or failed.
        """
        job = await self._require(job_id)
        if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            raise InvalidJobStateError(
                job_id, job.status.value, f"Cannot cancel {job.status.value} job"
            )

        job.status = JobStatus.CANCELLED
        job.message = MSG_CANCELLED
        job.touch()

        await self.store.save(job)
        token = self._tokens.pop(job_id, None)
        if token is not None:
            token.cancel()
        logger.info(f"Job cancelled: {job_id}")

    async def get_status(self, job_id: str) -> Optional[JobStatusView]:
        job = await self.store.load(job_id)
        if job is None:
            return None
        return job.status_view()

    def cancel_token(self, job_id: str) -> CancelToken:
        """Token the job's pipeline polls between chunks."""
        token = self._tokens.get(job_id)
        if token is None:
            token = CancelToken(job_id, self.store)
            self._tokens[job_id] = token
        return token

    def progress_reporter(self, job_id: str, data: Optional[Dict[str, Any]] = None):
        """Return an async ``(percent, message)`` callback bound to ``job_id``."""

        async def report(progress: float, message: str) -> None:
            await self.report_progress(job_id, progress, message, data)

        return report
