"""In-process job runner: each submitted pipeline runs as its own asyncio task.

The task outlives the request that created the job. When the pipeline returns,
the job is completed with its result; when it raises, the job is failed with
the exception text. A job cancelled while its pipeline runs stays cancelled,
whatever the pipeline does afterwards. Jobs still running at shutdown are
failed.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from tariffworks.errors import InvalidJobStateError, JobCancelledError, JobNotFoundError
from tariffworks.jobs.cancellation import CancelToken
from tariffworks.jobs.dispatcher import JobDispatcher
from tariffworks.jobs.manager import JobManager
from tariffworks.jobs.models import JobStatusView
from tariffworks.logging_config import get_logger

logger = get_logger(__name__)

MSG_SHUTDOWN = "Server shutting down"


@dataclass
class JobHandle:
    """What a running pipeline gets to talk back to its job."""

    job_id: str
    progress: Callable[[float, str], Awaitable[None]]
    cancel_token: CancelToken


Pipeline = Callable[[JobHandle], Awaitable[Any]]


class JobRunner(JobDispatcher):
    """Launches pipelines for freshly created jobs and finalizes their records."""

    def __init__(self, manager: JobManager):
        self.manager = manager
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running = False

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def submit(self, job_type: str, data: Optional[Dict[str, Any]], pipeline: Pipeline) -> str:
        job_id = await self.manager.create(job_type, data)
        handle = JobHandle(
            job_id=job_id,
            progress=self.manager.progress_reporter(job_id),
            cancel_token=self.manager.cancel_token(job_id),
        )
        task = asyncio.create_task(self._run(handle, pipeline))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return job_id

    async def get_status(self, job_id: str) -> Optional[JobStatusView]:
        return await self.manager.get_status(job_id)

    async def wait(self, job_id: str) -> Optional[JobStatusView]:
        """Wait for the job's task, if still running, and return its final status."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.manager.get_status(job_id)

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False
        tasks = dict(self._tasks)
        for task in tasks.values():
            task.cancel()
        if tasks:
            logger.info(f"Stopping runner, cancelling {len(tasks)} running job(s)")
            await asyncio.gather(*tasks.values(), return_exceptions=True)
        # A task cancelled before its first step never reached _run's handlers
        for job_id in tasks:
            await self._finalize(job_id, self.manager.fail, MSG_SHUTDOWN)

    async def _finalize(self, job_id: str, finish, outcome: Any) -> None:
        """Apply ``finish(job_id, outcome)`` unless the job already ended or was cancelled."""
        try:
            view = await self.manager.get_status(job_id)
            if view is None:
                raise JobNotFoundError(job_id)
            if view.status.is_terminal:
                return
            if await self.manager.cancel_token(job_id).is_cancelled():
                logger.info(f"Job {job_id} stopped after cancellation, outcome discarded")
                return
            await finish(job_id, outcome)
        except InvalidJobStateError as e:
            logger.info(f"Job {job_id} already {e.status}, outcome discarded")
        except JobNotFoundError:
            logger.warning(f"Job {job_id} disappeared before it could be finalized")

    async def _run(self, handle: JobHandle, pipeline: Pipeline) -> None:
        job_id = handle.job_id
        try:
            result = await pipeline(handle)
        except JobCancelledError:
            logger.info(f"Job {job_id} stopped after cancellation")
            return
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} interrupted by shutdown")
            await self._finalize(job_id, self.manager.fail, MSG_SHUTDOWN)
            raise
        except InvalidJobStateError as e:
            # Progress reported after a concurrent cancel lands here
            await self._finalize(job_id, self.manager.fail, e)
            return
        except Exception as e:
            logger.exception(f"Job {job_id} raised {type(e).__name__}")
            await self._finalize(job_id, self.manager.fail, e)
            return

        await self._finalize(job_id, self.manager.complete, result)
