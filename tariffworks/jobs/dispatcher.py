"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from tariffworks.jobs.models import JobStatusView


class JobDispatcher(ABC):
    """Abstract interface for launching pipelines as tracked jobs."""

    @abstractmethod
    async def submit(
        self,
        job_type: str,
        data: Optional[Dict[str, Any]],
        pipeline: Callable[..., Awaitable[Any]],
    ) -> str:
        """Create a job and start its pipeline. Returns job_id."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobStatusView]:
        """Get current status of a job."""
        ...

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher, cancelling jobs still running."""
        ...
