"""Job record data model for chunked spreadsheet jobs."""

import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobType(str, Enum):
    INSPECTION = "inspection"
    PROCESSING = "processing"
    REPORT_BUILD = "report-build"
    DOUBLE_CHECK = "double-check"
    SOURCE_INSPECTION = "source-inspection"
    TEMPLATE_INSPECTION = "template-inspection"


class JobRecord(BaseModel):
    """Tracks the lifecycle of one long-running pipeline invocation.

    Timestamps are epoch milliseconds and serialize as ``createdAt`` /
    ``updatedAt`` so persisted records keep the camelCase wire shape.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    message: str = "Job created"
    data: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")

    def touch(self) -> None:
        self.updated_at = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict with camelCase timestamp keys."""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRecord":
        return cls.model_validate(data)

    def status_view(self) -> "JobStatusView":
        return JobStatusView(
            id=self.id,
            type=self.type,
            status=self.status,
            progress=self.progress,
            message=self.message,
            result=self.model_dump(include={"result"})["result"],
            error=self.error,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class JobStatusView(BaseModel):
    """Read-only projection returned to pollers."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    type: str
    status: JobStatus
    progress: int
    message: str
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
