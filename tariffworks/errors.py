"""Exception taxonomy for the job engine and transform pipelines."""


class TariffworksError(Exception):
    """Base class for all errors raised by the engine."""


class JobNotFoundError(TariffworksError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class InvalidJobStateError(TariffworksError):
    """An operation is not allowed for the job's current status."""

    def __init__(self, job_id: str, status: str, message: str):
        self.job_id = job_id
        self.status = status
        super().__init__(message)


class ChunkTransformError(TariffworksError):
    """A chunk transform raised. Carries the chunk position and the cause."""

    def __init__(self, chunk_index: int, total_chunks: int, cause: BaseException):
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Failed at chunk {chunk_index + 1}/{total_chunks}: {detail}")


class ValidationFailure(TariffworksError):
    """A pipeline precondition was not met before any chunking began."""


class JobCancelledError(TariffworksError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")
