"""FastAPI dependencies giving route handlers the job engine."""

from fastapi import HTTPException, Request

from tariffworks.jobs.context import JobContext


def get_context(request: Request) -> JobContext:
    context = getattr(request.app.state, "jobs", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Job engine not initialized")
    return context
