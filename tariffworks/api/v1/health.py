"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health, job storage mode and system info."""
    context = getattr(request.app.state, "jobs", None)
    return {
        "status": "healthy" if context is not None else "starting",
        "storage": context.store.mode if context is not None else None,
        "active_jobs": context.runner.active_jobs if context is not None else 0,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
