"""Aggregate the API routers."""

from fastapi import APIRouter

from tariffworks.api.v1.health import router as health_router
from tariffworks.api.v1.jobs import router as jobs_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(jobs_router, tags=["jobs"])
