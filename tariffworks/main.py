"""Tariffworks job service - FastAPI application."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tariffworks.api.v1.router import api_router
from tariffworks.config import Settings, settings as default_settings
from tariffworks.jobs.context import JobContext
from tariffworks.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the application. Tests pass their own ``Settings``."""
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        setup_logging(app_settings.log_level)
        logger.info(f"Starting Tariffworks job service on port {app_settings.port}")
        logger.info(f"Storage: {app_settings.storage_type} ({app_settings.storage_path})")
        logger.info(f"Output dir: {app_settings.output_dir}")

        context = JobContext.from_settings(app_settings)
        await context.init()
        app.state.jobs = context

        yield

        logger.info("Shutting down Tariffworks job service")
        await context.close()
        app.state.jobs = None

    app = FastAPI(
        title="Tariffworks Job Service",
        description="Chunked spreadsheet jobs for tariff books, reports and price checks",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tariffworks.main:app", host="0.0.0.0", port=default_settings.port)
