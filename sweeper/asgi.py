"""ASGI entry point for uvicorn with hot reload support.

Usage:
    uvicorn sweeper.asgi:app --reload --host 127.0.0.1 --port 8765
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException

from sweeper.config import SweeperConfig
from sweeper.logging_filters import install_uvicorn_access_log_filters
from sweeper.main import Application, health_snapshot
from sweeper.routers import create_schedule_router, create_scheduler_router

# Global application instance for lifespan management
_application: Application | None = None


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan for ASGI server."""
    global _application

    config = SweeperConfig.from_json_file()
    install_uvicorn_access_log_filters()
    _application = Application(config)
    await _application.setup()

    fastapi_app.include_router(
        create_schedule_router(
            _application.schedule_service,
            _application.execution_log_service,
            _application.scheduler,
        )
    )
    fastapi_app.include_router(
        create_scheduler_router(_application.scheduler, _application.execution_log_service)
    )

    await _application.start_background_services()

    yield

    await _application.shutdown()
    _application = None


app = FastAPI(
    title="Sweeper",
    description="Automated cleaning scheduler",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint; 503 until the application is set up."""
    if _application is None:
        raise HTTPException(status_code=503, detail={"status": "starting"})
    return await health_snapshot(_application)
