"""Main application entry point.

This module wires the database, DAOs, services, the cleaning scheduler and
the HTTP API together, and runs them under uvicorn.

Usage:
    python -m sweeper.main
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException

from sweeper.config import SweeperConfig
from sweeper.dao import ExecutionLogDAO, ScheduleDAO
from sweeper.database import Database
from sweeper.logging_filters import configure_logging, install_uvicorn_access_log_filters
from sweeper.routers import create_schedule_router, create_scheduler_router
from sweeper.scheduler.cleaning_scheduler import CleaningScheduler
from sweeper.scheduler.events import SchedulerEventBus
from sweeper.scheduler.execution_guard import ExecutionGuard
from sweeper.scheduler.idle_monitor import IdleMonitor, create_idle_source
from sweeper.scheduler.next_run import NextRunCalculator
from sweeper.services.execution_log_service import ExecutionLogService, RetentionPolicy
from sweeper.services.executor import CleaningExecutor, DryRunExecutor
from sweeper.services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)


class Application:
    """Main application container.

    Manages all application components and their lifecycle.
    Provides dependency injection and graceful shutdown.
    """

    # Grace period for in-flight cleaning runs on shutdown.
    SHUTDOWN_EXECUTION_TIMEOUT_SECONDS = 30.0

    def __init__(
        self,
        config: SweeperConfig,
        executor: CleaningExecutor | None = None,
    ) -> None:
        """Initialize the application with configuration.

        Args:
            config: Application configuration.
            executor: Cleaning executor; a dry-run executor if not given.
        """
        self.config = config
        self.executor: CleaningExecutor = executor or DryRunExecutor()

        # Core components (initialized in setup)
        self.database: Database | None = None
        self.fastapi_app: FastAPI | None = None

        # DAOs
        self.schedule_dao: ScheduleDAO | None = None
        self.execution_log_dao: ExecutionLogDAO | None = None

        # Shared scheduling state
        self.guard = ExecutionGuard()
        self.idle_monitor = IdleMonitor(create_idle_source(config.idle_source))
        self.events = SchedulerEventBus(max_queue_size=config.event_queue_size)

        # Services
        self.schedule_service: ScheduleService | None = None
        self.execution_log_service: ExecutionLogService | None = None
        self.scheduler: CleaningScheduler | None = None

    async def setup(self) -> None:
        """Initialize all application components.

        Sets up database, DAOs, services and the scheduler with proper
        dependency injection.
        """
        logger.info("Setting up application components...")

        self.database = Database(self.config.database_url)
        if self.config.auto_create_tables:
            await self.database.init_db()
        logger.info("Database initialized")

        self.schedule_dao = ScheduleDAO(self.database)
        self.execution_log_dao = ExecutionLogDAO(self.database)

        self.schedule_service = ScheduleService(
            self.schedule_dao,
            NextRunCalculator(self.config.timezone),
            guard=self.guard,
            idle_monitor=self.idle_monitor,
        )
        self.execution_log_service = ExecutionLogService(
            self.execution_log_dao,
            RetentionPolicy(
                max_entries_per_schedule=self.config.log_retention_max_entries,
                max_age_days=self.config.log_retention_days,
            ),
        )
        self.scheduler = CleaningScheduler(
            self.schedule_service,
            self.execution_log_service,
            self.executor,
            guard=self.guard,
            idle_monitor=self.idle_monitor,
            events=self.events,
            poll_interval_seconds=self.config.poll_interval_seconds,
            startup_delay_seconds=self.config.startup_delay_seconds,
            startup_min_interval_minutes=self.config.startup_min_interval_minutes,
        )

        logger.info("Application setup complete")

    def create_fastapi_app(self) -> FastAPI:
        """Create and configure FastAPI application.

        Sets up routers and the health endpoint.

        Returns:
            Configured FastAPI application.
        """
        if self.scheduler is None:
            raise RuntimeError("Application.setup() must run before create_fastapi_app()")

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
            """Manage application lifespan."""
            logger.info("FastAPI application starting...")
            yield
            logger.info("FastAPI application shutting down...")

        self.fastapi_app = FastAPI(
            title="Sweeper",
            description="Automated cleaning scheduler",
            version="1.0.0",
            lifespan=lifespan,
        )

        self.fastapi_app.include_router(
            create_schedule_router(
                self.schedule_service,
                self.execution_log_service,
                self.scheduler,
            )
        )
        self.fastapi_app.include_router(
            create_scheduler_router(self.scheduler, self.execution_log_service)
        )

        @self.fastapi_app.get("/health")
        async def health_check():
            """Health check endpoint; 503 when the database does not answer."""
            return await health_snapshot(self)

        return self.fastapi_app

    async def start_background_services(self) -> None:
        """Start the cleaning scheduler."""
        if self.scheduler:
            await self.scheduler.start()
            logger.info("Cleaning scheduler started")

    async def shutdown(self) -> None:
        """Gracefully shutdown all application components.

        Stops the scheduler, lets in-flight cleaning runs finish (bounded),
        then closes database connections.
        """
        logger.info("Initiating graceful shutdown...")

        if self.scheduler:
            if self.scheduler.is_running:
                await self.scheduler.stop()
                logger.info("Cleaning scheduler stopped")
            await self.scheduler.wait_for_executions(
                timeout=self.SHUTDOWN_EXECUTION_TIMEOUT_SECONDS
            )

        if self.database:
            await self.database.close()
            self.database = None
            logger.info("Database connection closed")

        logger.info("Graceful shutdown complete")


async def health_snapshot(application: Application) -> dict:
    """Scheduler and database health.

    Raises:
        HTTPException: 503 if the database does not answer.
    """
    database_ok = application.database is not None and await application.database.ping()
    running = application.scheduler is not None and application.scheduler.is_running
    body = {
        "status": "healthy" if database_ok else "unhealthy",
        "scheduler": "running" if running else "stopped",
    }
    if not database_ok:
        raise HTTPException(status_code=503, detail=body)
    return body


async def create_app(
    config: SweeperConfig | None = None,
    executor: CleaningExecutor | None = None,
) -> Application:
    """Create and setup the application.

    Args:
        config: Optional configuration. If not provided, loads from
                config.json with environment variable overrides.
        executor: Optional cleaning executor.

    Returns:
        Initialized Application instance.
    """
    if config is None:
        config = SweeperConfig.from_json_file()

    app = Application(config, executor=executor)
    await app.setup()
    app.create_fastapi_app()

    return app


async def main() -> None:
    """Main entry point for running the service.

    Initializes all components and serves the HTTP API until shutdown is
    requested.
    """
    import uvicorn

    config = SweeperConfig.from_json_file()
    configure_logging(config.log_level)
    logger.info("Starting Sweeper...")

    app: Application | None = None
    try:
        app = await create_app(config)
        await app.start_background_services()

        logger.info(
            "Application running. API available at http://%s:%d",
            config.api_host,
            config.api_port,
        )

        uvicorn_config = uvicorn.Config(
            app.fastapi_app,
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower(),
        )

        # Ensure Uvicorn logging is configured, then suppress healthcheck access logs.
        uvicorn_config.load()
        install_uvicorn_access_log_filters()

        server = uvicorn.Server(uvicorn_config)
        await server.serve()

    except Exception as e:
        logger.exception("Application error: %s", e)
        raise
    finally:
        if app:
            await app.shutdown()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
