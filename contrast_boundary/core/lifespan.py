import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from contrast_boundary.boundary_manager import BoundaryManager
from contrast_boundary.core.config import configure_logging, get_settings

logger = logging.getLogger(__name__)


async def _init_boundary_manager(app: FastAPI):
    # Exposed readiness flag used by the API to signal operational state
    app.state.ready = False
    settings = get_settings()

    # BoundaryManager is stored on app.state so request handlers reach it without globals.
    app.state.boundary_manager = BoundaryManager(
        throttle_delay=settings.throttle_delay_s,
        calculation_timeout=settings.calculation_timeout_s,
    )
    app.state.boundary_manager.start()

    # Wait for the worker's ready signal, but do not block startup indefinitely.
    ready = await asyncio.to_thread(app.state.boundary_manager.wait_until_ready, settings.ready_timeout_s)
    if not ready:
        logger.warning("Boundary worker not ready within %.1fs", settings.ready_timeout_s)
        return

    app.state.ready = True
    logger.info("Boundary worker ready -> state.ready = True")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings().log_level)
    logger.info("Application is starting up...")
    app.state.ready = False

    # Worker initialization runs in the background to avoid blocking startup.
    init_task = asyncio.create_task(_init_boundary_manager(app))

    try:
        yield
    finally:
        logger.info("Shutting down...")
        app.state.ready = False

        init_task.cancel()
        try:
            await init_task
        except asyncio.CancelledError:
            pass

        mgr = getattr(app.state, "boundary_manager", None)
        if mgr:
            mgr.stop()

        logger.info("Backend stopped")
