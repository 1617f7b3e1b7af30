"""taskhub - collaborative task tracking with realtime updates."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.db_client import close_connection, init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.interface.error_handlers import register_error_handlers
from src.interface.realtime import router as realtime_router
from src.interface.task_router import router as task_router
from src.interface.user_router import router as user_router
from src.services.channel_registry import ChannelRegistry
from src.services.fanout import FanoutRouter
from src.services.task_service import TaskService


logger = logging.getLogger(__name__)


def wire_services(app: FastAPI) -> None:
    """Create the realtime registry, fanout router and task service for an app."""
    registry = ChannelRegistry()
    fanout = FanoutRouter(registry)
    app.state.channel_registry = registry
    app.state.fanout = fanout
    app.state.task_service = TaskService(fanout)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    wire_services(app)
    yield
    # Shutdown
    await close_connection()


app = FastAPI(
    title="taskhub",
    description="Collaborative task tracking with realtime updates",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

register_error_handlers(app)

# Register routers
app.include_router(task_router)
app.include_router(user_router)
app.include_router(realtime_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
