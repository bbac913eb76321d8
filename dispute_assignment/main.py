"""Dispute Assignment Service — FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator

from fastapi import FastAPI

from .api.routes import get_scheduler, router
from .config import settings
from .models import HealthResponse
from .services.scheduler import run_balancer_periodically

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

_start_time = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Starting Dispute Assignment Service")
    task = None
    if settings.BALANCER_ENABLED:
        task = asyncio.create_task(
            run_balancer_periodically(get_scheduler(), settings.BALANCER_INTERVAL_SECONDS)
        )
        logger.info("Workload balancer every %ss", settings.BALANCER_INTERVAL_SECONDS)
    app.state.balancer_task = task

    yield

    logger.info("Shutting down Dispute Assignment Service")
    if task is not None:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(
    title="Dispute Assignment Service",
    version="1.0.0",
    description=(
        "Selects moderators for disputes by tier, conflict of interest and "
        "workload, and periodically rebalances the moderator pool."
    ),
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        service="assignment",
        version="1.0.0",
        uptime_seconds=round(time.time() - _start_time, 2),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dispute_assignment.main:app",
        host="0.0.0.0",
        port=settings.ASSIGNMENT_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
