"""
FastAPI application entry point for the CompBench API.

Configures logging, CORS and the API routers, and owns the RunManager that
executes engine runs in the background for the lifetime of the process.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from compbench import __version__
from compbench.api import api_router
from compbench.core.config import get_settings
from compbench.services.runner import RunManager


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for application startup and shutdown.

    On startup:
        - Create the RunManager on app.state
    On shutdown:
        - Cancel unfinished runs and wait for their tasks
    """
    logger.info(f"{settings.app_name} starting")
    app.state.run_manager = RunManager(
        single_active_run=settings.single_active_run,
        max_retained_runs=settings.max_retained_runs,
    )

    yield

    logger.info(f"{settings.app_name} shutting down")
    await app.state.run_manager.shutdown()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description=(
        "Benchmarks provider compensation and productivity against market "
        "survey curves and recommends a conversion factor per specialty."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """API name and version."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "compbench.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
