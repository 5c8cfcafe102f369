"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that builds the provider, controller and workers once,
    and (unless ``WORKER_IN_PROCESS`` is off) runs a ``TaskRunner`` beside
    the request handlers
  - CORS middleware
  - Global exception handlers (NotFoundError → 404, InvalidStateError → 409,
    ValueError → 400)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness probes

The ``cli()`` function is the ``promptforge-server`` console-script entry point.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from promptforge_db.engine import dispose_engine, get_engine

from promptforge_server.config import ServerSettings, load_settings
from promptforge_server.errors import generic_error_handler, value_error_handler
from promptforge_server.routes import register_routes
from promptforge_server.runtime import build_runtime

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Lifespan: runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Build the provider, controller, workers and runner
      2. Stash the controller on ``app.state`` for dependency injection
      3. Start the runner as a background task when running in-process

    Shutdown:
      1. Stop the runner and wait for in-flight tasks
      2. Close the provider client
      3. Dispose the database engine's connection pool
    """
    settings: ServerSettings = app.state.settings

    runtime = build_runtime()
    app.state.controller = runtime.controller

    stop_event = asyncio.Event()
    runner_task: asyncio.Task | None = None
    if settings.worker_in_process:
        runner_task = asyncio.create_task(runtime.runner.run(stop_event))
        logger.info("In-process task runner started")

    yield

    # --- Shutdown ---
    if runner_task is not None:
        stop_event.set()
        await runner_task
        logger.info("In-process task runner stopped")
    await runtime.provider.close()
    await dispose_engine()


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="PromptForge API Server",
        description="REST API for interactive prompt enhancement",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler and dependencies can read them
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness probe: verifies DB connectivity."""
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": "database unavailable"}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn promptforge_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``promptforge-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "promptforge_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
