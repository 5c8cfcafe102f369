"""Standalone task runner: ``promptforge-worker``.

Drains the ``generation_tasks`` outbox in its own process.  Run it when the
API server is started with ``WORKER_IN_PROCESS=false``, or alongside the
server to add capacity; several workers may poll the same database since
claims use ``FOR UPDATE SKIP LOCKED``.

Examples::

    uv run promptforge-worker
    WORKER_MAX_CONCURRENT=8 uv run promptforge-worker --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

logger = logging.getLogger(__name__)


async def run_worker() -> None:
    """Run the task runner until SIGINT/SIGTERM, then drain and clean up."""
    # Lazy imports to avoid loading DB machinery at module import time
    from promptforge_db.engine import dispose_engine

    from promptforge_server.runtime import build_runtime

    runtime = build_runtime()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await runtime.runner.run(stop_event)
    finally:
        await runtime.provider.close()
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``promptforge-worker``."""
    parser = argparse.ArgumentParser(
        prog="promptforge-worker",
        description="Run generation tasks from the promptforge outbox.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    asyncio.run(run_worker())
