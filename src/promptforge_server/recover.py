"""Stalled-session recovery CLI: ``promptforge-recover``.

Re-schedules generation for sessions that are waiting on a worker which
never delivered: a ``questioning`` session with no question at its current
step, or an ``enhancing`` session with no enhanced prompt.  Intended for
cron jobs or one-off maintenance.

Examples::

    # Recover sessions untouched for $STALLED_SESSION_MINUTES (default 15)
    uv run promptforge-recover

    # Recover everything that is stuck right now
    uv run promptforge-recover --minutes 0
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from promptforge.constants import DEFAULT_STALLED_MINUTES

logger = logging.getLogger(__name__)


async def run_recovery(*, minutes: int = DEFAULT_STALLED_MINUTES) -> int:
    """Schedule generation for stalled sessions; return the number scheduled.

    Creates its own database session and commits.  The tasks are picked up
    by whichever runner (in-process or ``promptforge-worker``) is polling.
    """
    from promptforge.controller import SessionController
    from promptforge.scheduler import OutboxScheduler
    from promptforge_db.engine import dispose_engine, get_session_factory

    controller = SessionController(scheduler=OutboxScheduler())
    factory = get_session_factory()

    try:
        async with factory() as db:
            scheduled = await controller.recover_stalled_sessions(
                db, older_than_minutes=minutes,
            )
            await db.commit()

        logger.info(
            "Recovery complete: scheduled_tasks=%d, minutes=%d", scheduled, minutes,
        )
        return scheduled
    finally:
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``promptforge-recover``."""
    parser = argparse.ArgumentParser(
        prog="promptforge-recover",
        description="Re-schedule generation for stalled promptforge sessions.",
    )
    parser.add_argument(
        "--minutes",
        type=int,
        default=DEFAULT_STALLED_MINUTES,
        help=(
            "Only sessions not updated for this many minutes "
            "(default: $STALLED_SESSION_MINUTES, or 15)"
        ),
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

    scheduled = asyncio.run(run_recovery(minutes=args.minutes))

    print(f"Scheduled tasks: {scheduled}")
    sys.exit(0)
