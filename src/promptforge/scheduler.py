"""Transactional outbox scheduling and the task runner that drains it.

``OutboxScheduler.enqueue`` inserts a ``generation_tasks`` row through the
caller's session, so a task becomes visible exactly when the command that
scheduled it commits, and disappears with it on rollback.

``TaskRunner`` polls the outbox, leases rows with ``FOR UPDATE SKIP
LOCKED`` and runs each one as an asyncio task under a global concurrency
cap.  A poll that raises is logged and retried on the next interval, so a
database restart never ends ``run()``.  Finished tasks are deleted; failed
ones are released for a later poll until ``max_attempts`` is reached.  A
runner that dies mid-task leaves its lease to expire, after which another
runner picks the task up again, which is why the write-back commands
tolerate duplicate delivery.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promptforge_db.models.enums import TaskKind
from promptforge_db.repository import TaskRepository

from promptforge.interfaces import TaskScheduler
from promptforge.workers import GenerationWorkers

logger = logging.getLogger(__name__)


def dedupe_key(kind: TaskKind, session_id: uuid.UUID, step: int) -> str:
    """One pending task per (kind, session, step)."""
    return f"{kind.value}:{session_id}:{step}"


class OutboxScheduler(TaskScheduler):
    """Writes tasks into the caller's transaction."""

    def __init__(self) -> None:
        self._repo = TaskRepository()

    async def enqueue(
        self,
        db: AsyncSession,
        kind: TaskKind,
        *,
        session_id: uuid.UUID,
        step: int,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        added = await self._repo.enqueue(
            db,
            kind=kind.value,
            session_pk=session_id,
            step=step,
            payload=payload or {},
            dedupe_key=dedupe_key(kind, session_id, step),
        )
        if not added:
            logger.debug(
                "Task already pending: kind=%s, session_id=%s, step=%d",
                kind.value, session_id, step,
            )
        return added


class TaskRunner:
    """Polls the outbox and executes tasks through ``GenerationWorkers``.

    Args:
        workers: task handlers
        session_factory: sessions for claiming and finishing tasks
        poll_interval: seconds between polls
        max_concurrent: global cap on tasks running at once
        lease_seconds: how long a claimed task stays invisible to other runners
        max_attempts: failed tasks are dropped after this many claims
    """

    def __init__(
        self,
        workers: GenerationWorkers,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        poll_interval: float = 1.0,
        max_concurrent: int = 4,
        lease_seconds: int = 300,
        max_attempts: int = 5,
    ) -> None:
        self._workers = workers
        self._session_factory = session_factory
        self._repo = TaskRepository()
        self.poll_interval = poll_interval
        self.max_concurrent = max_concurrent
        self.lease_seconds = lease_seconds
        self.max_attempts = max_attempts
        self._in_flight: set[uuid.UUID] = set()
        self._running: set[asyncio.Task] = set()

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll until ``stop_event`` is set (forever when ``None``)."""
        logger.info(
            "TaskRunner running (max_concurrent=%d, poll_interval=%.1fs)",
            self.max_concurrent, self.poll_interval,
        )
        while stop_event is None or not stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Outbox poll failed; retrying next interval")

            if stop_event is None:
                await asyncio.sleep(self.poll_interval)
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        await self.drain()
        logger.info("TaskRunner stopped")

    async def run_once(self) -> int:
        """Claim what fits under the concurrency cap and start it.

        Returns the number of tasks started.
        """
        available = self.max_concurrent - len(self._in_flight)
        if available <= 0:
            return 0

        jobs = await self._claim(available)
        started = 0
        for job in jobs:
            if job["id"] in self._in_flight:
                continue
            self._in_flight.add(job["id"])
            task = asyncio.create_task(self._execute(job))
            self._running.add(task)
            task.add_done_callback(self._running.discard)
            started += 1
        return started

    async def drain(self) -> None:
        """Wait for every started task to finish."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _claim(self, limit: int) -> list[dict[str, Any]]:
        async with self._session_factory() as db:
            rows = await self._repo.claim_batch(
                db, limit=limit, lease_seconds=self.lease_seconds,
            )
            jobs = [
                {
                    "id": r.id,
                    "kind": r.kind,
                    "session_id": r.session_id,
                    "step": r.step,
                    "payload": r.payload or {},
                    "attempts": r.attempts,
                }
                for r in rows
            ]
            await db.commit()
        return jobs

    async def _execute(self, job: dict[str, Any]) -> None:
        try:
            if job["attempts"] > self.max_attempts:
                logger.error(
                    "Dropping task after %d attempts: id=%s, kind=%s, session_id=%s",
                    job["attempts"] - 1, job["id"], job["kind"], job["session_id"],
                )
                await self._finish(job["id"])
                return

            try:
                await self._workers.handle(
                    TaskKind(job["kind"]), job["session_id"], job["payload"], job["step"],
                )
            except Exception as exc:
                logger.exception(
                    "Task failed: id=%s, kind=%s, session_id=%s, attempt=%d",
                    job["id"], job["kind"], job["session_id"], job["attempts"],
                )
                if job["attempts"] >= self.max_attempts:
                    await self._finish(job["id"])
                else:
                    await self._finish(job["id"], error=f"{exc.__class__.__name__}: {exc}")
                return

            await self._finish(job["id"])
        finally:
            self._in_flight.discard(job["id"])

    async def _finish(self, task_pk: uuid.UUID, error: str | None = None) -> None:
        """Delete the task, or release its lease when ``error`` is given."""
        async with self._session_factory() as db:
            if error is None:
                await self._repo.delete(db, task_pk)
            else:
                await self._repo.release(db, task_pk, error)
            await db.commit()
