"""OutboxScheduler and TaskRunner tests with an in-memory task table.

Test scenarios:
  - Outbox rows carry the (kind, session, step) dedupe key
  - Runner dispatches claimed tasks to the workers and deletes them
  - Failing tasks are released with last_error, then dropped at max_attempts
  - Concurrency cap limits how many tasks one poll starts
  - Leased tasks are invisible to a second poll until the lease expires
  - run() exits once the stop event is set
  - run() keeps polling after a claim fails with a non-database error
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from helpers.fakes import FakeSessionFactory, MockTaskRepository
from promptforge.scheduler import OutboxScheduler, TaskRunner, dedupe_key
from promptforge_db.models.enums import TaskKind


@pytest.fixture
def task_repo():
    return MockTaskRepository()


@pytest.fixture
def mock_workers():
    workers = AsyncMock()
    workers.handle = AsyncMock(return_value=None)
    return workers


def _runner(mock_workers, task_repo, **kwargs) -> TaskRunner:
    runner = TaskRunner(mock_workers, FakeSessionFactory(), **kwargs)
    runner._repo = task_repo
    return runner


# =====================================================================
# OutboxScheduler
# =====================================================================


class TestOutboxScheduler:

    def test_dedupe_key_format(self):
        sid = uuid.UUID("00000000-0000-0000-0000-000000000001")
        assert dedupe_key(TaskKind.GENERATE_QUESTION, sid, 2) == (
            f"generate_question:{sid}:2"
        )

    @pytest.mark.asyncio
    async def test_enqueue_writes_through_callers_session(self, mock_db):
        scheduler = OutboxScheduler()
        scheduler._repo = AsyncMock()
        scheduler._repo.enqueue = AsyncMock(return_value=True)
        sid = uuid.uuid4()

        added = await scheduler.enqueue(
            mock_db, TaskKind.GENERATE_ENHANCED_PROMPT, session_id=sid, step=3,
        )

        assert added is True
        scheduler._repo.enqueue.assert_awaited_once_with(
            mock_db,
            kind="generate_enhanced_prompt",
            session_pk=sid,
            step=3,
            payload={},
            dedupe_key=f"generate_enhanced_prompt:{sid}:3",
        )

    @pytest.mark.asyncio
    async def test_enqueue_reports_existing_task(self, mock_db):
        scheduler = OutboxScheduler()
        scheduler._repo = AsyncMock()
        scheduler._repo.enqueue = AsyncMock(return_value=False)

        added = await scheduler.enqueue(
            mock_db, TaskKind.GENERATE_QUESTION, session_id=uuid.uuid4(), step=0,
            payload={"transcript": []},
        )
        assert added is False


# =====================================================================
# TaskRunner
# =====================================================================


class TestTaskRunner:

    @pytest.mark.asyncio
    async def test_dispatches_and_deletes(self, mock_workers, task_repo):
        sid = uuid.uuid4()
        task_repo.add(TaskKind.GENERATE_QUESTION, sid, 1, {"transcript": []})
        runner = _runner(mock_workers, task_repo)

        started = await runner.run_once()
        await runner.drain()

        assert started == 1
        mock_workers.handle.assert_awaited_once_with(
            TaskKind.GENERATE_QUESTION, sid, {"transcript": []}, 1,
        )
        assert task_repo.tasks == {}

    @pytest.mark.asyncio
    async def test_failure_releases_with_error(self, mock_workers, task_repo):
        mock_workers.handle.side_effect = RuntimeError("db went away")
        task = task_repo.add(TaskKind.GENERATE_ENHANCED_PROMPT, uuid.uuid4(), 3)
        runner = _runner(mock_workers, task_repo, max_attempts=3)

        await runner.run_once()
        await runner.drain()

        assert task.id in task_repo.tasks
        assert task.claimed_at is None
        assert task.attempts == 1
        assert "db went away" in task.last_error

    @pytest.mark.asyncio
    async def test_dropped_after_max_attempts(self, mock_workers, task_repo):
        mock_workers.handle.side_effect = RuntimeError("always fails")
        task_repo.add(TaskKind.GENERATE_ONESHOT_REFINEMENT, uuid.uuid4(), 0)
        runner = _runner(mock_workers, task_repo, max_attempts=2)

        for _ in range(2):
            await runner.run_once()
            await runner.drain()

        assert task_repo.tasks == {}
        assert mock_workers.handle.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, task_repo):
        release = asyncio.Event()

        async def slow_handle(*args):
            await release.wait()

        workers = AsyncMock()
        workers.handle = slow_handle
        for step in range(3):
            task_repo.add(TaskKind.GENERATE_QUESTION, uuid.uuid4(), step)
        runner = _runner(workers, task_repo, max_concurrent=2)

        assert await runner.run_once() == 2
        assert await runner.run_once() == 0

        release.set()
        await runner.drain()
        assert await runner.run_once() == 1
        await runner.drain()
        assert task_repo.tasks == {}

    @pytest.mark.asyncio
    async def test_lease_hides_claimed_tasks(self, mock_workers, task_repo):
        task = task_repo.add(TaskKind.GENERATE_QUESTION, uuid.uuid4(), 0)
        task.claimed_at = datetime.now(timezone.utc)
        task.attempts = 1
        runner = _runner(mock_workers, task_repo, lease_seconds=300)

        assert await runner.run_once() == 0

        # Lease expired: another runner crashed mid-task
        task.claimed_at = datetime.now(timezone.utc) - timedelta(seconds=301)
        assert await runner.run_once() == 1
        await runner.drain()
        assert task.attempts == 2
        assert task_repo.tasks == {}

    @pytest.mark.asyncio
    async def test_run_stops_on_event(self, mock_workers, task_repo):
        task_repo.add(TaskKind.GENERATE_QUESTION, uuid.uuid4(), 0)
        runner = _runner(mock_workers, task_repo, poll_interval=0.01)
        stop = asyncio.Event()

        async def stop_soon():
            await asyncio.sleep(0.05)
            stop.set()

        await asyncio.gather(runner.run(stop), stop_soon())

        mock_workers.handle.assert_awaited_once()
        assert task_repo.tasks == {}

    @pytest.mark.asyncio
    async def test_run_survives_failed_poll(self, mock_workers, task_repo):
        """A connection error while claiming is logged and the next poll retries."""
        task_repo.add(TaskKind.GENERATE_QUESTION, uuid.uuid4(), 0)
        claim_batch = task_repo.claim_batch
        calls = []

        async def flaky_claim(db, **kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise ConnectionRefusedError("db restarting")
            return await claim_batch(db, **kwargs)

        task_repo.claim_batch = flaky_claim
        runner = _runner(mock_workers, task_repo, poll_interval=0.01)
        stop = asyncio.Event()

        async def stop_once_drained():
            while task_repo.tasks:
                await asyncio.sleep(0.01)
            stop.set()

        await asyncio.wait_for(
            asyncio.gather(runner.run(stop), stop_once_drained()), timeout=5,
        )

        assert len(calls) >= 2
        mock_workers.handle.assert_awaited_once()
        assert task_repo.tasks == {}
