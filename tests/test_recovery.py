"""Stalled-session recovery tests.

Sessions are back-dated by editing ``updated_at`` on the in-memory rows.
"""

from datetime import datetime, timedelta, timezone

import pytest

from helpers.fakes import run_pending
from promptforge.constants import MAX_QUESTIONS
from promptforge_db.models.enums import SessionStatus, SessionType, TaskKind


def _age(mock_repo, session_id, minutes=60):
    mock_repo.sessions[session_id].updated_at = (
        datetime.now(timezone.utc) - timedelta(minutes=minutes)
    )


class TestRecovery:

    @pytest.mark.asyncio
    async def test_lost_question_task_rescheduled(
        self, controller, mock_db, mock_repo, scheduler,
    ):
        info = await controller.start_session(mock_db, original_prompt="x")
        scheduler.pop_all()  # the task is lost
        _age(mock_repo, info.id)

        scheduled = await controller.recover_stalled_sessions(mock_db, older_than_minutes=15)

        assert scheduled == 1
        task = scheduler.tasks[0]
        assert task["kind"] == TaskKind.GENERATE_QUESTION
        assert task["step"] == 0
        assert task["payload"] == {"transcript": []}

    @pytest.mark.asyncio
    async def test_waiting_on_user_is_not_stalled(
        self, controller, workers, mock_db, mock_repo, scheduler,
    ):
        info = await controller.start_session(mock_db, original_prompt="x")
        await run_pending(scheduler, workers)
        _age(mock_repo, info.id)

        assert await controller.recover_stalled_sessions(mock_db, older_than_minutes=15) == 0
        assert scheduler.tasks == []

    @pytest.mark.asyncio
    async def test_lost_enhancement_rescheduled(
        self, controller, workers, mock_db, mock_repo, scheduler,
    ):
        info = await controller.start_session(mock_db, original_prompt="x")
        await run_pending(scheduler, workers)
        for i in range(MAX_QUESTIONS):
            await controller.submit_answer(mock_db, info.id, f"a{i}")
            if i < MAX_QUESTIONS - 1:
                await run_pending(scheduler, workers)
        scheduler.pop_all()
        _age(mock_repo, info.id)

        assert await controller.recover_stalled_sessions(mock_db, older_than_minutes=15) == 1
        assert scheduler.tasks[0]["kind"] == TaskKind.GENERATE_ENHANCED_PROMPT

        await run_pending(scheduler, workers)
        assert (await controller.get_session(mock_db, info.id)).status == SessionStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_oneshot_gets_oneshot_task(self, controller, mock_db, mock_repo, scheduler):
        info = await controller.start_session(
            mock_db, original_prompt="x", session_type=SessionType.ONESHOT,
        )
        scheduler.pop_all()
        _age(mock_repo, info.id)

        await controller.recover_stalled_sessions(mock_db, older_than_minutes=15)
        assert scheduler.tasks[0]["kind"] == TaskKind.GENERATE_ONESHOT_REFINEMENT

    @pytest.mark.asyncio
    async def test_recent_sessions_left_alone(self, controller, mock_db, scheduler):
        await controller.start_session(mock_db, original_prompt="x")
        scheduler.pop_all()

        assert await controller.recover_stalled_sessions(mock_db, older_than_minutes=15) == 0

    @pytest.mark.asyncio
    async def test_pending_task_not_duplicated(self, controller, mock_db, mock_repo, scheduler):
        info = await controller.start_session(mock_db, original_prompt="x")
        _age(mock_repo, info.id)

        # The original task is still pending: nothing new is scheduled
        assert await controller.recover_stalled_sessions(mock_db, older_than_minutes=15) == 0
        assert len(scheduler.tasks) == 1

    @pytest.mark.asyncio
    async def test_recovered_session_is_touched(self, controller, mock_db, mock_repo, scheduler):
        info = await controller.start_session(mock_db, original_prompt="x")
        scheduler.pop_all()
        _age(mock_repo, info.id)

        await controller.recover_stalled_sessions(mock_db, older_than_minutes=15)
        scheduler.pop_all()

        # A second sweep right away finds nothing to do
        assert await controller.recover_stalled_sessions(mock_db, older_than_minutes=15) == 0
