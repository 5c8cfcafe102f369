"""SessionController tests with in-memory repositories and scheduler.

Test scenarios:
  - start_session: interactive vs one-shot initial state and scheduled task
  - submit_answer: step advance, transcript snapshot, transition to enhancing
  - Open-question invariant: no answer without a question at current_step
  - A fourth answer is rejected
  - Concurrent answers: the loser of the compare-and-set gets NotFoundError
  - update_format: allowed until complete
  - Status monotonicity across a full dialogue
  - Read projections: completed list, stats, export
"""

import json
import uuid

import pytest

from helpers.fakes import FailingProvider, run_pending
from promptforge.constants import FALLBACK_QUESTION, MAX_QUESTIONS
from promptforge.errors import InvalidStateError, NotFoundError
from promptforge.workers import GenerationWorkers
from promptforge_db.models.enums import (
    ExportFormat,
    SessionStatus,
    SessionType,
    TaskKind,
)

_STATUS_RANK = {
    SessionStatus.QUESTIONING: 0,
    SessionStatus.ENHANCING: 1,
    SessionStatus.COMPLETE: 2,
}


async def _write_question(controller, mock_db, session_id, text="What platform?"):
    """Simulate the question worker's write-back for the current step."""
    info = await controller.get_session(mock_db, session_id)
    return await controller.record_generated_question(
        mock_db, session_id, text, expected_step=info.current_step,
    )


# =====================================================================
# start_session
# =====================================================================


class TestStartSession:

    @pytest.mark.asyncio
    async def test_interactive_starts_questioning(self, controller, mock_db, scheduler):
        info = await controller.start_session(mock_db, original_prompt="Build a todo app")

        assert info.status == SessionStatus.QUESTIONING
        assert info.session_type == SessionType.INTERACTIVE
        assert info.current_step == 0
        assert info.enhanced_prompt is None
        assert info.selected_format == ExportFormat.MARKDOWN

        assert len(scheduler.tasks) == 1
        task = scheduler.tasks[0]
        assert task["kind"] == TaskKind.GENERATE_QUESTION
        assert task["step"] == 0
        assert task["payload"] == {"transcript": []}

    @pytest.mark.asyncio
    async def test_oneshot_starts_enhancing(self, controller, mock_db, scheduler):
        info = await controller.start_session(
            mock_db,
            original_prompt="Build a todo app",
            session_type=SessionType.ONESHOT,
            selected_format=ExportFormat.XML,
        )

        assert info.status == SessionStatus.ENHANCING
        assert info.selected_format == ExportFormat.XML
        assert [t["kind"] for t in scheduler.tasks] == [
            TaskKind.GENERATE_ONESHOT_REFINEMENT
        ]

    @pytest.mark.asyncio
    async def test_accepts_string_enum_values(self, controller, mock_db):
        info = await controller.start_session(
            mock_db, original_prompt="x", session_type="oneshot", selected_format="json",
        )
        assert info.session_type == SessionType.ONESHOT
        assert info.selected_format == ExportFormat.JSON

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   \n"])
    async def test_empty_prompt_rejected(self, controller, mock_db, scheduler, prompt):
        with pytest.raises(ValueError):
            await controller.start_session(mock_db, original_prompt=prompt)
        assert scheduler.tasks == []

    @pytest.mark.asyncio
    async def test_unknown_session_type_rejected(self, controller, mock_db):
        with pytest.raises(ValueError):
            await controller.start_session(
                mock_db, original_prompt="x", session_type="batch",
            )


# =====================================================================
# submit_answer
# =====================================================================


class TestSubmitAnswer:

    @pytest.mark.asyncio
    async def test_answer_advances_step_and_schedules_next_question(
        self, controller, mock_db, scheduler,
    ):
        info = await controller.start_session(mock_db, original_prompt="Build a todo app")
        scheduler.pop_all()
        await _write_question(controller, mock_db, info.id, "Web or mobile?")

        updated = await controller.submit_answer(mock_db, info.id, "Web")

        assert updated.current_step == 1
        assert updated.status == SessionStatus.QUESTIONING
        assert len(scheduler.tasks) == 1
        task = scheduler.tasks[0]
        assert task["kind"] == TaskKind.GENERATE_QUESTION
        assert task["step"] == 1
        assert task["payload"]["transcript"] == [
            {"question": "Web or mobile?", "answer": "Web"}
        ]

    @pytest.mark.asyncio
    async def test_third_answer_moves_to_enhancing(self, controller, mock_db, scheduler):
        info = await controller.start_session(mock_db, original_prompt="Build a todo app")
        for i in range(MAX_QUESTIONS):
            await _write_question(controller, mock_db, info.id, f"Q{i}?")
            updated = await controller.submit_answer(mock_db, info.id, f"A{i}")

        assert updated.status == SessionStatus.ENHANCING
        assert updated.current_step == MAX_QUESTIONS
        assert scheduler.tasks[-1]["kind"] == TaskKind.GENERATE_ENHANCED_PROMPT
        assert scheduler.tasks[-1]["step"] == MAX_QUESTIONS

    @pytest.mark.asyncio
    async def test_answer_before_question_exists_is_not_found(
        self, controller, mock_db, scheduler,
    ):
        info = await controller.start_session(mock_db, original_prompt="Build a todo app")
        scheduler.pop_all()

        with pytest.raises(NotFoundError):
            await controller.submit_answer(mock_db, info.id, "too early")

        assert (await controller.get_session(mock_db, info.id)).current_step == 0
        assert scheduler.tasks == []

    @pytest.mark.asyncio
    async def test_fourth_answer_rejected(self, controller, mock_db):
        info = await controller.start_session(mock_db, original_prompt="Build a todo app")
        for i in range(MAX_QUESTIONS):
            await _write_question(controller, mock_db, info.id, f"Q{i}?")
            await controller.submit_answer(mock_db, info.id, f"A{i}")

        with pytest.raises(NotFoundError):
            await controller.submit_answer(mock_db, info.id, "one more")

        questions = await controller.get_questions(mock_db, info.id)
        assert len(questions) == MAX_QUESTIONS

    @pytest.mark.asyncio
    async def test_oneshot_session_has_no_open_question(self, controller, mock_db):
        info = await controller.start_session(
            mock_db, original_prompt="x", session_type=SessionType.ONESHOT,
        )
        with pytest.raises(NotFoundError):
            await controller.submit_answer(mock_db, info.id, "anything")

    @pytest.mark.asyncio
    async def test_unknown_session_not_found(self, controller, mock_db):
        with pytest.raises(NotFoundError):
            await controller.submit_answer(mock_db, uuid.uuid4(), "hello")

    @pytest.mark.asyncio
    async def test_empty_answer_rejected(self, controller, mock_db):
        info = await controller.start_session(mock_db, original_prompt="x")
        await _write_question(controller, mock_db, info.id)
        with pytest.raises(ValueError):
            await controller.submit_answer(mock_db, info.id, "  ")

    @pytest.mark.asyncio
    async def test_losing_concurrent_answer_is_not_found(
        self, controller, mock_db, mock_questions, scheduler,
    ):
        """The compare-and-set loser does not advance the step."""
        info = await controller.start_session(mock_db, original_prompt="x")
        await _write_question(controller, mock_db, info.id)
        scheduler.pop_all()

        async def lose_race(db, question, answer):
            return False

        mock_questions.claim_answer = lose_race

        with pytest.raises(NotFoundError):
            await controller.submit_answer(mock_db, info.id, "late")
        assert (await controller.get_session(mock_db, info.id)).current_step == 0
        assert scheduler.tasks == []

    @pytest.mark.asyncio
    async def test_second_answer_to_same_question_rejected(self, controller, mock_db):
        info = await controller.start_session(mock_db, original_prompt="x")
        await _write_question(controller, mock_db, info.id)

        await controller.submit_answer(mock_db, info.id, "first")
        with pytest.raises(NotFoundError):
            await controller.submit_answer(mock_db, info.id, "second")

        questions = await controller.get_questions(mock_db, info.id)
        assert questions[0].answer == "first"


# =====================================================================
# update_format
# =====================================================================


class TestUpdateFormat:

    @pytest.mark.asyncio
    async def test_format_change_while_questioning(self, controller, mock_db):
        info = await controller.start_session(mock_db, original_prompt="x")
        updated = await controller.update_format(mock_db, info.id, ExportFormat.JSON)
        assert updated.selected_format == ExportFormat.JSON

    @pytest.mark.asyncio
    async def test_format_fixed_once_complete(self, controller, mock_db):
        info = await controller.start_session(
            mock_db, original_prompt="x", session_type=SessionType.ONESHOT,
        )
        await controller.record_enhanced_prompt(mock_db, info.id, "better x")

        with pytest.raises(InvalidStateError):
            await controller.update_format(mock_db, info.id, ExportFormat.XML)

    @pytest.mark.asyncio
    async def test_unknown_format_rejected(self, controller, mock_db):
        info = await controller.start_session(mock_db, original_prompt="x")
        with pytest.raises(ValueError):
            await controller.update_format(mock_db, info.id, "yaml")


# =====================================================================
# End-to-end dialogue with workers
# =====================================================================


class TestDialogue:

    @pytest.mark.asyncio
    async def test_full_round_trip_exports_three_answered_questions(
        self, controller, workers, mock_db, scheduler,
    ):
        info = await controller.start_session(mock_db, original_prompt="Build a todo app")
        await run_pending(scheduler, workers)

        for answer in ("Web", "Families", "Shared lists"):
            await controller.submit_answer(mock_db, info.id, answer)
            await run_pending(scheduler, workers)

        final = await controller.get_session(mock_db, info.id)
        assert final.status == SessionStatus.COMPLETE
        assert final.enhanced_prompt

        document = json.loads(
            await controller.export_session(mock_db, info.id, ExportFormat.JSON)
        )
        assert len(document["questions"]) == 3
        assert [q["order"] for q in document["questions"]] == [0, 1, 2]
        assert all(q["answer"] for q in document["questions"])

    @pytest.mark.asyncio
    async def test_status_never_moves_backwards(
        self, controller, workers, mock_db, scheduler,
    ):
        info = await controller.start_session(mock_db, original_prompt="x")
        seen = [info.status]

        await run_pending(scheduler, workers)
        for answer in ("a", "b", "c"):
            seen.append((await controller.submit_answer(mock_db, info.id, answer)).status)
            await run_pending(scheduler, workers)
            seen.append((await controller.get_session(mock_db, info.id)).status)

        ranks = [_STATUS_RANK[s] for s in seen]
        assert ranks == sorted(ranks)
        assert seen[-1] == SessionStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_oneshot_completes_without_questions(
        self, controller, workers, mock_db, scheduler,
    ):
        info = await controller.start_session(
            mock_db, original_prompt="Build a todo app", session_type=SessionType.ONESHOT,
        )
        await run_pending(scheduler, workers)

        final = await controller.get_session(mock_db, info.id)
        assert final.status == SessionStatus.COMPLETE
        assert await controller.get_questions(mock_db, info.id) == []

    @pytest.mark.asyncio
    async def test_open_question_exists_whenever_answer_is_expected(
        self, controller, workers, mock_db, scheduler,
    ):
        """After each delivered question task there is exactly one open question."""
        info = await controller.start_session(mock_db, original_prompt="x")
        for answer in ("a", "b", "c"):
            await run_pending(scheduler, workers)
            questions = await controller.get_questions(mock_db, info.id)
            current = (await controller.get_session(mock_db, info.id)).current_step
            open_questions = [q for q in questions if q.answer is None]
            assert [q.order for q in open_questions] == [current]
            await controller.submit_answer(mock_db, info.id, answer)

    @pytest.mark.asyncio
    async def test_failed_provider_uses_fallback_question(
        self, controller, mock_db, scheduler, session_factory,
    ):
        workers = GenerationWorkers(controller, FailingProvider(), session_factory)
        info = await controller.start_session(mock_db, original_prompt="x")
        await run_pending(scheduler, workers)

        questions = await controller.get_questions(mock_db, info.id)
        assert [q.question for q in questions] == [FALLBACK_QUESTION]


# =====================================================================
# Read projections
# =====================================================================


class TestProjections:

    @pytest.mark.asyncio
    async def test_get_session_unknown_is_not_found(self, controller, mock_db):
        with pytest.raises(NotFoundError):
            await controller.get_session(mock_db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_get_questions_unknown_is_not_found(self, controller, mock_db):
        with pytest.raises(NotFoundError):
            await controller.get_questions(mock_db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_list_completed_counts_questions(
        self, controller, workers, mock_db, scheduler,
    ):
        interactive = await controller.start_session(mock_db, original_prompt="first")
        await run_pending(scheduler, workers)
        for answer in ("a", "b", "c"):
            await controller.submit_answer(mock_db, interactive.id, answer)
            await run_pending(scheduler, workers)

        oneshot = await controller.start_session(
            mock_db, original_prompt="second", session_type=SessionType.ONESHOT,
        )
        await run_pending(scheduler, workers)

        # In progress: must not be listed
        await controller.start_session(mock_db, original_prompt="third")

        summaries = await controller.list_completed_sessions(mock_db)
        counts = {s.id: s.question_count for s in summaries}
        assert counts == {interactive.id: 3, oneshot.id: 0}

    @pytest.mark.asyncio
    async def test_stats_over_completed_sessions(self, controller, mock_db):
        for prompt, enhanced in (("a" * 100, "b" * 40), ("c" * 50, "d" * 30)):
            info = await controller.start_session(
                mock_db, original_prompt=prompt, session_type=SessionType.ONESHOT,
            )
            await controller.record_enhanced_prompt(mock_db, info.id, enhanced)

        stats = await controller.get_stats(mock_db)
        assert stats.total_prompts_enhanced == 2
        assert stats.total_questions == 0
        assert stats.total_original_chars == 150
        assert stats.total_enhanced_chars == 70
        assert stats.saved_chars == 80
        assert stats.percent_reduction == 53.3

    @pytest.mark.asyncio
    async def test_export_before_completion_is_invalid_state(self, controller, mock_db):
        info = await controller.start_session(mock_db, original_prompt="x")
        for fmt in ExportFormat:
            with pytest.raises(InvalidStateError):
                await controller.export_session(mock_db, info.id, fmt)

    @pytest.mark.asyncio
    async def test_export_is_idempotent(self, controller, mock_db):
        info = await controller.start_session(
            mock_db, original_prompt="x", session_type=SessionType.ONESHOT,
        )
        await controller.record_enhanced_prompt(mock_db, info.id, "better x")

        for fmt in ExportFormat:
            first = await controller.export_session(mock_db, info.id, fmt)
            second = await controller.export_session(mock_db, info.id, fmt)
            assert first == second
