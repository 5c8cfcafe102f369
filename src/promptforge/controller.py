"""SessionController: the session/question state machine.

Every public method is one transactional command or read projection: it
takes the caller's ``AsyncSession``, loads state, applies the transition,
and (for commands) schedules follow-up generation work as its last act.
Nothing is committed here; the caller owns the transaction, so a command's
state change and its scheduled task become visible together.

State machine (interactive sessions)::

    questioning(step=0) --answer--> questioning(step=1) --answer-->
    questioning(step=2) --answer--> enhancing --[write-back]--> complete

One-shot sessions are created in ``enhancing`` and complete on write-back.

Write-back commands (``record_generated_question`` and
``record_enhanced_prompt``) are the only path through which generation
workers change state.  Both re-read the session under a row lock and skip
stale or duplicate deliveries instead of failing, so at-least-once task
delivery never produces a second question for a turn or overwrites an
enhanced prompt.

Usage::

    controller = SessionController(scheduler=OutboxScheduler())

    info = await controller.start_session(db, original_prompt="Build a todo app")
    await db.commit()
    # ... the worker writes question 0 ...
    info = await controller.submit_answer(db, info.id, "A web app")
    await db.commit()
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from promptforge_db.models.enums import (
    ExportFormat,
    SessionStatus,
    SessionType,
    TaskKind,
)
from promptforge_db.models.question import SessionQuestion
from promptforge_db.models.session import EnhancementSession
from promptforge_db.repository import QuestionRepository, SessionRepository

from promptforge.constants import DEFAULT_FORMAT, MAX_QUESTIONS
from promptforge.errors import InvalidStateError, NotFoundError
from promptforge.export import project
from promptforge.interfaces import TaskScheduler
from promptforge.models.generation import TranscriptEntry
from promptforge.models.session import (
    CompletedSessionSummary,
    DashboardStats,
    QuestionInfo,
    SessionInfo,
)
from promptforge.stats import compute_stats

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the Session/Question state machine.

    Args:
        scheduler: where commands hand off generation work; must defer
            execution until the calling transaction commits
    """

    def __init__(self, scheduler: TaskScheduler) -> None:
        self._scheduler = scheduler
        self._repo = SessionRepository()
        self._questions = QuestionRepository()

    # ==================================================================
    # Commands
    # ==================================================================

    async def start_session(
        self,
        db: AsyncSession,
        *,
        original_prompt: str,
        session_type: SessionType | str = SessionType.INTERACTIVE,
        selected_format: ExportFormat | str | None = None,
    ) -> SessionInfo:
        """Create a session and schedule its first generation task.

        Interactive sessions start in ``questioning`` and schedule the first
        question with an empty transcript; one-shot sessions start in
        ``enhancing`` and schedule the refinement.

        Raises:
            ValueError: if the prompt is empty or an enum value is unknown
        """
        if not original_prompt or not original_prompt.strip():
            raise ValueError("original_prompt must not be empty")
        session_type = SessionType(session_type)
        fmt = ExportFormat(selected_format) if selected_format is not None else None

        if session_type == SessionType.INTERACTIVE:
            status = SessionStatus.QUESTIONING
            kind = TaskKind.GENERATE_QUESTION
            payload = {"transcript": []}
        elif session_type == SessionType.ONESHOT:
            status = SessionStatus.ENHANCING
            kind = TaskKind.GENERATE_ONESHOT_REFINEMENT
            payload = {}
        else:
            raise ValueError(f"Unknown session_type: {session_type}")

        row = await self._repo.create_session(
            db,
            original_prompt=original_prompt,
            session_type=session_type,
            status=status,
            selected_format=fmt.value if fmt is not None else None,
        )
        await self._scheduler.enqueue(
            db, kind, session_id=row.id, step=0, payload=payload,
        )
        logger.info(
            "Session started: session_id=%s, type=%s", row.id, session_type.value,
        )
        return self._to_session_info(row)

    async def submit_answer(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        answer: str,
    ) -> SessionInfo:
        """Answer the current open question and advance the dialogue.

        The session row is locked for the rest of the transaction and the
        answer is attached with a compare-and-set, so of two concurrent
        calls exactly one advances ``current_step``; the other fails.

        Raises:
            ValueError: if the answer is empty
            NotFoundError: if the session does not exist, or no unanswered
                question exists at ``current_step`` (including a 4th answer,
                one-shot sessions, and the loser of a concurrent submit)
        """
        if not answer or not answer.strip():
            raise ValueError("answer must not be empty")

        row = await self._load_session(db, session_id, lock=True)
        step = row.current_step

        question = await self._questions.get_open_question(db, row.id, step)
        if question is None:
            raise NotFoundError(
                f"Question not found: session_id={session_id}, order={step}"
            )
        if not await self._questions.claim_answer(db, question, answer):
            raise NotFoundError(
                f"Question not found (already answered): "
                f"session_id={session_id}, order={step}"
            )

        next_step = step + 1
        if next_step >= MAX_QUESTIONS:
            await self._repo.begin_enhancing(db, row, next_step)
            await self._scheduler.enqueue(
                db,
                TaskKind.GENERATE_ENHANCED_PROMPT,
                session_id=row.id,
                step=next_step,
            )
            logger.info("Session enhancing: session_id=%s", row.id)
        else:
            await self._repo.advance_step(db, row, next_step)
            transcript = await self._snapshot_transcript(db, row.id, question, answer)
            await self._scheduler.enqueue(
                db,
                TaskKind.GENERATE_QUESTION,
                session_id=row.id,
                step=next_step,
                payload={"transcript": [e.model_dump() for e in transcript]},
            )
            logger.info(
                "Session advanced: session_id=%s, step=%d", row.id, next_step,
            )

        return self._to_session_info(row)

    async def update_format(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        fmt: ExportFormat | str,
    ) -> SessionInfo:
        """Change the format the enhanced prompt should be written in.

        Raises:
            NotFoundError: if the session does not exist
            InvalidStateError: if the session is already complete
        """
        fmt = ExportFormat(fmt)
        row = await self._load_session(db, session_id, lock=True)
        if SessionStatus(row.status) == SessionStatus.COMPLETE:
            raise InvalidStateError(
                f"Format is fixed once the session is complete: session_id={session_id}"
            )
        await self._repo.set_format(db, row, fmt.value)
        return self._to_session_info(row)

    # ==================================================================
    # Read projections
    # ==================================================================

    async def get_session(
        self, db: AsyncSession, session_id: uuid.UUID
    ) -> SessionInfo:
        """Return the session or raise ``NotFoundError``."""
        row = await self._load_session(db, session_id)
        return self._to_session_info(row)

    async def get_questions(
        self, db: AsyncSession, session_id: uuid.UUID
    ) -> list[QuestionInfo]:
        """Return the session's questions ordered by ``order``."""
        row = await self._load_session(db, session_id)
        rows = await self._questions.list_for_session(db, row.id)
        return [self._to_question_info(q) for q in rows]

    async def get_transcript(
        self, db: AsyncSession, session_id: uuid.UUID
    ) -> list[TranscriptEntry]:
        """Return the dialogue so far as question/answer pairs."""
        return [
            TranscriptEntry(question=q.question, answer=q.answer)
            for q in await self.get_questions(db, session_id)
        ]

    async def list_completed_sessions(
        self,
        db: AsyncSession,
        *,
        limit: int | None = 20,
        offset: int = 0,
    ) -> list[CompletedSessionSummary]:
        """Completed sessions with their question counts, newest first."""
        rows = await self._repo.list_completed(db, limit=limit, offset=offset)
        return [
            CompletedSessionSummary(
                id=row.id,
                original_prompt=row.original_prompt,
                enhanced_prompt=row.enhanced_prompt,
                session_type=SessionType(row.session_type),
                question_count=count,
                created_at=row.created_at,
                completed_at=row.completed_at,
            )
            for row, count in rows
        ]

    async def get_stats(self, db: AsyncSession) -> DashboardStats:
        """Dashboard figures over every completed session."""
        summaries = await self.list_completed_sessions(db, limit=None)
        return compute_stats(summaries)

    async def export_session(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        fmt: ExportFormat | str,
    ) -> str:
        """Serialise a completed session.

        Raises:
            NotFoundError: if the session does not exist
            InvalidStateError: if the enhanced prompt has not been written yet
        """
        fmt = ExportFormat(fmt)
        session = await self.get_session(db, session_id)
        if session.enhanced_prompt is None:
            raise InvalidStateError(
                f"Enhanced prompt not ready: session_id={session_id}, "
                f"status={session.status.value}"
            )
        questions = await self.get_questions(db, session_id)
        return project(session, questions, fmt)

    # ==================================================================
    # Write-back commands (generation workers only)
    # ==================================================================

    async def record_generated_question(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        question: str,
        *,
        expected_step: int,
    ) -> QuestionInfo | None:
        """Persist a generated question at the session's current step.

        ``current_step`` is read fresh under the row lock.  The write is
        skipped (``None`` returned) when the session has left
        ``questioning``, when its step no longer matches the step the task
        was scheduled for, or when the turn already has a question.

        Raises:
            NotFoundError: if the session does not exist
        """
        row = await self._load_session(db, session_id, lock=True)
        order = row.current_step

        if SessionStatus(row.status) != SessionStatus.QUESTIONING:
            logger.info(
                "Skipping question write-back: session_id=%s is %s",
                session_id, row.status,
            )
            return None
        if order != expected_step:
            logger.info(
                "Skipping stale question write-back: session_id=%s, "
                "expected_step=%d, current_step=%d",
                session_id, expected_step, order,
            )
            return None
        if await self._questions.get_at_order(db, row.id, order) is not None:
            logger.info(
                "Skipping duplicate question write-back: session_id=%s, order=%d",
                session_id, order,
            )
            return None

        created = await self._questions.create_question(
            db, session_pk=row.id, order=order, question=question,
        )
        logger.info("Question written: session_id=%s, order=%d", session_id, order)
        return self._to_question_info(created)

    async def record_enhanced_prompt(
        self,
        db: AsyncSession,
        session_id: uuid.UUID,
        enhanced_prompt: str,
    ) -> SessionInfo | None:
        """Persist the enhanced prompt and complete the session.

        Skipped (``None`` returned) when an enhanced prompt is already
        present or the dialogue is still in ``questioning``.

        Raises:
            NotFoundError: if the session does not exist
        """
        row = await self._load_session(db, session_id, lock=True)

        if row.enhanced_prompt is not None:
            logger.info(
                "Skipping duplicate enhanced-prompt write-back: session_id=%s",
                session_id,
            )
            return None
        if SessionStatus(row.status) != SessionStatus.ENHANCING:
            logger.warning(
                "Skipping enhanced-prompt write-back: session_id=%s is %s",
                session_id, row.status,
            )
            return None

        await self._repo.save_enhanced_prompt(db, row, enhanced_prompt)
        logger.info("Session complete: session_id=%s", session_id)
        return self._to_session_info(row)

    # ==================================================================
    # Recovery
    # ==================================================================

    async def recover_stalled_sessions(
        self, db: AsyncSession, *, older_than_minutes: int
    ) -> int:
        """Re-schedule generation for sessions stuck without a pending action.

        A ``questioning`` session is stuck when no question exists at its
        current step (a user waiting on an open question is not stuck); an
        ``enhancing`` session is stuck while it has no enhanced prompt.
        Returns the number of tasks scheduled.
        """
        rows = await self._repo.list_stalled(db, older_than_minutes=older_than_minutes)
        scheduled = 0

        for row in rows:
            status = SessionStatus(row.status)
            if status == SessionStatus.QUESTIONING:
                if await self._questions.get_at_order(db, row.id, row.current_step):
                    continue
                questions = await self._questions.list_for_session(db, row.id)
                kind = TaskKind.GENERATE_QUESTION
                payload = {
                    "transcript": [
                        {"question": q.question, "answer": q.answer}
                        for q in questions
                    ]
                }
            elif status == SessionStatus.ENHANCING:
                if SessionType(row.session_type) == SessionType.ONESHOT:
                    kind = TaskKind.GENERATE_ONESHOT_REFINEMENT
                else:
                    kind = TaskKind.GENERATE_ENHANCED_PROMPT
                payload = {}
            else:
                continue

            added = await self._scheduler.enqueue(
                db, kind, session_id=row.id, step=row.current_step, payload=payload,
            )
            await self._repo.touch(db, row)
            if added:
                scheduled += 1
                logger.info(
                    "Re-scheduled %s for stalled session_id=%s", kind.value, row.id,
                )

        return scheduled

    # ==================================================================
    # Internal helpers
    # ==================================================================

    async def _load_session(
        self, db: AsyncSession, session_id: uuid.UUID, *, lock: bool = False
    ) -> EnhancementSession:
        """Load a session row (optionally locked) or raise ``NotFoundError``."""
        if lock:
            row = await self._repo.get_for_update(db, session_id)
        else:
            row = await self._repo.get_by_id(db, session_id)
        if row is None:
            raise NotFoundError(f"Session not found: session_id={session_id}")
        return row

    async def _snapshot_transcript(
        self,
        db: AsyncSession,
        session_pk: uuid.UUID,
        answered: SessionQuestion,
        answer: str,
    ) -> list[TranscriptEntry]:
        """Pairs up to and including the question just answered."""
        rows = await self._questions.list_for_session(db, session_pk)
        return [
            TranscriptEntry(
                question=q.question,
                answer=answer if q.id == answered.id else q.answer,
            )
            for q in rows
            if q.order <= answered.order
        ]

    @staticmethod
    def _to_session_info(row: EnhancementSession) -> SessionInfo:
        return SessionInfo(
            id=row.id,
            original_prompt=row.original_prompt,
            session_type=SessionType(row.session_type),
            status=SessionStatus(row.status),
            current_step=row.current_step,
            selected_format=(
                ExportFormat(row.selected_format)
                if row.selected_format
                else DEFAULT_FORMAT
            ),
            enhanced_prompt=row.enhanced_prompt,
            created_at=row.created_at,
            updated_at=row.updated_at,
            completed_at=row.completed_at,
        )

    @staticmethod
    def _to_question_info(row: SessionQuestion) -> QuestionInfo:
        return QuestionInfo(
            id=row.id,
            session_id=row.session_id,
            order=row.order,
            question=row.question,
            answer=row.answer,
        )
