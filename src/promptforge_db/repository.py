"""Async repositories for sessions, questions and generation tasks.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries: repositories ``flush()`` but never ``commit()``.
The SDK composes a state change and its outbox row in one transaction and
the caller (API dependency, task runner, CLI) commits it.

The repositories avoid business rules (those live in
``promptforge.controller``).  They *do* provide the two atomic primitives the
state machine relies on: a row lock on the session
(:meth:`SessionRepository.get_for_update`) and a compare-and-set on a
question's answer (:meth:`QuestionRepository.claim_answer`).
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from promptforge_db.models.enums import SessionStatus, SessionType
from promptforge_db.models.question import SessionQuestion
from promptforge_db.models.session import EnhancementSession
from promptforge_db.models.task import GenerationTask


class SessionRepository:
    """Async read/write operations on the ``enhancement_sessions`` table."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        original_prompt: str,
        session_type: SessionType,
        status: SessionStatus,
        selected_format: str | None = None,
    ) -> EnhancementSession:
        """Insert a new session row at step 0 and return it."""
        session = EnhancementSession(
            original_prompt=original_prompt,
            session_type=session_type.value,
            status=status.value,
            current_step=0,
            selected_format=selected_format,
        )
        db.add(session)
        await db.flush()  # Populate defaults (id, timestamps)
        return session

    # ------------------------------------------------------------------
    # Read: single row
    # ------------------------------------------------------------------

    async def get_by_id(
        self, db: AsyncSession, session_pk: uuid.UUID
    ) -> EnhancementSession | None:
        """Fetch a session by its primary-key UUID."""
        return await db.get(EnhancementSession, session_pk)

    async def get_for_update(
        self, db: AsyncSession, session_pk: uuid.UUID
    ) -> EnhancementSession | None:
        """Fetch a session and hold a row lock until the transaction ends.

        Serialises concurrent commands against the same session: a second
        ``submit_answer`` blocks here until the first commits, then sees the
        advanced ``current_step``.
        """
        stmt = (
            select(EnhancementSession)
            .where(EnhancementSession.id == session_pk)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Read: multiple rows
    # ------------------------------------------------------------------

    async def list_completed(
        self,
        db: AsyncSession,
        *,
        limit: int | None = 20,
        offset: int = 0,
    ) -> list[tuple[EnhancementSession, int]]:
        """List completed sessions with their question counts, newest first."""
        question_count = func.count(SessionQuestion.id)
        stmt = (
            select(EnhancementSession, question_count)
            .outerjoin(
                SessionQuestion,
                SessionQuestion.session_id == EnhancementSession.id,
            )
            .where(
                EnhancementSession.status == SessionStatus.COMPLETE.value,
                EnhancementSession.enhanced_prompt.is_not(None),
            )
            .group_by(EnhancementSession.id)
            .order_by(EnhancementSession.created_at.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await db.execute(stmt)
        return [(row[0], int(row[1])) for row in result.all()]

    async def list_stalled(
        self, db: AsyncSession, *, older_than_minutes: int
    ) -> list[EnhancementSession]:
        """Return non-terminal sessions untouched for at least the threshold.

        Callers still need to check whether a ``questioning`` session is
        simply waiting for the user (it has an open question).
        """
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        stmt = (
            select(EnhancementSession)
            .where(
                EnhancementSession.status.in_([
                    SessionStatus.QUESTIONING.value,
                    SessionStatus.ENHANCING.value,
                ]),
                EnhancementSession.updated_at < cutoff,
            )
            .order_by(EnhancementSession.updated_at.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Update: dialogue progress
    # ------------------------------------------------------------------

    async def advance_step(
        self, db: AsyncSession, session: EnhancementSession, next_step: int
    ) -> EnhancementSession:
        """Record a completed turn while the dialogue continues."""
        session.current_step = next_step
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def begin_enhancing(
        self, db: AsyncSession, session: EnhancementSession, next_step: int
    ) -> EnhancementSession:
        """Record the final turn and move the session to ``enhancing``."""
        session.current_step = next_step
        session.status = SessionStatus.ENHANCING.value
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def set_format(
        self, db: AsyncSession, session: EnhancementSession, fmt: str
    ) -> EnhancementSession:
        """Store the export-format preference."""
        session.selected_format = fmt
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def touch(
        self, db: AsyncSession, session: EnhancementSession
    ) -> EnhancementSession:
        """Bump ``updated_at`` so a re-scheduled session is not picked up again."""
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    # ------------------------------------------------------------------
    # Update: terminal state
    # ------------------------------------------------------------------

    async def save_enhanced_prompt(
        self,
        db: AsyncSession,
        session: EnhancementSession,
        enhanced_prompt: str,
    ) -> EnhancementSession:
        """Write the generated prompt and mark the session complete.

        The CHECK constraints ``ck_complete_has_prompt`` and
        ``ck_prompt_only_when_complete`` tie the two columns together.
        """
        now = datetime.now(timezone.utc)
        session.enhanced_prompt = enhanced_prompt
        session.status = SessionStatus.COMPLETE.value
        session.completed_at = now
        session.updated_at = now
        await db.flush()
        return session


class QuestionRepository:
    """Async read/write operations on the ``session_questions`` table."""

    async def create_question(
        self,
        db: AsyncSession,
        *,
        session_pk: uuid.UUID,
        order: int,
        question: str,
    ) -> SessionQuestion:
        """Insert a new, unanswered question.

        The unique constraint ``uq_session_question_order`` rejects a second
        row for the same turn.
        """
        row = SessionQuestion(session_id=session_pk, order=order, question=question)
        db.add(row)
        await db.flush()
        return row

    async def get_at_order(
        self, db: AsyncSession, session_pk: uuid.UUID, order: int
    ) -> SessionQuestion | None:
        """Fetch the question at a given position, answered or not."""
        stmt = select(SessionQuestion).where(
            SessionQuestion.session_id == session_pk,
            SessionQuestion.order == order,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_open_question(
        self, db: AsyncSession, session_pk: uuid.UUID, order: int
    ) -> SessionQuestion | None:
        """Fetch the unanswered question at ``order``, if there is one."""
        stmt = select(SessionQuestion).where(
            SessionQuestion.session_id == session_pk,
            SessionQuestion.order == order,
            SessionQuestion.answer.is_(None),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_session(
        self, db: AsyncSession, session_pk: uuid.UUID
    ) -> list[SessionQuestion]:
        """All questions of a session in dialogue order."""
        stmt = (
            select(SessionQuestion)
            .where(SessionQuestion.session_id == session_pk)
            .order_by(SessionQuestion.order.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def claim_answer(
        self, db: AsyncSession, question: SessionQuestion, answer: str
    ) -> bool:
        """Attach ``answer`` only if the question is still unanswered.

        Returns ``False`` when another transaction answered it first.
        """
        stmt = (
            update(SessionQuestion)
            .where(
                SessionQuestion.id == question.id,
                SessionQuestion.answer.is_(None),
            )
            .values(answer=answer, answered_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        )
        result = await db.execute(stmt)
        return result.rowcount == 1


class TaskRepository:
    """Async operations on the ``generation_tasks`` outbox."""

    async def enqueue(
        self,
        db: AsyncSession,
        *,
        kind: str,
        session_pk: uuid.UUID,
        step: int,
        payload: dict[str, Any],
        dedupe_key: str,
    ) -> bool:
        """Insert a task row unless one with the same ``dedupe_key`` is pending.

        Returns ``True`` when a row was inserted.
        """
        stmt = (
            pg_insert(GenerationTask)
            .values(
                id=uuid.uuid4(),
                kind=kind,
                session_id=session_pk,
                step=step,
                payload=payload,
                dedupe_key=dedupe_key,
                attempts=0,
                created_at=datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["dedupe_key"])
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    async def claim_batch(
        self,
        db: AsyncSession,
        *,
        limit: int,
        lease_seconds: int,
    ) -> list[GenerationTask]:
        """Lease up to ``limit`` tasks, oldest first.

        Picks rows never claimed or whose lease expired.  ``SKIP LOCKED``
        lets several runner processes poll the same table.
        """
        now = datetime.now(timezone.utc)
        lease_cutoff = now - timedelta(seconds=lease_seconds)
        stmt = (
            select(GenerationTask)
            .where(
                or_(
                    GenerationTask.claimed_at.is_(None),
                    GenerationTask.claimed_at < lease_cutoff,
                )
            )
            .order_by(GenerationTask.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await db.execute(stmt)
        tasks = list(result.scalars().all())
        for task in tasks:
            task.claimed_at = now
            task.attempts = task.attempts + 1
        await db.flush()
        return tasks

    async def delete(self, db: AsyncSession, task_pk: uuid.UUID) -> None:
        """Remove a finished (or abandoned) task."""
        await db.execute(delete(GenerationTask).where(GenerationTask.id == task_pk))

    async def release(
        self, db: AsyncSession, task_pk: uuid.UUID, error: str
    ) -> None:
        """Drop the lease so the task is retried on a later poll."""
        await db.execute(
            update(GenerationTask)
            .where(GenerationTask.id == task_pk)
            .values(claimed_at=None, last_error=error)
        )
