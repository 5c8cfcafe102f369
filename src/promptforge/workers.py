"""Generation workers: provider calls wrapped around controller write-backs.

Each worker reads what it needs in one short database session, calls the
provider with no session held (provider calls may take seconds), and then
writes the result back through the controller in a fresh session that it
commits itself.  Workers never mutate state directly.

Provider failures never surface to the user: a failed or empty question
generation writes ``FALLBACK_QUESTION``; a failed or empty enhancement
writes the original prompt unchanged.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promptforge_db.models.enums import SessionStatus, TaskKind

from promptforge.constants import FALLBACK_QUESTION
from promptforge.controller import SessionController
from promptforge.errors import NotFoundError, ProviderError
from promptforge.interfaces import GenerationProvider
from promptforge.models.generation import ChatMessage, TranscriptEntry
from promptforge.models.session import QuestionInfo, SessionInfo
from promptforge.prompt import PromptManager

logger = logging.getLogger(__name__)


class GenerationWorkers:
    """The three generation workers, sharing one provider and session factory.

    Args:
        controller: the write-back path into the state machine
        provider: text generation backend
        session_factory: produces the short-lived sessions each worker opens
        prompts: request renderer (defaults to the packaged templates)
    """

    def __init__(
        self,
        controller: SessionController,
        provider: GenerationProvider,
        session_factory: async_sessionmaker[AsyncSession],
        prompts: PromptManager | None = None,
    ) -> None:
        self._controller = controller
        self._provider = provider
        self._session_factory = session_factory
        self._prompts = prompts or PromptManager()

    async def handle(
        self,
        kind: TaskKind,
        session_id: uuid.UUID,
        payload: dict[str, Any],
        step: int,
    ) -> None:
        """Dispatch one scheduled task to its worker."""
        if kind == TaskKind.GENERATE_QUESTION:
            transcript = [
                TranscriptEntry.model_validate(entry)
                for entry in payload.get("transcript", [])
            ]
            await self.generate_question(session_id, transcript, step)
        elif kind == TaskKind.GENERATE_ENHANCED_PROMPT:
            await self.generate_enhanced_prompt(session_id)
        elif kind == TaskKind.GENERATE_ONESHOT_REFINEMENT:
            await self.generate_oneshot_refinement(session_id)
        else:
            raise ValueError(f"Unknown task kind: {kind}")

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def generate_question(
        self,
        session_id: uuid.UUID,
        transcript: list[TranscriptEntry],
        step: int,
    ) -> QuestionInfo | None:
        """Generate the question for turn ``step`` and write it back."""
        session = await self._read_session(session_id)
        if session is None:
            return None
        if session.status != SessionStatus.QUESTIONING or session.current_step != step:
            logger.info(
                "Question task is stale: session_id=%s, step=%d, "
                "status=%s, current_step=%d",
                session_id, step, session.status.value, session.current_step,
            )
            return None

        messages = self._prompts.question_request(session.original_prompt, transcript)
        text = await self._generate(messages, FALLBACK_QUESTION)

        async with self._session_factory() as db:
            written = await self._controller.record_generated_question(
                db, session_id, text, expected_step=step,
            )
            await db.commit()
        return written

    async def generate_enhanced_prompt(
        self, session_id: uuid.UUID
    ) -> SessionInfo | None:
        """Generate the refined prompt from the full dialogue and complete the session."""
        async with self._session_factory() as db:
            try:
                session = await self._controller.get_session(db, session_id)
                transcript = await self._controller.get_transcript(db, session_id)
            except NotFoundError:
                logger.warning("Enhancement dropped, session gone: %s", session_id)
                return None

        if session.enhanced_prompt is not None:
            logger.info("Enhanced prompt already written: session_id=%s", session_id)
            return None

        messages = self._prompts.enhancement_request(
            session.original_prompt, transcript, session.selected_format,
        )
        text = await self._generate(messages, session.original_prompt)
        return await self._write_enhanced(session_id, text)

    async def generate_oneshot_refinement(
        self, session_id: uuid.UUID
    ) -> SessionInfo | None:
        """Refine the original prompt directly, without a dialogue."""
        session = await self._read_session(session_id)
        if session is None:
            return None
        if session.enhanced_prompt is not None:
            logger.info("Enhanced prompt already written: session_id=%s", session_id)
            return None

        messages = self._prompts.oneshot_request(
            session.original_prompt, session.selected_format,
        )
        text = await self._generate(messages, session.original_prompt)
        return await self._write_enhanced(session_id, text)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _read_session(self, session_id: uuid.UUID) -> SessionInfo | None:
        async with self._session_factory() as db:
            try:
                return await self._controller.get_session(db, session_id)
            except NotFoundError:
                logger.warning("Generation dropped, session gone: %s", session_id)
                return None

    async def _write_enhanced(
        self, session_id: uuid.UUID, text: str
    ) -> SessionInfo | None:
        async with self._session_factory() as db:
            written = await self._controller.record_enhanced_prompt(db, session_id, text)
            await db.commit()
        return written

    async def _generate(self, messages: list[ChatMessage], fallback: str) -> str:
        """Call the provider once; substitute ``fallback`` on failure or empty output."""
        try:
            text = await self._provider.complete(messages)
        except ProviderError as exc:
            logger.warning("Generation failed, using fallback: %s", exc)
            return fallback

        text = text.strip()
        if not text:
            logger.warning("Generation returned no text, using fallback")
            return fallback
        return text
