"""Abstract interfaces for the two external collaborators of the core.

The controller schedules work through a :class:`TaskScheduler` and the
workers generate text through a :class:`GenerationProvider`.  The SDK ships
one production implementation of each (``OutboxScheduler`` and
``OpenAIProvider``); tests substitute in-memory fakes.

Typical wiring::

    provider = OpenAIProvider(settings)
    controller = SessionController(scheduler=OutboxScheduler())
    workers = GenerationWorkers(controller, provider, get_session_factory())
    runner = TaskRunner(workers, get_session_factory())
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from promptforge_db.models.enums import TaskKind

from promptforge.models.generation import ChatMessage


class GenerationProvider(ABC):
    """Black-box text generation: prompt in, text out."""

    @abstractmethod
    async def complete(self, messages: list[ChatMessage]) -> str:
        """Run one chat-style generation.

        Parameters
        ----------
        messages:
            Ordered turns, one ``system`` turn carrying the task
            instruction and one ``user`` turn carrying the payload.

        Returns
        -------
        str
            The generated text, possibly empty.

        Raises
        ------
        ProviderError
            When the call fails or times out.
        """
        ...


class TaskScheduler(ABC):
    """Deferred execution of generation workers.

    ``enqueue`` is called from inside a transactional command, as its last
    act.  Implementations must not run the task before that transaction
    commits, and must run it at least once afterwards.
    """

    @abstractmethod
    async def enqueue(
        self,
        db: AsyncSession,
        kind: TaskKind,
        *,
        session_id: uuid.UUID,
        step: int,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Schedule ``kind`` for ``session_id`` at dialogue ``step``.

        Returns ``False`` when an identical task (same kind, session and
        step) is already pending and nothing new was scheduled.
        """
        ...
