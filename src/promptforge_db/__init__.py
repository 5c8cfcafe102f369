"""promptforge_db: PostgreSQL persistence layer for enhancement sessions.

This package provides the ORM models, async engine factory, and repositories
for sessions, their clarifying questions, and the generation-task outbox.
It is consumed by the promptforge SDK, the FastAPI server and the worker.
"""

from promptforge_db.engine import get_engine, get_session_factory
from promptforge_db.models.enums import (
    ExportFormat,
    SessionStatus,
    SessionType,
    TaskKind,
)
from promptforge_db.models.question import SessionQuestion
from promptforge_db.models.session import EnhancementSession
from promptforge_db.models.task import GenerationTask
from promptforge_db.repository import (
    QuestionRepository,
    SessionRepository,
    TaskRepository,
)

__all__ = [
    "EnhancementSession",
    "ExportFormat",
    "GenerationTask",
    "QuestionRepository",
    "SessionQuestion",
    "SessionRepository",
    "SessionStatus",
    "SessionType",
    "TaskKind",
    "TaskRepository",
    "get_engine",
    "get_session_factory",
]
