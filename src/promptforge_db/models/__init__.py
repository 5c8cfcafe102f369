"""ORM models for promptforge_db."""

from promptforge_db.models.base import Base
from promptforge_db.models.enums import (
    ExportFormat,
    SessionStatus,
    SessionType,
    TaskKind,
)
from promptforge_db.models.question import SessionQuestion
from promptforge_db.models.session import EnhancementSession
from promptforge_db.models.task import GenerationTask

__all__ = [
    "Base",
    "EnhancementSession",
    "ExportFormat",
    "GenerationTask",
    "SessionQuestion",
    "SessionStatus",
    "SessionType",
    "TaskKind",
]
