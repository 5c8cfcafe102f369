"""Session and question models: the contract between the SDK and callers.

These models are intentionally decoupled from the ORM models in
``promptforge_db`` so that API consumers never see database internals.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel

from promptforge_db.models.enums import (
    ExportFormat,
    SessionStatus,
    SessionType,
)


class SessionInfo(BaseModel):
    """Public view of session state.

    ``selected_format`` is already resolved: sessions without a stored
    preference report ``markdown``.
    """

    id: uuid.UUID
    original_prompt: str
    session_type: SessionType
    status: SessionStatus
    current_step: int
    selected_format: ExportFormat
    enhanced_prompt: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class QuestionInfo(BaseModel):
    """One clarifying question as shown to callers."""

    id: uuid.UUID
    session_id: uuid.UUID
    order: int
    question: str
    answer: str | None = None


class CompletedSessionSummary(BaseModel):
    """A completed session augmented with its question count."""

    id: uuid.UUID
    original_prompt: str
    enhanced_prompt: str
    session_type: SessionType
    question_count: int
    created_at: datetime
    completed_at: datetime | None = None


class DashboardStats(BaseModel):
    """Aggregate figures over all completed sessions."""

    total_prompts_enhanced: int
    total_questions: int
    average_questions: float
    total_original_chars: int
    total_enhanced_chars: int
    saved_chars: int
    percent_reduction: float
