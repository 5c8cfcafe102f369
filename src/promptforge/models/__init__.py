"""Public model re-exports for promptforge.

Consumers should import from ``promptforge.models`` rather than reaching
into sub-modules directly.
"""

from promptforge.models.generation import ChatMessage, TranscriptEntry
from promptforge.models.session import (
    CompletedSessionSummary,
    DashboardStats,
    QuestionInfo,
    SessionInfo,
)

__all__ = [
    "ChatMessage",
    "CompletedSessionSummary",
    "DashboardStats",
    "QuestionInfo",
    "SessionInfo",
    "TranscriptEntry",
]
