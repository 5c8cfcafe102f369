"""promptforge: Interactive prompt-enhancement SDK.

Public API:
    SessionController : session/question state machine (commands + projections)
    GenerationWorkers : provider-backed question and enhancement workers
    OutboxScheduler   : transactional task scheduling into ``generation_tasks``
    TaskRunner        : polls the outbox and runs workers concurrently
    OpenAIProvider    : chat-completions provider over ``openai.AsyncOpenAI``
    PromptManager     : Jinja2 renderer for provider requests

Interfaces:
    GenerationProvider: ABC for text generation backends
    TaskScheduler     : ABC for deferred worker execution

Models:
    SessionInfo            : public view of session state
    QuestionInfo           : one clarifying question and its answer
    CompletedSessionSummary: completed session with its question count
    DashboardStats         : aggregate figures over completed sessions
    TranscriptEntry        : question/answer pair sent to the provider
    ChatMessage            : one turn of a provider request

Errors:
    NotFoundError, InvalidStateError, ProviderError
"""

from promptforge.controller import SessionController
from promptforge.errors import InvalidStateError, NotFoundError, ProviderError
from promptforge.export import project
from promptforge.interfaces import GenerationProvider, TaskScheduler
from promptforge.models import (
    ChatMessage,
    CompletedSessionSummary,
    DashboardStats,
    QuestionInfo,
    SessionInfo,
    TranscriptEntry,
)
from promptforge.prompt import PromptManager
from promptforge.provider import OpenAIProvider
from promptforge.scheduler import OutboxScheduler, TaskRunner
from promptforge.stats import compute_stats
from promptforge.workers import GenerationWorkers

__all__ = [
    # Core
    "SessionController",
    "GenerationWorkers",
    "OutboxScheduler",
    "TaskRunner",
    "OpenAIProvider",
    "PromptManager",
    # Interfaces
    "GenerationProvider",
    "TaskScheduler",
    # Models
    "SessionInfo",
    "QuestionInfo",
    "CompletedSessionSummary",
    "DashboardStats",
    "TranscriptEntry",
    "ChatMessage",
    # Functions
    "project",
    "compute_stats",
    # Errors
    "NotFoundError",
    "InvalidStateError",
    "ProviderError",
]
