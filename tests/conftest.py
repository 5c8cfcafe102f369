from unittest.mock import AsyncMock

import pytest

from helpers.fakes import (
    FakeSessionFactory,
    MockQuestionRepository,
    MockRepository,
    MockStore,
    RecordingScheduler,
    ScriptedProvider,
)
from promptforge.controller import SessionController
from promptforge.workers import GenerationWorkers


@pytest.fixture
def store():
    return MockStore()


@pytest.fixture
def mock_repo(store):
    return MockRepository(store)


@pytest.fixture
def mock_questions(store):
    return MockQuestionRepository(store)


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def mock_db():
    """AsyncMock standing in for AsyncSession: flush/commit are no-ops."""
    return AsyncMock()


@pytest.fixture
def controller(scheduler, mock_repo, mock_questions):
    """SessionController with in-memory repositories."""
    ctrl = SessionController(scheduler=scheduler)
    ctrl._repo = mock_repo
    ctrl._questions = mock_questions
    return ctrl


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def provider():
    """Echoes a numbered question or a refined prompt depending on the request."""
    counter = {"n": 0}

    def respond(messages):
        if "clarifying question" in messages[-1].content.lower():
            counter["n"] += 1
            return f"Question {counter['n']}?"
        return "ENHANCED: " + messages[-1].content.splitlines()[0]

    return ScriptedProvider(respond=respond)


@pytest.fixture
def workers(controller, provider, session_factory):
    return GenerationWorkers(controller, provider, session_factory)
