"""Shared wiring for the server lifespan and the standalone worker.

Both processes build the same object graph: one ``OpenAIProvider``, one
``SessionController`` scheduling through the outbox, and one
``GenerationWorkers`` drawing sessions from the shared factory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from promptforge.controller import SessionController
from promptforge.provider import OpenAIProvider
from promptforge.scheduler import OutboxScheduler, TaskRunner
from promptforge.workers import GenerationWorkers
from promptforge_db.engine import get_session_factory

from promptforge_server.config import (
    ProviderSettings,
    RunnerSettings,
    load_provider_settings,
    load_runner_settings,
)

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """The long-lived objects of one process."""

    provider: OpenAIProvider
    controller: SessionController
    workers: GenerationWorkers
    runner: TaskRunner


def build_provider(settings: ProviderSettings) -> OpenAIProvider:
    """Create the process-wide provider client."""
    provider = OpenAIProvider(
        api_key=settings.api_key,
        model=settings.model,
        base_url=settings.base_url,
        timeout=settings.timeout_seconds,
    )
    logger.info(
        "Provider ready: model=%s, timeout=%.0fs", settings.model, settings.timeout_seconds,
    )
    return provider


def build_runtime(
    provider_settings: ProviderSettings | None = None,
    runner_settings: RunnerSettings | None = None,
) -> Runtime:
    """Build provider, controller, workers and runner from settings."""
    provider_settings = provider_settings or load_provider_settings()
    runner_settings = runner_settings or load_runner_settings()

    provider = build_provider(provider_settings)
    controller = SessionController(scheduler=OutboxScheduler())
    factory = get_session_factory()
    workers = GenerationWorkers(controller, provider, factory)
    runner = TaskRunner(
        workers,
        factory,
        poll_interval=runner_settings.poll_interval,
        max_concurrent=runner_settings.max_concurrent,
        lease_seconds=runner_settings.lease_seconds,
        max_attempts=runner_settings.max_attempts,
    )
    return Runtime(provider=provider, controller=controller, workers=workers, runner=runner)
