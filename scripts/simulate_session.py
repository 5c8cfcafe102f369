#!/usr/bin/env python3
"""Simulate enhancement sessions end-to-end with a mocked DB.

Drives an interactive session through its three clarifying questions (or a
one-shot session straight to completion), delivering each scheduled task
to the generation workers the way the task runner would, and prints an
audit log of every question, the answer chosen and the final export.

By default the provider is a local stub, so no network or API key is
needed.  ``--live`` uses ``OpenAIProvider`` with ``OPENAI_API_KEY``.

Usage::

    # Interactive session with random canned answers
    python scripts/simulate_session.py

    # One-shot refinement exported as XML
    python scripts/simulate_session.py --oneshot -f xml

    # Real provider, custom prompt
    python scripts/simulate_session.py --live -p "Build a recipe sharing site"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import random
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so we can import both the SDK and
# test mock infrastructure.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "tests"))
sys.path.insert(0, str(_REPO_ROOT / "src"))

from helpers.fakes import (  # noqa: E402
    FakeSessionFactory,
    MockQuestionRepository,
    MockRepository,
    MockStore,
    RecordingScheduler,
    ScriptedProvider,
    run_pending,
)
from unittest.mock import AsyncMock  # noqa: E402

from promptforge.constants import DEFAULT_MODEL  # noqa: E402
from promptforge.controller import SessionController  # noqa: E402
from promptforge.interfaces import GenerationProvider  # noqa: E402
from promptforge.provider import OpenAIProvider  # noqa: E402
from promptforge.workers import GenerationWorkers  # noqa: E402
from promptforge_db.models.enums import ExportFormat, SessionType  # noqa: E402

# ---------------------------------------------------------------------------
# Constants for the simulation
# ---------------------------------------------------------------------------

_DEFAULT_PROMPT = "Build a todo app"

_STUB_QUESTIONS = [
    "Who is the primary audience for this app?",
    "Which platform should it run on first: web, mobile, or desktop?",
    "What is the one feature that must be there on day one?",
]

_ANSWER_POOL = [
    "Busy parents coordinating household chores",
    "Small teams of three to ten people",
    "Web first, mobile later",
    "A mobile app for iOS and Android",
    "Shared lists with due-date reminders",
    "Offline support with sync when back online",
    "Keep it simple, no accounts at first",
]


def _stub_provider() -> ScriptedProvider:
    """Canned questions, then an enhancement that quotes the transcript."""
    asked = {"n": 0}

    def respond(messages):
        user = messages[-1].content
        if user.rstrip().endswith("Ask one clarifying question:"):
            question = _STUB_QUESTIONS[asked["n"] % len(_STUB_QUESTIONS)]
            asked["n"] += 1
            return question
        answers = [line[3:] for line in user.splitlines() if line.startswith("A: ")]
        lines = [f"Goal: {user.splitlines()[0].split(':', 1)[1].strip()}"]
        lines += [f"- {a}" for a in answers]
        return "\n".join(lines)

    return ScriptedProvider(respond=respond)


def _build_provider(live: bool) -> GenerationProvider:
    if not live:
        return _stub_provider()
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        sys.exit("--live requires OPENAI_API_KEY")
    return OpenAIProvider(api_key=api_key, model=DEFAULT_MODEL)


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

async def simulate(
    prompt: str,
    *,
    oneshot: bool,
    fmt: ExportFormat,
    live: bool,
    rng: random.Random,
) -> None:
    store = MockStore()
    scheduler = RecordingScheduler()
    controller = SessionController(scheduler=scheduler)
    controller._repo = MockRepository(store)
    controller._questions = MockQuestionRepository(store)

    provider = _build_provider(live)
    workers = GenerationWorkers(controller, provider, FakeSessionFactory())
    db = AsyncMock()

    session_type = SessionType.ONESHOT if oneshot else SessionType.INTERACTIVE
    info = await controller.start_session(
        db, original_prompt=prompt, session_type=session_type, selected_format=fmt,
    )
    print(f"== Session {info.id} ({session_type.value}, {fmt.value})")
    print(f"   Original prompt: {prompt!r}")

    await run_pending(scheduler, workers)

    while True:
        info = await controller.get_session(db, info.id)
        questions = await controller.get_questions(db, info.id)
        open_q = [q for q in questions if q.answer is None]
        if not open_q:
            break
        question = open_q[0]
        answer = rng.choice(_ANSWER_POOL)
        print(f"\n-- Q{question.order + 1}: {question.question}")
        print(f"   A: {answer}")
        await controller.submit_answer(db, info.id, answer)
        await run_pending(scheduler, workers)

    info = await controller.get_session(db, info.id)
    print(f"\n== Status: {info.status.value}")
    print("\n" + await controller.export_session(db, info.id, fmt))

    stats = await controller.get_stats(db)
    print(
        f"\n== Stats: {stats.total_questions} question(s), "
        f"{stats.total_original_chars} -> {stats.total_enhanced_chars} chars"
    )

    if isinstance(provider, OpenAIProvider):
        await provider.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a promptforge session")
    parser.add_argument("-p", "--prompt", default=_DEFAULT_PROMPT, help="Original prompt")
    parser.add_argument("--oneshot", action="store_true", help="Run a one-shot session")
    parser.add_argument(
        "-f", "--format",
        default=ExportFormat.MARKDOWN.value,
        choices=[f.value for f in ExportFormat],
        help="Output/export format (default: markdown)",
    )
    parser.add_argument("--live", action="store_true", help="Use the real OpenAI provider")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for answers")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show SDK logs")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    asyncio.run(
        simulate(
            args.prompt,
            oneshot=args.oneshot,
            fmt=ExportFormat(args.format),
            live=args.live,
            rng=random.Random(args.seed),
        )
    )


if __name__ == "__main__":
    main()
