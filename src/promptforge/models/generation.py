"""Models exchanged with the generation provider and carried in task payloads."""

from typing import Literal

from pydantic import BaseModel


class TranscriptEntry(BaseModel):
    """One question/answer pair of the dialogue.

    ``answer`` is ``None`` for a question the user has not answered yet.
    Transcript snapshots are stored in task payloads as plain dicts
    (``model_dump()``) and re-validated by the worker.
    """

    question: str
    answer: str | None = None


class ChatMessage(BaseModel):
    """One turn of a chat-style provider request."""

    role: Literal["system", "user"]
    content: str
