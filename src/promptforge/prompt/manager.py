"""PromptManager: Jinja2-based renderer for generation-provider requests.

Loads templates from the ``template/`` directory and renders each worker's
request as a two-turn chat: a ``system`` turn with the task instruction and
a ``user`` turn with the original prompt and transcript.

Templates per request kind:
  - question:  ``question_system.jinja2`` / ``question_user.jinja2``
  - enhance:   ``enhance_system.jinja2`` / ``enhance_user.jinja2``
  - one-shot:  ``oneshot_system.jinja2`` / ``oneshot_user.jinja2``
"""

from __future__ import annotations

from pathlib import Path

import jinja2

from promptforge_db.models.enums import ExportFormat

from promptforge.constants import (
    MAX_QUESTIONS,
    NOT_ANSWERED_PLACEHOLDER,
    NOT_PROVIDED_PLACEHOLDER,
)
from promptforge.models.generation import ChatMessage, TranscriptEntry

# Human-readable format names used inside instructions
_FORMAT_NAMES: dict[ExportFormat, str] = {
    ExportFormat.MARKDOWN: "Markdown",
    ExportFormat.JSON: "JSON",
    ExportFormat.XML: "XML",
}


class PromptManager:
    """Renders provider requests for the three generation workers.

    Args:
        template_dir: optional override for the template directory.
            Defaults to ``template/`` sibling of this module.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        if template_dir is None:
            template_dir = Path(__file__).parent / "template"
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            # Prompts are plain text, never HTML
            autoescape=False,
            undefined=jinja2.StrictUndefined,
        )

    def question_request(
        self,
        original_prompt: str,
        transcript: list[TranscriptEntry],
    ) -> list[ChatMessage]:
        """Ask for exactly one clarifying question given the dialogue so far."""
        return self._chat(
            "question",
            original_prompt=original_prompt,
            transcript=transcript,
            max_questions=MAX_QUESTIONS,
            asked=len(transcript),
            not_answered=NOT_ANSWERED_PLACEHOLDER,
        )

    def enhancement_request(
        self,
        original_prompt: str,
        transcript: list[TranscriptEntry],
        fmt: ExportFormat,
    ) -> list[ChatMessage]:
        """Ask for the refined prompt built from the full dialogue."""
        return self._chat(
            "enhance",
            original_prompt=original_prompt,
            transcript=transcript,
            max_questions=MAX_QUESTIONS,
            format_name=_FORMAT_NAMES[fmt],
            not_provided=NOT_PROVIDED_PLACEHOLDER,
        )

    def oneshot_request(
        self,
        original_prompt: str,
        fmt: ExportFormat,
    ) -> list[ChatMessage]:
        """Ask for an immediate refinement; the user turn carries only the prompt."""
        return self._chat(
            "oneshot",
            original_prompt=original_prompt,
            format_name=_FORMAT_NAMES[fmt],
        )

    def render(self, template_name: str, **context) -> str:
        """Render a named template with arbitrary context."""
        template = self._env.get_template(template_name)
        return template.render(**context)

    def _chat(self, kind: str, **context) -> list[ChatMessage]:
        return [
            ChatMessage(
                role="system",
                content=self.render(f"{kind}_system.jinja2", **context).strip(),
            ),
            ChatMessage(
                role="user",
                content=self.render(f"{kind}_user.jinja2", **context).strip(),
            ),
        ]
