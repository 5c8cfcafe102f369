"""Export projector: serialise a completed session as markdown, JSON or XML.

Pure functions: the output depends only on the session's two prompt texts
and its questions, so repeated calls on an unchanged session return
byte-identical text.
"""

from __future__ import annotations

import json

from promptforge_db.models.enums import ExportFormat

from promptforge.errors import InvalidStateError
from promptforge.models.session import QuestionInfo, SessionInfo

NOT_ANSWERED_MARKDOWN = "*Not answered*"


def project(
    session: SessionInfo,
    questions: list[QuestionInfo],
    fmt: ExportFormat,
) -> str:
    """Render ``session`` in ``fmt``.

    Raises:
        InvalidStateError: if the session has no enhanced prompt yet
    """
    if session.enhanced_prompt is None:
        raise InvalidStateError(
            f"Enhanced prompt not ready: session_id={session.id}, "
            f"status={session.status.value}"
        )

    ordered = sorted(questions, key=lambda q: q.order)

    if fmt == ExportFormat.MARKDOWN:
        return to_markdown(session.original_prompt, session.enhanced_prompt, ordered)
    elif fmt == ExportFormat.JSON:
        return to_json(session.original_prompt, session.enhanced_prompt, ordered)
    elif fmt == ExportFormat.XML:
        return to_xml(session.original_prompt, session.enhanced_prompt, ordered)
    else:
        raise ValueError(f"Unknown export format: {fmt}")


def to_markdown(
    original_prompt: str, enhanced_prompt: str, questions: list[QuestionInfo]
) -> str:
    sections = [
        f"# Enhanced Prompt\n\n{enhanced_prompt}",
        f"## Original Prompt\n\n{original_prompt}",
        "## Clarifying Questions",
    ]
    for q in questions:
        answer = q.answer if q.answer is not None else NOT_ANSWERED_MARKDOWN
        sections.append(f"### Q{q.order + 1}: {q.question}\n\n{answer}")
    return "\n\n".join(sections)


def to_json(
    original_prompt: str, enhanced_prompt: str, questions: list[QuestionInfo]
) -> str:
    document = {
        "original_prompt": original_prompt,
        "enhanced_prompt": enhanced_prompt,
        "questions": [
            {"question": q.question, "answer": q.answer, "order": q.order}
            for q in questions
        ],
    }
    return json.dumps(document, indent=2, ensure_ascii=False)


def to_xml(
    original_prompt: str, enhanced_prompt: str, questions: list[QuestionInfo]
) -> str:
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        "<prompt_enhancement>",
        f"  <original_prompt>{_cdata(original_prompt)}</original_prompt>",
        f"  <enhanced_prompt>{_cdata(enhanced_prompt)}</enhanced_prompt>",
        "  <questions>",
    ]
    for q in questions:
        lines.extend([
            f'    <question order="{q.order + 1}">',
            f"      <text>{_cdata(q.question)}</text>",
            f"      <answer>{_cdata(q.answer or '')}</answer>",
            "    </question>",
        ])
    lines.extend(["  </questions>", "</prompt_enhancement>"])
    return "\n".join(lines)


def _cdata(value: str) -> str:
    # "]]>" cannot appear inside a CDATA section; split it across two
    return "<![CDATA[" + value.replace("]]>", "]]]]><![CDATA[>") + "]]>"
