"""Constants shared across the promptforge SDK.

``MAX_QUESTIONS`` governs the question-order range enforced by the database
(``ck_question_order_range``) and is therefore not overridable at runtime.
"""

import os

from promptforge_db.models.enums import ExportFormat

# Interactive dialogues ask at most this many clarifying questions
# (orders 0..MAX_QUESTIONS-1).  Reaching current_step == MAX_QUESTIONS moves
# the session to enhancing.
MAX_QUESTIONS = 3

# Format assumed when a session has no stored preference.
DEFAULT_FORMAT = ExportFormat.MARKDOWN

# Substituted when question generation fails or returns nothing.
FALLBACK_QUESTION = "Could you provide more details?"

# Transcript placeholders rendered into provider requests.
NOT_ANSWERED_PLACEHOLDER = "Not answered yet"
NOT_PROVIDED_PLACEHOLDER = "Not provided"

# Default provider model; overridable via PROMPTFORGE_MODEL.
DEFAULT_MODEL = os.getenv("PROMPTFORGE_MODEL", "gpt-4.1-nano")

# Age (minutes) after which a non-terminal session with no pending user
# action counts as stalled for recovery.
DEFAULT_STALLED_MINUTES = int(os.getenv("STALLED_SESSION_MINUTES", "15"))

# File extension per export format, used for download filenames.
EXPORT_EXTENSIONS: dict[ExportFormat, str] = {
    ExportFormat.MARKDOWN: "md",
    ExportFormat.JSON: "json",
    ExportFormat.XML: "xml",
}
