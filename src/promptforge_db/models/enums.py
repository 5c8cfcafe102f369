"""Database-level enumerations for enhancement sessions."""

import enum


class SessionType(str, enum.Enum):
    """How a session reaches its enhanced prompt.

    ``interactive`` runs the clarifying dialogue; ``oneshot`` skips it and
    refines the prompt in a single automatic pass.
    """

    INTERACTIVE = "interactive"
    ONESHOT = "oneshot"


class SessionStatus(str, enum.Enum):
    """Lifecycle states for an enhancement session.

    Transitions (forward only):
        questioning -> enhancing  (third answer submitted)
        enhancing -> complete     (enhanced prompt written back)

    One-shot sessions are created in ``enhancing``.
    """

    QUESTIONING = "questioning"
    ENHANCING = "enhancing"
    COMPLETE = "complete"


class ExportFormat(str, enum.Enum):
    """Serialisation formats for a completed session."""

    MARKDOWN = "markdown"
    JSON = "json"
    XML = "xml"


class TaskKind(str, enum.Enum):
    """Deferred generation work a command can schedule."""

    GENERATE_QUESTION = "generate_question"
    GENERATE_ENHANCED_PROMPT = "generate_enhanced_prompt"
    GENERATE_ONESHOT_REFINEMENT = "generate_oneshot_refinement"
