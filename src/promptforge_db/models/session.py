"""EnhancementSession ORM model: one row per prompt-enhancement dialogue.

The session row is the only mutable shared resource of a dialogue.  It is
created by the start command, advanced by the answer command, and finalised
by the enhanced-prompt write-back.  Questions live in their own table
(``session_questions``) so that each turn can be claimed atomically.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Index, SmallInteger, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from promptforge_db.models.base import Base
from promptforge_db.models.enums import SessionStatus, SessionType


class EnhancementSession(Base):
    """One row per enhancement session."""

    __tablename__ = "enhancement_sessions"

    # --- Primary key ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Input (immutable after creation) ---
    original_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    session_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SessionType.INTERACTIVE.value,
        server_default=text("'interactive'"),
    )

    # --- Lifecycle ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.QUESTIONING.value,
        index=True,
    )
    # Number of dialogue turns completed; equals the order of the next
    # unanswered question.
    current_step: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, server_default=text("0"),
    )

    # --- Output ---
    # NULL means "markdown" to every reader
    selected_format: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # NULL until a generation worker has written the result back
    enhanced_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        # Interactive dialogues cap at 3 turns
        CheckConstraint(
            "current_step BETWEEN 0 AND 3",
            name="ck_step_range",
        ),
        # Completed sessions must carry the enhanced prompt ...
        CheckConstraint(
            "status != 'complete' OR enhanced_prompt IS NOT NULL",
            name="ck_complete_has_prompt",
        ),
        # ... and only completed sessions may carry it
        CheckConstraint(
            "enhanced_prompt IS NULL OR status = 'complete'",
            name="ck_prompt_only_when_complete",
        ),
        CheckConstraint(
            "session_type IN ('interactive', 'oneshot')",
            name="ck_session_type",
        ),
        # Completed-session listing is ordered by creation time
        Index(
            "ix_sessions_completed_created",
            "created_at",
            postgresql_where=text("status = 'complete'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<EnhancementSession(id={self.id!s}, type={self.session_type!r}, "
            f"status={self.status!r}, step={self.current_step})>"
        )
