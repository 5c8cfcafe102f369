"""GenerationTask ORM model: the durable outbox for deferred generation.

A command inserts its task row in the same transaction that mutates the
session, so the task becomes visible to the runner only when the command
commits.  The runner leases rows (``claimed_at``), deletes them once the
handler returns, and re-leases expired claims, giving at-least-once delivery.

``dedupe_key`` is ``"{kind}:{session_id}:{step}"``: a second enqueue for the
same triggering event is a no-op while the first is still pending.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import ForeignKey, Index, SmallInteger, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from promptforge_db.models.base import Base


class GenerationTask(Base):
    """One pending invocation of a generation worker."""

    __tablename__ = "generation_tasks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enhancement_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Session step at scheduling time; write-backs reject stale steps
    step: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    # Worker arguments, e.g. {"transcript": [{"question": ..., "answer": ...}]}
    payload: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    dedupe_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    # --- Leasing ---
    attempts: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, server_default=text("0"),
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        # The runner polls oldest-first
        Index("ix_generation_tasks_created", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<GenerationTask(kind={self.kind!r}, session={self.session_id!s}, "
            f"step={self.step}, attempts={self.attempts})>"
        )
