"""SessionQuestion ORM model: one row per clarifying question.

Rows are inserted by the question write-back and mutated at most once, when
the answer command attaches an answer.  ``(session_id, order)`` is unique so
a duplicate worker delivery can never produce two questions for one turn.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, ForeignKey, SmallInteger, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from promptforge_db.models.base import Base


class SessionQuestion(Base):
    """One clarifying question, optionally answered."""

    __tablename__ = "session_questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enhancement_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # 0-based position in the dialogue ("order" is quoted by SQLAlchemy)
    order: Mapped[int] = mapped_column("order", SmallInteger, nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    # NULL means not answered yet
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    answered_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("session_id", "order", name="uq_session_question_order"),
        CheckConstraint('"order" BETWEEN 0 AND 2', name="ck_question_order_range"),
    )

    def __repr__(self) -> str:
        return (
            f"<SessionQuestion(session={self.session_id!s}, order={self.order}, "
            f"answered={self.answer is not None})>"
        )
