"""Create enhancement_sessions, session_questions and generation_tasks.

Initial schema: sessions with their lifecycle constraints, questions with
one row per (session, order), and the generation-task outbox.

Revision ID: 20261005_initial
Revises:
Create Date: 2026-10-05
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261005_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Sessions ---
    op.create_table(
        "enhancement_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("original_prompt", sa.Text, nullable=False),
        sa.Column(
            "session_type",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'interactive'"),
        ),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column(
            "current_step",
            sa.SmallInteger,
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("selected_format", sa.String(20), nullable=True),
        sa.Column("enhanced_prompt", sa.Text, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("current_step BETWEEN 0 AND 3", name="ck_step_range"),
        sa.CheckConstraint(
            "status != 'complete' OR enhanced_prompt IS NOT NULL",
            name="ck_complete_has_prompt",
        ),
        sa.CheckConstraint(
            "enhanced_prompt IS NULL OR status = 'complete'",
            name="ck_prompt_only_when_complete",
        ),
        sa.CheckConstraint(
            "session_type IN ('interactive', 'oneshot')",
            name="ck_session_type",
        ),
    )
    op.create_index(
        "ix_enhancement_sessions_status", "enhancement_sessions", ["status"],
    )
    op.create_index(
        "ix_sessions_completed_created",
        "enhancement_sessions",
        ["created_at"],
        postgresql_where=sa.text("status = 'complete'"),
    )

    # --- Questions ---
    op.create_table(
        "session_questions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("enhancement_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("order", sa.SmallInteger, nullable=False),
        sa.Column("question", sa.Text, nullable=False),
        sa.Column("answer", sa.Text, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
        sa.Column("answered_at", TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("session_id", "order", name="uq_session_question_order"),
        sa.CheckConstraint('"order" BETWEEN 0 AND 2', name="ck_question_order_range"),
    )
    op.create_index(
        "ix_session_questions_session_id", "session_questions", ["session_id"],
    )

    # --- Generation-task outbox ---
    op.create_table(
        "generation_tasks",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column(
            "session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("enhancement_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "step", sa.SmallInteger, nullable=False, server_default=sa.text("0"),
        ),
        sa.Column(
            "payload",
            JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("dedupe_key", sa.Text, nullable=False, unique=True),
        sa.Column(
            "attempts", sa.SmallInteger, nullable=False, server_default=sa.text("0"),
        ),
        sa.Column("claimed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_generation_tasks_created", "generation_tasks", ["created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_generation_tasks_created", table_name="generation_tasks")
    op.drop_table("generation_tasks")
    op.drop_index("ix_session_questions_session_id", table_name="session_questions")
    op.drop_table("session_questions")
    op.drop_index("ix_sessions_completed_created", table_name="enhancement_sessions")
    op.drop_index("ix_enhancement_sessions_status", table_name="enhancement_sessions")
    op.drop_table("enhancement_sessions")
