"""QA engine schema -- users, questions, answers, signals, quality, expertise, badges

Revision ID: 5d1e7a2c9b40
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the signal tables (answer_reactions, answer_flags) with one row per
(answer, user), the derived answer_quality_metrics table (one row per
answer), per-user expertise tables and the badge catalog.

Written manually (not via autogenerate) so constraint and index names are
explicit and reviewable.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5d1e7a2c9b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        )
    return columns


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("api_key_hash", sa.String(255), nullable=True, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
    )

    # --- questions ---
    op.create_table(
        "questions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "author_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_questions_author_id_users"),
            nullable=False,
        ),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("answers_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
    )
    op.create_index("ix_questions_author_id", "questions", ["author_id"])
    op.create_index("ix_questions_category", "questions", ["category"])
    op.create_index("ix_questions_created_at", "questions", ["created_at"])

    # --- answers ---
    op.create_table(
        "answers",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "question_id",
            UUID(as_uuid=True),
            sa.ForeignKey("questions.id", name="fk_answers_question_id_questions"),
            nullable=False,
        ),
        sa.Column(
            "author_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_answers_author_id_users"),
            nullable=False,
        ),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_accepted", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("helpful_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expert_badge_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("edit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("helpful_count >= 0", name="ck_answers_helpful_count_non_negative"),
        sa.CheckConstraint("expert_badge_count >= 0", name="ck_answers_expert_badge_count_non_negative"),
    )
    op.create_index("ix_answers_question_id", "answers", ["question_id"])
    op.create_index("ix_answers_author_id", "answers", ["author_id"])
    # At most one accepted answer per question
    op.create_index(
        "uq_answers_one_accepted_per_question",
        "answers",
        ["question_id"],
        unique=True,
        postgresql_where=sa.text("is_accepted"),
    )

    # --- answer_reactions ---
    op.create_table(
        "answer_reactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "answer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("answers.id", name="fk_answer_reactions_answer_id_answers"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_answer_reactions_user_id_users"),
            nullable=False,
        ),
        sa.Column("type", sa.String(20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("answer_id", "user_id", name="uq_answer_reactions_answer_id_user_id"),
        sa.CheckConstraint(
            "type IN ('helpful', 'expert', 'not_helpful')", name="ck_answer_reactions_type"
        ),
    )
    op.create_index("ix_answer_reactions_answer_id", "answer_reactions", ["answer_id"])

    # --- answer_flags ---
    op.create_table(
        "answer_flags",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "answer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("answers.id", name="fk_answer_flags_answer_id_answers"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_answer_flags_user_id_users"),
            nullable=False,
        ),
        sa.Column("reason", sa.String(20), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("answer_id", "user_id", name="uq_answer_flags_answer_id_user_id"),
        sa.CheckConstraint(
            "reason IN ('SPAM', 'ABUSE', 'MISLEADING', 'LOW_QUALITY', 'OTHER')",
            name="ck_answer_flags_reason",
        ),
    )
    op.create_index("ix_answer_flags_answer_id", "answer_flags", ["answer_id"])

    # --- answer_quality_metrics ---
    op.create_table(
        "answer_quality_metrics",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "answer_id",
            UUID(as_uuid=True),
            sa.ForeignKey("answers.id", name="fk_answer_quality_metrics_answer_id_answers"),
            nullable=False,
        ),
        sa.Column("aqs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("label", sa.String(10), nullable=False, server_default="NORMAL"),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("last_trigger", sa.String(20), nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("answer_id", name="uq_answer_quality_metrics_answer_id"),
        sa.CheckConstraint("aqs BETWEEN 0 AND 100", name="ck_answer_quality_metrics_aqs_range"),
    )
    op.create_index("ix_answer_quality_metrics_computed_at", "answer_quality_metrics", ["computed_at"])

    # --- user_expertise_stats ---
    op.create_table(
        "user_expertise_stats",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_user_expertise_stats_user_id_users"),
            nullable=False,
        ),
        sa.Column("total_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepted_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("helpful_reactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expert_reactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("featured_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_questions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expert_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expert_level", sa.String(20), nullable=False, server_default="newcomer"),
        sa.Column("top_category", sa.String(50), nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", name="uq_user_expertise_stats_user_id"),
    )

    # --- user_domain_expertise ---
    op.create_table(
        "user_domain_expertise",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_user_domain_expertise_user_id_users"),
            nullable=False,
        ),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("total_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expert_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("helpful_answers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "category", name="uq_user_domain_expertise_user_id_category"),
    )
    op.create_index("ix_user_domain_expertise_user_id", "user_domain_expertise", ["user_id"])

    # --- badges ---
    op.create_table(
        "badges",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("threshold", sa.Integer(), nullable=True),
        sa.Column("is_manual", sa.Boolean(), nullable=False, server_default="false"),
        sa.UniqueConstraint("code", name="uq_badges_code"),
    )

    # --- user_badges ---
    op.create_table(
        "user_badges",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", name="fk_user_badges_user_id_users"),
            nullable=False,
        ),
        sa.Column(
            "badge_id",
            UUID(as_uuid=True),
            sa.ForeignKey("badges.id", name="fk_user_badges_badge_id_badges"),
            nullable=False,
        ),
        sa.Column("source", sa.String(10), nullable=False, server_default="auto"),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_id_badge_id"),
    )
    op.create_index("ix_user_badges_user_id", "user_badges", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_user_badges_user_id", table_name="user_badges")
    op.drop_table("user_badges")
    op.drop_table("badges")
    op.drop_index("ix_user_domain_expertise_user_id", table_name="user_domain_expertise")
    op.drop_table("user_domain_expertise")
    op.drop_table("user_expertise_stats")
    op.drop_index("ix_answer_quality_metrics_computed_at", table_name="answer_quality_metrics")
    op.drop_table("answer_quality_metrics")
    op.drop_index("ix_answer_flags_answer_id", table_name="answer_flags")
    op.drop_table("answer_flags")
    op.drop_index("ix_answer_reactions_answer_id", table_name="answer_reactions")
    op.drop_table("answer_reactions")
    op.drop_index("uq_answers_one_accepted_per_question", table_name="answers")
    op.drop_index("ix_answers_author_id", table_name="answers")
    op.drop_index("ix_answers_question_id", table_name="answers")
    op.drop_table("answers")
    op.drop_index("ix_questions_created_at", table_name="questions")
    op.drop_index("ix_questions_category", table_name="questions")
    op.drop_index("ix_questions_author_id", table_name="questions")
    op.drop_table("questions")
    op.drop_table("users")
