"""Initial schema — users, workshops, quests and quest progress.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- Users ---
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("display_name", sa.Text()),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("bio", sa.Text()),
        sa.Column("xp", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("level", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('active','suspended')", name="ck_user_status"),
    )
    op.create_index("idx_users_email", "users", ["email"])

    # --- Workshops ---
    op.create_table(
        "workshops",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("scheduled_date", sa.Date()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    # --- Workshop role assignments ---
    op.create_table(
        "workshop_user",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("workshop_id", UUID(as_uuid=True), sa.ForeignKey("workshops.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("workshop_id", "user_id", name="uq_workshop_user"),
        sa.CheckConstraint("role IN ('participant','facilitator','admin')", name="ck_workshop_user_role"),
    )
    op.create_index("idx_workshop_user_user", "workshop_user", ["user_id"])

    # --- Quests ---
    op.create_table(
        "quests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("difficulty", sa.Text(), nullable=False, server_default=sa.text("'beginner'")),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("materials_needed", sa.Text()),
        sa.Column("general_instructions", sa.Text()),
        sa.Column("badge_image_url", sa.Text()),
        sa.Column("certificate_image_url", sa.Text()),
        sa.Column("scheduled_date", sa.Date()),
        sa.Column("created_by", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('draft','published','archived')", name="ck_quest_status"),
        sa.CheckConstraint("difficulty IN ('beginner','intermediate','advanced')", name="ck_quest_difficulty"),
        sa.CheckConstraint("xp_reward >= 0", name="ck_quest_xp_reward"),
    )
    op.create_index("idx_quests_status", "quests", ["status"])
    op.create_index("idx_quests_created_by", "quests", ["created_by"])

    # --- Quest pages ---
    op.create_table(
        "quest_pages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("quest_id", UUID(as_uuid=True), sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text()),
        sa.Column("content", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.UniqueConstraint("quest_id", "page_number", name="uq_quest_page_number"),
        sa.CheckConstraint("page_number >= 1", name="ck_quest_page_number"),
    )

    # --- Tasks ---
    op.create_table(
        "tasks",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("quest_id", UUID(as_uuid=True), sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
    )
    op.create_index("idx_tasks_quest_page", "tasks", ["quest_id", "page_number"])

    # --- Learning resources ---
    op.create_table(
        "learning_resources",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("quest_id", UUID(as_uuid=True), sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text()),
        sa.Column("url", sa.Text()),
    )

    # --- Quest progress ---
    op.create_table(
        "user_quests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quest_id", UUID(as_uuid=True), sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'not_started'")),
        sa.Column("progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "quest_id", name="uq_user_quest"),
        sa.CheckConstraint("status IN ('not_started','in_progress','completed')", name="ck_user_quest_status"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_user_quest_progress"),
    )
    op.create_index("idx_user_quests_quest", "user_quests", ["quest_id"])


def downgrade() -> None:
    op.drop_table("user_quests")
    op.drop_table("learning_resources")
    op.drop_table("tasks")
    op.drop_table("quest_pages")
    op.drop_table("quests")
    op.drop_table("workshop_user")
    op.drop_table("workshops")
    op.drop_table("users")
