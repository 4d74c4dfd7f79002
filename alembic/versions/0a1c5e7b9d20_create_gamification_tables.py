"""Create gamification tables

Revision ID: 0a1c5e7b9d20
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0a1c5e7b9d20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_gamification",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("current_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("coins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("current_xp >= 0", name="ck_gamification_xp_nonneg"),
        sa.CheckConstraint("current_level >= 1", name="ck_gamification_level_pos"),
        sa.CheckConstraint("coins >= 0", name="ck_gamification_coins_nonneg"),
    )
    op.create_index("ix_user_gamification_xp_desc", "user_gamification", ["current_xp"])

    op.create_table(
        "user_streaks",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_date", sa.Date(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("current_streak >= 0", name="ck_streak_current_nonneg"),
        sa.CheckConstraint(
            "longest_streak >= current_streak", name="ck_streak_longest_ge_current"
        ),
    )

    op.create_table(
        "xp_ledger",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("xp_amount", sa.Integer(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("xp_amount > 0", name="ck_xp_ledger_amount_pos"),
    )
    op.create_index("ix_xp_ledger_user_time", "xp_ledger", ["user_id", "created_at"])
    op.create_index("ix_xp_ledger_action_time", "xp_ledger", ["action_type", "created_at"])

    op.create_table(
        "shop_items",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("cosmetic_style", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.CheckConstraint("cost >= 0", name="ck_shop_items_cost_nonneg"),
    )
    op.create_index("ix_shop_items_active_cost", "shop_items", ["is_active", "cost"])

    op.create_table(
        "user_inventory",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("shop_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_equipped", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("equipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "item_id", name="uq_inventory_user_item"),
    )
    op.create_index("ix_user_inventory_user", "user_inventory", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_user_inventory_user", table_name="user_inventory")
    op.drop_table("user_inventory")
    op.drop_index("ix_shop_items_active_cost", table_name="shop_items")
    op.drop_table("shop_items")
    op.drop_index("ix_xp_ledger_action_time", table_name="xp_ledger")
    op.drop_index("ix_xp_ledger_user_time", table_name="xp_ledger")
    op.drop_table("xp_ledger")
    op.drop_table("user_streaks")
    op.drop_index("ix_user_gamification_xp_desc", table_name="user_gamification")
    op.drop_table("user_gamification")
