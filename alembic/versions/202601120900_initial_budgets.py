"""initial budgets and budget items

Revision ID: 202601120900
Revises:
Create Date: 2026-01-12 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202601120900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("year", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "year", name="uq_budget_user_year"),
    )

    op.create_table(
        "budget_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("year", sa.String(length=32), nullable=False),
        sa.Column("item_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column(
            "type",
            sa.Enum("income", "expense", name="itemkind"),
            nullable=False,
        ),
        sa.Column(
            "frequency", sa.String(length=20), nullable=False, server_default="monthly"
        ),
        sa.Column("months_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "budget_id", "item_id", name="uq_budget_item_budget_item"
        ),
    )
    op.create_index(
        "ix_budget_items_user_year", "budget_items", ["user_id", "year"]
    )


def downgrade() -> None:
    op.drop_index("ix_budget_items_user_year", table_name="budget_items")
    op.drop_table("budget_items")
    op.drop_table("budgets")
