"""add loans and line item roles

Revision ID: 202602031500
Revises: 202601120900
Create Date: 2026-02-03 15:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202602031500"
down_revision = "202601120900"
branch_labels = None
depends_on = None

ITEM_ROLE = sa.Enum(
    "regular", "loan_payment", "static_expense", "loan", name="itemrole"
)


def upgrade() -> None:
    op.create_table(
        "loans",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_loans_user_created", "loans", ["user_id", "created_at"])

    with op.batch_alter_table("budget_items") as batch:
        batch.add_column(
            sa.Column("role", ITEM_ROLE, nullable=False, server_default="regular")
        )
        batch.add_column(sa.Column("linked_loan_id", sa.String(length=32)))
        batch.add_column(sa.Column("loan_title", sa.String(length=200)))
        batch.add_column(sa.Column("loan_start_date", sa.Date()))
        batch.add_column(sa.Column("loan_value", sa.Float()))
        batch.add_column(sa.Column("static_expense_date", sa.Date()))
        batch.add_column(sa.Column("static_expense_price", sa.Float()))
        batch.create_index(
            "ix_budget_items_linked_loan", ["user_id", "linked_loan_id"]
        )


def downgrade() -> None:
    with op.batch_alter_table("budget_items") as batch:
        batch.drop_index("ix_budget_items_linked_loan")
        batch.drop_column("static_expense_price")
        batch.drop_column("static_expense_date")
        batch.drop_column("loan_value")
        batch.drop_column("loan_start_date")
        batch.drop_column("loan_title")
        batch.drop_column("linked_loan_id")
        batch.drop_column("role")
    op.drop_index("ix_loans_user_created", table_name="loans")
    op.drop_table("loans")
