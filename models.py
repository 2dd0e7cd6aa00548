from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class ItemKind(str, Enum):
    income = "income"
    expense = "expense"


class ItemRole(str, Enum):
    regular = "regular"
    loan_payment = "loan_payment"
    static_expense = "static_expense"
    loan = "loan"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"
    __table_args__ = (UniqueConstraint("user_id", "year", name="uq_budget_user_year"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    year: Mapped[str] = mapped_column(String(32), nullable=False)

    items: Mapped[list["BudgetItem"]] = relationship(
        "BudgetItem",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetItem.position",
    )


class BudgetItem(Base, TimestampMixin):
    __tablename__ = "budget_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(
        ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    year: Mapped[str] = mapped_column(String(32), nullable=False)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    type: Mapped[ItemKind] = mapped_column(SAEnum(ItemKind), nullable=False)
    frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default="monthly"
    )
    role: Mapped[ItemRole] = mapped_column(
        SAEnum(ItemRole), nullable=False, default=ItemRole.regular
    )
    months_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    linked_loan_id: Mapped[Optional[str]] = mapped_column(String(32))
    loan_title: Mapped[Optional[str]] = mapped_column(String(200))
    loan_start_date: Mapped[Optional[date]] = mapped_column(Date)
    loan_value: Mapped[Optional[float]] = mapped_column(Float)
    static_expense_date: Mapped[Optional[date]] = mapped_column(Date)
    static_expense_price: Mapped[Optional[float]] = mapped_column(Float)

    budget: Mapped["Budget"] = relationship("Budget", back_populates="items")

    __table_args__ = (
        UniqueConstraint("budget_id", "item_id", name="uq_budget_item_budget_item"),
        Index("ix_budget_items_user_year", "user_id", "year"),
        Index("ix_budget_items_linked_loan", "user_id", "linked_loan_id"),
    )


class Loan(Base, TimestampMixin):
    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (Index("ix_loans_user_created", "user_id", "created_at"),)
