from __future__ import annotations

import json
import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from formulas import evaluate_formula
from grid import summary_table
from ledger import LedgerRow, loan_ledger
from models import Budget, BudgetItem, ItemRole, Loan
from periods import MONTHS, empty_months, month_for_date
from schemas import FORMULAS_KEY, BudgetIn, LineItem, LoanIn, LoanUpdate

logger = logging.getLogger(__name__)


class BudgetExistsError(ValueError):
    pass


class NotFoundError(ValueError):
    pass


def encode_months(item: LineItem) -> str:
    """Serialize an item's month mapping for storage.

    Formulas travel inside the mapping under a reserved key and every
    formula cell stores its evaluated value. A static expense only keeps its
    price in the month of its date.
    """
    if (
        item.role == ItemRole.static_expense
        and item.static_expense_date is not None
        and item.static_expense_price is not None
    ):
        months = empty_months()
        months[month_for_date(item.static_expense_date)] = item.static_expense_price
        formulas: dict[str, str] = {}
    else:
        months = {month: float(item.months.get(month) or 0) for month in MONTHS}
        formulas = dict(item.formulas)
        for month, formula in formulas.items():
            months[month] = evaluate_formula(formula)

    payload: dict[str, object] = dict(months)
    if formulas:
        payload[FORMULAS_KEY] = formulas
    return json.dumps(payload)


def row_to_line_item(row: BudgetItem) -> LineItem:
    try:
        months = json.loads(row.months_json or "{}")
    except json.JSONDecodeError:
        logger.warning(f"months_json_invalid: item_id={row.item_id} year={row.year}")
        months = {}
    item = LineItem.model_validate(
        {
            "id": row.item_id,
            "name": row.name,
            "type": row.type,
            "frequency": row.frequency,
            "months": months,
            "role": row.role,
            "linked_loan_id": row.linked_loan_id,
            "loan_title": row.loan_title,
            "loan_start_date": row.loan_start_date,
            "loan_value": row.loan_value,
            "static_expense_date": row.static_expense_date,
            "static_expense_price": row.static_expense_price,
        }
    )
    for month, formula in item.formulas.items():
        item.months[month] = evaluate_formula(formula)
    return item


class BudgetService:
    def __init__(self, session: Session, user_id: str) -> None:
        if not user_id:
            raise ValueError("User ID required")
        self.session = session
        self.user_id = user_id

    def list_years(self) -> list[str]:
        stmt = (
            select(Budget.year)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.year.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, year: str) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(Budget.user_id == self.user_id, Budget.year == year)
        )

    def get_or_create(self, year: str) -> Budget:
        budget = self.get(year)
        if budget:
            return budget
        budget = Budget(user_id=self.user_id, year=year)
        self.session.add(budget)
        self.session.flush()
        logging.info(f"budget_created_implicitly: user={self.user_id} year={year}")
        return budget

    def create_year(self, data: BudgetIn) -> list[str]:
        if self.get(data.year):
            raise BudgetExistsError("Budget already exists")
        self.session.add(Budget(user_id=self.user_id, year=data.year))
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise BudgetExistsError("Budget already exists") from exc
        logging.info(f"budget_created: user={self.user_id} year={data.year}")
        return self.list_years()

    def delete_year(self, year: str) -> list[str]:
        budget = self.get(year)
        if not budget:
            raise NotFoundError("Budget not found")
        removed = self.session.execute(
            delete(BudgetItem).where(
                BudgetItem.user_id == self.user_id, BudgetItem.year == year
            )
        ).rowcount
        self.session.delete(budget)
        self.session.commit()
        logging.info(
            f"budget_deleted: user={self.user_id} year={year} items_removed={removed}"
        )
        return self.list_years()


class BudgetItemService:
    def __init__(self, session: Session, user_id: str) -> None:
        if not user_id:
            raise ValueError("User ID required")
        self.session = session
        self.user_id = user_id

    def _rows(self, year: str) -> list[BudgetItem]:
        stmt = (
            select(BudgetItem)
            .where(BudgetItem.user_id == self.user_id, BudgetItem.year == year)
            .order_by(BudgetItem.position.asc(), BudgetItem.id.asc())
        )
        return self.session.scalars(stmt).all()

    def load(self, year: str) -> list[LineItem]:
        budgets = BudgetService(self.session, self.user_id)
        if budgets.get(year) is None:
            budgets.get_or_create(year)
            self.session.commit()
        return [row_to_line_item(row) for row in self._rows(year)]

    def replace_all(self, year: str, items: list[LineItem]) -> int:
        """Swap the whole item list of ``year`` for ``items`` in one transaction."""
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise ValueError(f"Duplicate line item id: {item.id}")
            seen.add(item.id)

        try:
            budget = BudgetService(self.session, self.user_id).get_or_create(year)
            self.session.execute(
                delete(BudgetItem).where(
                    BudgetItem.user_id == self.user_id, BudgetItem.year == year
                )
            )
            for position, item in enumerate(items):
                self.session.add(
                    BudgetItem(
                        budget_id=budget.id,
                        user_id=self.user_id,
                        year=year,
                        item_id=item.id,
                        position=position,
                        name=item.name,
                        type=item.type,
                        frequency=item.frequency,
                        role=item.role,
                        months_json=encode_months(item),
                        linked_loan_id=item.linked_loan_id,
                        loan_title=item.loan_title,
                        loan_start_date=item.loan_start_date,
                        loan_value=item.loan_value,
                        static_expense_date=item.static_expense_date,
                        static_expense_price=item.static_expense_price,
                    )
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logging.info(
            f"budget_items_replaced: user={self.user_id} year={year} count={len(items)}"
        )
        return len(items)

    def items_by_year(self) -> dict[str, list[LineItem]]:
        grouped: dict[str, list[LineItem]] = defaultdict(list)
        for year in BudgetService(self.session, self.user_id).list_years():
            grouped[year] = []
        stmt = (
            select(BudgetItem)
            .where(BudgetItem.user_id == self.user_id)
            .order_by(BudgetItem.year.asc(), BudgetItem.position.asc())
        )
        for row in self.session.scalars(stmt):
            grouped[row.year].append(row_to_line_item(row))
        return dict(grouped)

    def summary(self, year: str) -> dict[str, object]:
        data = summary_table(row_to_line_item(row) for row in self._rows(year))
        data["year"] = year
        return data


class LoanService:
    def __init__(self, session: Session, user_id: str) -> None:
        if not user_id:
            raise ValueError("User ID required")
        self.session = session
        self.user_id = user_id

    def list(self) -> list[Loan]:
        stmt = (
            select(Loan)
            .where(Loan.user_id == self.user_id)
            .order_by(Loan.created_at.desc(), Loan.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, loan_id: str) -> Loan:
        loan = self.session.get(Loan, loan_id)
        if not loan or loan.user_id != self.user_id:
            raise NotFoundError("Loan not found")
        return loan

    def _new_id(self) -> str:
        candidate = int(time.time() * 1000)
        while self.session.get(Loan, str(candidate)) is not None:
            candidate += 1
        return str(candidate)

    def create(self, data: LoanIn) -> Loan:
        loan = Loan(
            id=self._new_id(),
            user_id=self.user_id,
            name=data.name,
            amount=data.amount,
            start_date=data.start_date,
        )
        self.session.add(loan)
        self.session.commit()
        self.session.refresh(loan)
        logging.info(f"loan_created: user={self.user_id} loan={loan.id}")
        return loan

    def update(self, loan_id: str, data: LoanUpdate) -> Loan:
        loan = self.get(loan_id)
        changes = data.changes()
        if not changes:
            raise ValueError("No fields to update")
        for field, value in changes.items():
            setattr(loan, field, value)
        loan.updated_at = datetime.utcnow()
        self.session.commit()
        self.session.refresh(loan)
        logging.info(
            f"loan_updated: user={self.user_id} loan={loan.id} fields={sorted(changes)}"
        )
        return loan

    def delete(self, loan_id: str) -> None:
        loan = self.get(loan_id)
        unlinked = self.session.execute(
            update(BudgetItem)
            .where(
                BudgetItem.user_id == self.user_id,
                BudgetItem.linked_loan_id == loan.id,
            )
            .values(linked_loan_id=None, role=ItemRole.regular)
        ).rowcount
        self.session.delete(loan)
        self.session.commit()
        logging.info(
            f"loan_deleted: user={self.user_id} loan={loan_id} items_unlinked={unlinked}"
        )

    def ledger(self) -> list[LedgerRow]:
        items_by_year = BudgetItemService(self.session, self.user_id).items_by_year()
        return loan_ledger(self.list(), items_by_year)
