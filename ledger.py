"""Loan repayment bookkeeping derived from budget line items.

Nothing here is persisted. Balances are rebuilt from the loans and every
budget year's items each time they are asked for.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Protocol, Sequence, Union

from grid import cell_value
from models import ItemRole
from periods import MONTHS, month_index, sort_years, year_number
from schemas import LineItem


class LoanLike(Protocol):
    id: str
    name: str
    amount: float
    start_date: Union[date, str]


@dataclass(frozen=True)
class LedgerRow:
    loan_id: str
    loan_name: str
    year: str
    total_payment: float
    remaining: float

    def to_api(self) -> dict[str, object]:
        return {
            "loanId": self.loan_id,
            "loanName": self.loan_name,
            "year": self.year,
            "totalPayment": self.total_payment,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class DebtMonth:
    month: str
    start: float
    payment: float
    end: float


def _start_year(loan: LoanLike) -> int:
    start = loan.start_date
    if isinstance(start, date):
        return start.year
    return int(str(start)[:4])


def linked_payment_total(loan_id: str, items: Iterable[LineItem]) -> float:
    return sum(
        cell_value(item, month)
        for item in items
        if item.linked_loan_id == loan_id
        for month in MONTHS
    )


def loan_ledger(
    loans: Iterable[LoanLike], items_by_year: Mapping[str, Sequence[LineItem]]
) -> list[LedgerRow]:
    """One row per loan and year with repayment activity.

    Years are walked in numeric order from the loan's start year. The
    remaining balance starts at the principal and is reduced by each year's
    linked payments, never dropping below zero. The start year always gets
    a row, even without a budget for it.
    """
    years = [y for y in sort_years(items_by_year) if year_number(y) is not None]
    rows: list[LedgerRow] = []
    for loan in loans:
        start = _start_year(loan)
        remaining = float(loan.amount)
        saw_start_year = False
        for year in years:
            number = year_number(year)
            if number < start:
                continue
            total = linked_payment_total(loan.id, items_by_year[year])
            remaining = max(0.0, remaining - total)
            if number == start:
                saw_start_year = True
            if total != 0 or number == start:
                rows.append(LedgerRow(loan.id, loan.name, year, total, remaining))
        if not saw_start_year:
            rows.append(
                LedgerRow(loan.id, loan.name, str(start), 0.0, float(loan.amount))
            )

    rows.sort(key=lambda row: (-year_number(row.year), row.loan_name.casefold()))
    return rows


def outstanding_debt_start(item: LineItem, year: int, month: str) -> float:
    """Balance of a loan line at the start of ``month`` in ``year``."""
    if item.role != ItemRole.loan or not item.loan_start_date or not item.loan_value:
        return 0.0
    start_year = item.loan_start_date.year
    start_month = item.loan_start_date.month - 1
    index = month_index(month)
    if start_year > year or (start_year == year and start_month > index):
        return 0.0

    first = 0 if start_year < year else start_month
    outstanding = float(item.loan_value)
    for previous in MONTHS[first:index]:
        outstanding -= cell_value(item, previous)
    return max(0.0, outstanding)


def outstanding_debt_schedule(item: LineItem, year: int) -> list[DebtMonth]:
    schedule = []
    for month in MONTHS:
        start = outstanding_debt_start(item, year, month)
        payment = cell_value(item, month)
        schedule.append(DebtMonth(month, start, payment, max(0.0, start - payment)))
    return schedule
