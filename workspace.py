from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from client import ApiError, BudgetApiClient
from currency import (
    Currency,
    format_currency,
    get_stored_currency,
    set_stored_currency,
)
from grid import BudgetGrid
from ledger import LedgerRow, loan_ledger
from local_store import ACTIVE_BUDGET_KEY, LocalStore
from scheduler import DebouncedSaver, SchedulerManager
from schemas import LineItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoanRef:
    id: str
    name: str
    amount: float
    start_date: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "LoanRef":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            amount=float(data.get("amount") or 0),
            start_date=str(data.get("startDate", "")),
        )


class BudgetWorkspace:
    """Client-side session: budget years, loans, grids and local preferences.

    Creating and deleting budget years raise ``ApiError`` so the caller can
    show it. Everything else logs failures and keeps the last known state.
    """

    def __init__(
        self,
        client: BudgetApiClient,
        store: Optional[LocalStore] = None,
        scheduler: Optional[SchedulerManager] = None,
        save_delay_secs: Optional[float] = None,
    ) -> None:
        self.client = client
        self.store = store or LocalStore()
        self.scheduler = scheduler or SchedulerManager()
        self.saver = DebouncedSaver(self.scheduler, self._save_items, save_delay_secs)
        self.years: list[str] = []
        self.loans: list[dict[str, Any]] = []

    def _save_items(self, year: str, items: list[LineItem]) -> None:
        try:
            self.client.save_items(year, items)
        except ApiError as exc:
            logger.error(
                f"budget_save_failed: year={year} status={exc.status} error={exc.message}"
            )

    def start(self) -> None:
        self.scheduler.start()

    def close(self) -> None:
        self.saver.flush()
        self.scheduler.stop()

    @property
    def active_budget(self) -> Optional[str]:
        return self.store.get(ACTIVE_BUDGET_KEY)

    def set_active_budget(self, year: Optional[str]) -> None:
        if year is None:
            self.store.remove(ACTIVE_BUDGET_KEY)
        else:
            self.store.set(ACTIVE_BUDGET_KEY, year)

    @property
    def currency(self) -> Currency:
        return get_stored_currency(self.store)

    def set_currency(self, code: str) -> bool:
        return set_stored_currency(self.store, code)

    def format_amount(self, amount: float) -> str:
        return format_currency(amount, self.currency)

    def refresh_years(self) -> list[str]:
        try:
            self.years = self.client.list_budgets()
        except ApiError as exc:
            logger.error(f"budget_list_failed: status={exc.status} error={exc.message}")
        return self.years

    def create_year(self, year: str) -> list[str]:
        self.years = self.client.create_budget(year.strip())
        return self.years

    def delete_year(self, year: str) -> list[str]:
        self.years = self.client.delete_budget(year)
        if self.active_budget == year:
            self.set_active_budget(None)
        return self.years

    def open_grid(self, year: str) -> BudgetGrid:
        try:
            items = self.client.load_items(year)
        except ApiError as exc:
            logger.error(
                f"budget_load_failed: year={year} status={exc.status} error={exc.message}"
            )
            items = []
        self.set_active_budget(year)
        return BudgetGrid(year, items, saver=self.saver)

    def refresh_loans(self) -> list[dict[str, Any]]:
        try:
            self.loans = self.client.list_loans()
        except ApiError as exc:
            logger.error(f"loan_list_failed: status={exc.status} error={exc.message}")
        return self.loans

    def create_loan(
        self, name: str, amount: float, start_date: str
    ) -> Optional[dict[str, Any]]:
        try:
            loan = self.client.create_loan(name, amount, start_date)
        except ApiError as exc:
            logger.error(f"loan_create_failed: status={exc.status} error={exc.message}")
            return None
        self.loans = [loan, *self.loans]
        return loan

    def delete_loan(self, loan_id: str) -> bool:
        try:
            self.client.delete_loan(loan_id)
        except ApiError as exc:
            logger.error(
                f"loan_delete_failed: loan={loan_id} status={exc.status} error={exc.message}"
            )
            return False
        self.loans = [loan for loan in self.loans if str(loan.get("id")) != loan_id]
        return True

    def loan_ledger(self) -> list[LedgerRow]:
        loans = [LoanRef.from_api(raw) for raw in self.refresh_loans()]
        items_by_year: dict[str, list[LineItem]] = {}
        for year in self.refresh_years():
            try:
                items_by_year[year] = self.client.load_items(year)
            except ApiError as exc:
                logger.error(
                    f"budget_load_failed: year={year} status={exc.status} error={exc.message}"
                )
        return loan_ledger(loans, items_by_year)
