from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING, Iterable, Optional

from currency import format_total
from formulas import evaluate_formula, is_formula, parse_number
from models import ItemKind, ItemRole
from periods import MONTHS, empty_months, month_for_date, month_index
from schemas import LineItem

if TYPE_CHECKING:  # pragma: no cover
    from scheduler import DebouncedSaver

logger = logging.getLogger(__name__)

SECTIONS = ("income", "expenses", "loan_payments", "static_expenses", "loans")

_EXPENSE_RANKS = {
    ItemRole.regular: 1,
    ItemRole.loan_payment: 2,
    ItemRole.static_expense: 3,
    ItemRole.loan: 4,
}


def partition_rank(item: LineItem) -> int:
    if item.type == ItemKind.income:
        return 0
    return _EXPENSE_RANKS[item.role]


def insertion_index(items: list[LineItem], new_item: LineItem) -> int:
    """Position right after the last item of the same or an earlier section."""
    rank = partition_rank(new_item)
    index = 0
    for position, existing in enumerate(items):
        if partition_rank(existing) <= rank:
            index = position + 1
    return index


def sections(items: Iterable[LineItem]) -> dict[str, list[LineItem]]:
    grouped: dict[str, list[LineItem]] = {name: [] for name in SECTIONS}
    for item in items:
        grouped[SECTIONS[partition_rank(item)]].append(item)
    return grouped


def cell_value(item: LineItem, month: str) -> float:
    formula = item.formulas.get(month)
    if formula:
        return evaluate_formula(formula)
    return float(item.months.get(month) or 0)


def month_totals(items: Iterable[LineItem], kind: ItemKind) -> dict[str, float]:
    totals = empty_months()
    for item in items:
        if item.type != kind:
            continue
        for month in MONTHS:
            totals[month] += cell_value(item, month)
    return totals


def savings_by_month(items: Iterable[LineItem]) -> dict[str, float]:
    items = list(items)
    income = month_totals(items, ItemKind.income)
    expense = month_totals(items, ItemKind.expense)
    return {month: income[month] - expense[month] for month in MONTHS}


def cumulative_savings(items: Iterable[LineItem]) -> dict[str, float]:
    running = 0.0
    cumulative: dict[str, float] = {}
    for month, saved in savings_by_month(items).items():
        running += saved
        cumulative[month] = running
    return cumulative


def summary_table(items: Iterable[LineItem]) -> dict[str, object]:
    items = list(items)
    income = month_totals(items, ItemKind.income)
    expense = month_totals(items, ItemKind.expense)
    savings = savings_by_month(items)
    cumulative = cumulative_savings(items)
    return {
        "months": list(MONTHS),
        "income": [income[m] for m in MONTHS],
        "expense": [expense[m] for m in MONTHS],
        "savings": [savings[m] for m in MONTHS],
        "cumulative": [cumulative[m] for m in MONTHS],
        "cumulativeDisplay": [format_total(cumulative[m]) for m in MONTHS],
    }


def make_item(
    name: str,
    kind: ItemKind,
    *,
    role: ItemRole = ItemRole.regular,
    **fields: object,
) -> LineItem:
    return LineItem.model_validate(
        {
            "id": uuid.uuid4().hex[:16],
            "name": name.strip(),
            "type": kind,
            "role": role,
            **fields,
        }
    )


class BudgetGrid:
    """Editable, ordered line items of one budget year.

    The list is kept split into sections (income, expenses, loan payments,
    static expenses, loans) and every mutation hands a snapshot to the
    debounced saver, if one is attached.
    """

    def __init__(
        self,
        year: str,
        items: Iterable[LineItem] = (),
        saver: Optional["DebouncedSaver"] = None,
    ) -> None:
        self.year = year
        self.items: list[LineItem] = list(items)
        self.saver = saver

    def _index(self, item_id: str) -> int:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                return index
        raise ValueError("Line item not found")

    def get(self, item_id: str) -> LineItem:
        return self.items[self._index(item_id)]

    def snapshot(self) -> list[LineItem]:
        return [item.model_copy(deep=True) for item in self.items]

    def _changed(self) -> None:
        if self.saver is not None:
            self.saver.schedule(self.year, self.snapshot())

    def _reposition(self, updated: LineItem) -> None:
        index = self._index(updated.id)
        previous = self.items.pop(index)
        if partition_rank(previous) == partition_rank(updated):
            self.items.insert(index, updated)
        else:
            self.items.insert(insertion_index(self.items, updated), updated)

    def _replace(self, item: LineItem, **changes: object) -> LineItem:
        data = item.model_dump()
        data.update(changes)
        return LineItem.model_validate(data)

    def add_item(self, item: LineItem) -> int:
        if any(existing.id == item.id for existing in self.items):
            raise ValueError("Line item already exists")
        index = insertion_index(self.items, item)
        self.items.insert(index, item)
        self._changed()
        return index

    def remove_item(self, item_id: str) -> None:
        self.items.pop(self._index(item_id))
        self._changed()

    def rename_item(self, item_id: str, name: str) -> None:
        index = self._index(item_id)
        self.items[index] = self._replace(self.items[index], name=name.strip())
        self._changed()

    def set_cell(self, item_id: str, month: str, raw: str) -> float:
        month_index(month)
        item = self.get(item_id)
        text = (raw or "").strip()
        value = evaluate_formula(text) if is_formula(text) else parse_number(text)
        if (
            item.role == ItemRole.static_expense
            and item.static_expense_date is not None
        ):
            # A static expense's date decides its month; the cell edits its price.
            if month != month_for_date(item.static_expense_date):
                raise ValueError("Static expenses only have a value in their month")
            self.set_static_expense(item_id, item.static_expense_date, value)
            return value
        if is_formula(text):
            item.formulas[month] = text
        else:
            item.formulas.pop(month, None)
        item.months[month] = value
        self._changed()
        return value

    def move_item(self, dragged_id: str, target_id: str) -> bool:
        """Drop ``dragged_id`` at ``target_id``'s position.

        Only items of the same kind can swap places; anything else leaves
        the list untouched and returns False.
        """
        if dragged_id == target_id:
            return False
        dragged_index = self._index(dragged_id)
        target_index = self._index(target_id)
        dragged = self.items[dragged_index]
        if dragged.type != self.items[target_index].type:
            logger.debug(
                f"move_rejected: dragged={dragged_id} target={target_id} cross_kind=True"
            )
            return False
        self.items.pop(dragged_index)
        self.items.insert(target_index, dragged)
        self._changed()
        return True

    def set_static_expense(self, item_id: str, when: date, price: float) -> LineItem:
        item = self.get(item_id)
        months = empty_months()
        months[month_for_date(when)] = float(price)
        updated = self._replace(
            item,
            role=ItemRole.static_expense,
            static_expense_date=when,
            static_expense_price=float(price),
            months=months,
            formulas={},
        )
        self._reposition(updated)
        self._changed()
        return updated

    def link_loan(self, item_id: str, loan_id: Optional[str]) -> LineItem:
        item = self.get(item_id)
        role = ItemRole.loan_payment if loan_id else ItemRole.regular
        updated = self._replace(item, role=role, linked_loan_id=loan_id)
        self._reposition(updated)
        self._changed()
        return updated

    def set_loan_details(
        self,
        item_id: str,
        *,
        title: Optional[str] = None,
        start_date: Optional[date] = None,
        value: Optional[float] = None,
    ) -> LineItem:
        """Change the title, start date or principal of a loan line."""
        index = self._index(item_id)
        item = self.items[index]
        if item.role != ItemRole.loan:
            raise ValueError("Line item is not a loan")
        changes: dict[str, object] = {"role": ItemRole.loan}
        if title is not None:
            changes["loan_title"] = title.strip()
        if start_date is not None:
            changes["loan_start_date"] = start_date
        if value is not None:
            changes["loan_value"] = float(value)
        updated = self._replace(item, **changes)
        self.items[index] = updated
        self._changed()
        return updated

    def sections(self) -> dict[str, list[LineItem]]:
        return sections(self.items)

    def cell_value(self, item_id: str, month: str) -> float:
        return cell_value(self.get(item_id), month)

    def totals(self) -> dict[str, object]:
        return summary_table(self.items)
