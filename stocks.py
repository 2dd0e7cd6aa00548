from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from formulas import parse_number
from local_store import LocalStore
from periods import MONTHS, empty_months, month_index

STOCKS_YEARS_KEY = "stocks_years"
STOCKS_DATA_KEY = "stocks_data"


@dataclass
class StockEntry:
    id: str
    name: str
    year: str
    months: dict[str, float] = field(default_factory=empty_months)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StockEntry":
        months = empty_months()
        for month, value in (data.get("months") or {}).items():
            if month in months:
                months[month] = parse_number(str(value))
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            year=str(data.get("year", "")),
            months=months,
        )


class StockBook:
    """Manually tracked holdings, one row per stock and year.

    Stored only in the local store, never sent to the budget service.
    """

    def __init__(self, store: LocalStore) -> None:
        self.store = store
        self.years: list[str] = [str(y) for y in store.get(STOCKS_YEARS_KEY, [])]
        self.stocks: list[StockEntry] = [
            StockEntry.from_dict(raw) for raw in store.get(STOCKS_DATA_KEY, [])
        ]

    def _save(self) -> None:
        self.store.set(STOCKS_YEARS_KEY, self.years)
        self.store.set(STOCKS_DATA_KEY, [asdict(stock) for stock in self.stocks])

    def add_year(self, year: str) -> None:
        clean = year.strip()
        if not clean:
            raise ValueError("Year is required")
        if clean in self.years:
            raise ValueError("Year already exists")
        self.years = sorted([*self.years, clean])
        self._save()

    def delete_year(self, year: str) -> None:
        if year not in self.years:
            raise ValueError("Year not found")
        self.years = [y for y in self.years if y != year]
        self.stocks = [s for s in self.stocks if s.year != year]
        self._save()

    def add_stock(self, name: str, year: str) -> StockEntry:
        clean = name.strip()
        if not clean:
            raise ValueError("Stock name is required")
        if year not in self.years:
            raise ValueError("Year not found")
        if any(s.name == clean and s.year == year for s in self.stocks):
            raise ValueError("Stock already exists for this year")
        stock = StockEntry(id=uuid.uuid4().hex[:16], name=clean, year=year)
        self.stocks.append(stock)
        self._save()
        return stock

    def get(self, stock_id: str) -> StockEntry:
        for stock in self.stocks:
            if stock.id == stock_id:
                return stock
        raise ValueError("Stock not found")

    def set_value(self, stock_id: str, month: str, raw: Optional[str]) -> float:
        month_index(month)
        stock = self.get(stock_id)
        value = parse_number(raw)
        stock.months[month] = value
        self._save()
        return value

    def stocks_for_year(self, year: str) -> list[StockEntry]:
        return [s for s in self.stocks if s.year == year]

    def month_total(self, year: str, month: str) -> float:
        return sum(s.months.get(month, 0.0) for s in self.stocks_for_year(year))

    def year_totals(self, year: str) -> dict[str, float]:
        return {month: self.month_total(year, month) for month in MONTHS}
