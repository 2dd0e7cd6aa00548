from datetime import date
from typing import Iterable, Optional

MONTHS: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def empty_months() -> dict[str, float]:
    return {month: 0.0 for month in MONTHS}


def month_index(month: str) -> int:
    try:
        return MONTHS.index(month)
    except ValueError as exc:
        raise ValueError(f"Unknown month: {month}") from exc


def month_for_date(value: date) -> str:
    return MONTHS[value.month - 1]


def year_number(year: str) -> Optional[int]:
    """Numeric value of a budget year label, or None for non-numeric labels."""
    try:
        return int(str(year).strip())
    except ValueError:
        return None


def sort_years(years: Iterable[str]) -> list[str]:
    # Numeric labels first in numeric order, anything else after in text order.
    def key(year: str) -> tuple[int, int, str]:
        number = year_number(year)
        if number is None:
            return (1, 0, year)
        return (0, number, year)

    return sorted(years, key=key)
