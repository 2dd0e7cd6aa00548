from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from local_store import LocalStore

CURRENCY_STORAGE_KEY = "budget_currency"


@dataclass(frozen=True)
class Currency:
    code: str
    symbol: str
    name: str


CURRENCIES: tuple[Currency, ...] = (
    Currency("NONE", "", "No Currency"),
    Currency("USD", "$", "US Dollar"),
    Currency("EUR", "€", "Euro"),
    Currency("GBP", "£", "British Pound"),
    Currency("JPY", "¥", "Japanese Yen"),
    Currency("AUD", "A$", "Australian Dollar"),
    Currency("CAD", "C$", "Canadian Dollar"),
    Currency("CHF", "CHF", "Swiss Franc"),
    Currency("CNY", "¥", "Chinese Yuan"),
    Currency("INR", "₹", "Indian Rupee"),
    Currency("SEK", "kr", "Swedish Krona"),
    Currency("NOK", "kr", "Norwegian Krone"),
    Currency("DKK", "kr", "Danish Krone"),
)


def get_default_currency() -> Currency:
    return CURRENCIES[0]


def get_currency(code: Optional[str]) -> Optional[Currency]:
    if not code:
        return None
    wanted = code.strip().upper()
    for currency in CURRENCIES:
        if currency.code == wanted:
            return currency
    return None


def get_stored_currency(store: "LocalStore") -> Currency:
    return get_currency(store.get(CURRENCY_STORAGE_KEY)) or get_default_currency()


def set_stored_currency(store: "LocalStore", code: str) -> bool:
    currency = get_currency(code)
    if currency is None:
        return False
    store.set(CURRENCY_STORAGE_KEY, currency.code)
    return True


def format_currency(amount: float, currency: Currency) -> str:
    if amount == 0:
        return ""
    is_whole = float(amount).is_integer()
    if currency.code == "NONE":
        return str(int(amount)) if is_whole else f"{amount:.2f}"
    if currency.code == "JPY" or is_whole:
        return f"{currency.symbol}{math.floor(amount + 0.5):,}"
    return f"{currency.symbol}{amount:.2f}"


def format_total(value: float) -> str:
    # Totals are shown to the cent; anything that rounds to zero is a dash.
    if round(value, 2) == 0:
        return "-"
    return f"{value:.2f}"
