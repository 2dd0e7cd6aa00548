from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from config import get_settings
from schemas import LineItem

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    def __init__(self, status: Optional[int], message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class BudgetApiClient:
    """Talks to the budget service on behalf of one user."""

    def __init__(
        self,
        user_id: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.user_id = user_id
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.api_timeout_secs

    def _request(self, method: str, path: str, body: Optional[Any] = None) -> Any:
        data = None if body is None else json.dumps(body).encode("utf-8")
        req = Request(
            f"{self.base_url}{path}",
            data=data,
            method=method,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "X-User-Id": self.user_id,
            },
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            raise ApiError(exc.code, _error_message(exc)) from exc
        except (URLError, TimeoutError) as exc:
            raise ApiError(None, f"Could not reach budget service: {exc}") from exc
        try:
            return json.loads(raw) if raw else None
        except json.JSONDecodeError as exc:
            raise ApiError(None, "Unexpected response from budget service") from exc

    @staticmethod
    def _year_path(year: str) -> str:
        return f"/budgets/{quote(str(year), safe='')}"

    def list_budgets(self) -> list[str]:
        return self._request("GET", "/budgets")

    def create_budget(self, year: str) -> list[str]:
        return self._request("POST", "/budgets", {"year": year})["budgets"]

    def delete_budget(self, year: str) -> list[str]:
        return self._request("DELETE", self._year_path(year))["budgets"]

    def load_items(self, year: str) -> list[LineItem]:
        payload = self._request("GET", f"{self._year_path(year)}/data")
        return [LineItem.model_validate(raw) for raw in payload or []]

    def save_items(self, year: str, items: list[LineItem]) -> None:
        self._request(
            "PUT",
            f"{self._year_path(year)}/data",
            {"items": [item.to_api() for item in items]},
        )

    def summary(self, year: str) -> dict[str, Any]:
        return self._request("GET", f"{self._year_path(year)}/summary")

    def list_loans(self) -> list[dict[str, Any]]:
        return self._request("GET", "/loans")

    def create_loan(self, name: str, amount: float, start_date: str) -> dict[str, Any]:
        return self._request(
            "POST", "/loans", {"name": name, "amount": amount, "startDate": start_date}
        )

    def update_loan(self, loan_id: str, **fields: Any) -> dict[str, Any]:
        return self._request("PUT", f"/loans/{quote(loan_id, safe='')}", fields)

    def delete_loan(self, loan_id: str) -> None:
        self._request("DELETE", f"/loans/{quote(loan_id, safe='')}")


def _error_message(exc: HTTPError) -> str:
    try:
        payload = json.loads(exc.read().decode("utf-8") or "{}")
    except (json.JSONDecodeError, UnicodeDecodeError, OSError):
        payload = {}
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return f"Request failed with status {exc.code}"
