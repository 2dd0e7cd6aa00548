from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import ItemKind, ItemRole
from periods import MONTHS, empty_months

FORMULAS_KEY = "_formulas"


def _to_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class BudgetIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    year: str = Field(..., min_length=1, max_length=32)

    @field_validator("year", mode="before")
    @classmethod
    def _year_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class LineItem(BaseModel):
    """One row of a yearly budget as exchanged with clients.

    ``role`` is the single source of truth for an item's special behaviour.
    Payloads from older clients that only carry ``isLoan``,
    ``isStaticExpense``/``staticExpenseDate``/``staticExpensePrice`` or
    ``linkedLoanId`` get their role derived once here; the boolean flags
    are always recomputed from the role on the way out.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(default="", max_length=200)
    type: ItemKind
    amount: float = 0
    frequency: str = Field(default="monthly", max_length=20)
    months: dict[str, float] = Field(default_factory=empty_months)
    formulas: dict[str, str] = Field(default_factory=dict)
    role: ItemRole = ItemRole.regular
    linked_loan_id: Optional[str] = Field(
        default=None, alias="linkedLoanId", max_length=32
    )
    is_loan: bool = Field(default=False, alias="isLoan")
    loan_title: Optional[str] = Field(default=None, alias="loanTitle", max_length=200)
    loan_start_date: Optional[date] = Field(default=None, alias="loanStartDate")
    loan_value: Optional[float] = Field(default=None, alias="loanValue")
    is_static_expense: bool = Field(default=False, alias="isStaticExpense")
    static_expense_date: Optional[date] = Field(
        default=None, alias="staticExpenseDate"
    )
    static_expense_price: Optional[float] = Field(
        default=None, alias="staticExpensePrice"
    )

    @model_validator(mode="before")
    @classmethod
    def _lift_embedded_formulas(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        months = data.get("months")
        if isinstance(months, dict) and FORMULAS_KEY in months:
            months = dict(months)
            embedded = months.pop(FORMULAS_KEY) or {}
            data = dict(data)
            data["months"] = months
            if isinstance(embedded, dict):
                merged = dict(embedded)
                merged.update(data.get("formulas") or {})
                data["formulas"] = merged
        return data

    @field_validator("months", mode="before")
    @classmethod
    def _normalize_months(cls, value: Any) -> dict[str, float]:
        months = empty_months()
        if isinstance(value, dict):
            for month in MONTHS:
                if month in value:
                    months[month] = _to_number(value[month])
        return months

    @field_validator("formulas", mode="before")
    @classmethod
    def _normalize_formulas(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {
            month: str(value[month]).strip()
            for month in MONTHS
            if month in value and value[month] and str(value[month]).strip()
        }

    @field_validator("id", "linked_loan_id", mode="before")
    @classmethod
    def _ids_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("linked_loan_id", "loan_title", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _resolve_role(self) -> "LineItem":
        if "role" in self.model_fields_set:
            role = self.role
        elif self.is_loan:
            role = ItemRole.loan
        elif (
            self.is_static_expense
            or self.static_expense_date is not None
            or self.static_expense_price is not None
        ):
            role = ItemRole.static_expense
        elif self.linked_loan_id:
            role = ItemRole.loan_payment
        else:
            role = ItemRole.regular

        if self.type == ItemKind.income and role != ItemRole.regular:
            raise ValueError(
                "Only expense items can be loans, loan payments or static expenses"
            )
        if role == ItemRole.loan_payment and not self.linked_loan_id:
            raise ValueError("Loan payment items need a linkedLoanId")

        self.role = role
        self.is_loan = role == ItemRole.loan
        self.is_static_expense = role == ItemRole.static_expense
        if role != ItemRole.loan_payment:
            self.linked_loan_id = None
        if role != ItemRole.loan:
            self.loan_title = None
            self.loan_start_date = None
            self.loan_value = None
        if role != ItemRole.static_expense:
            self.static_expense_date = None
            self.static_expense_price = None
        return self

    def to_api(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if not self.formulas:
            payload.pop("formulas", None)
        return payload


class LoanIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    start_date: date = Field(..., alias="startDate")


class LoanUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[float] = Field(default=None, gt=0)
    start_date: Optional[date] = Field(default=None, alias="startDate")

    def changes(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


class LoanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_id: str = Field(..., serialization_alias="userId")
    name: str
    amount: float
    start_date: date = Field(..., serialization_alias="startDate")
    created_at: datetime = Field(..., serialization_alias="createdAt")
    updated_at: datetime = Field(..., serialization_alias="updatedAt")

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
