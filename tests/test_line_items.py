import json
from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

import services
from database import Base
from models import BudgetItem, ItemKind, ItemRole
from periods import MONTHS
from schemas import LineItem
from services import BudgetItemService, BudgetService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_loading_a_year_creates_its_budget() -> None:
    session = make_session()
    items = BudgetItemService(session, "user-a").load("2025")

    assert items == []
    assert BudgetService(session, "user-a").list_years() == ["2025"]


def test_save_then_load_round_trips_fields_and_order() -> None:
    session = make_session()
    service = BudgetItemService(session, "user-a")
    service.replace_all(
        "2025",
        [
            LineItem.model_validate(
                {
                    "id": "salary",
                    "name": "Salary",
                    "type": "income",
                    "months": {"January": 3000, "February": 3100.5},
                }
            ),
            LineItem.model_validate(
                {
                    "id": "car",
                    "name": "Car loan",
                    "type": "expense",
                    "isLoan": True,
                    "loanTitle": "Car",
                    "loanStartDate": "2024-03-01",
                    "loanValue": 12000,
                }
            ),
            LineItem.model_validate(
                {
                    "id": "rent",
                    "name": "Rent",
                    "type": "expense",
                    "frequency": "monthly",
                }
            ),
        ],
    )

    loaded = service.load("2025")

    assert [item.id for item in loaded] == ["salary", "car", "rent"]
    salary, car, rent = loaded
    assert salary.months["January"] == 3000
    assert salary.months["February"] == 3100.5
    assert salary.months["December"] == 0
    assert car.role == ItemRole.loan
    assert car.is_loan
    assert car.loan_title == "Car"
    assert car.loan_start_date == date(2024, 3, 1)
    assert car.loan_value == 12000
    assert rent.role == ItemRole.regular
    assert rent.to_api()["isStaticExpense"] is False


def test_formula_takes_precedence_over_stored_number() -> None:
    session = make_session()
    service = BudgetItemService(session, "user-a")
    service.replace_all(
        "2025",
        [
            LineItem.model_validate(
                {
                    "id": "food",
                    "name": "Food",
                    "type": "expense",
                    "months": {"March": 999},
                    "formulas": {"March": "=100+50*2"},
                }
            )
        ],
    )

    row = session.scalar(select(BudgetItem))
    stored = json.loads(row.months_json)
    assert stored["_formulas"] == {"March": "=100+50*2"}
    assert stored["March"] == 200

    (food,) = service.load("2025")
    assert food.formulas == {"March": "=100+50*2"}
    assert food.months["March"] == 200
    assert "_formulas" not in food.months


def test_embedded_formula_key_from_client_is_lifted() -> None:
    item = LineItem.model_validate(
        {
            "id": "x",
            "type": "expense",
            "months": {"April": 1, "_formulas": {"April": "=2*3"}},
        }
    )
    assert item.formulas == {"April": "=2*3"}
    assert set(item.months) == set(MONTHS)


def test_static_expense_keeps_price_in_its_month_only() -> None:
    session = make_session()
    service = BudgetItemService(session, "user-a")
    service.replace_all(
        "2025",
        [
            LineItem.model_validate(
                {
                    "id": "concert",
                    "name": "Concert",
                    "type": "expense",
                    "staticExpenseDate": "2025-07-15",
                    "staticExpensePrice": 42,
                    "months": {"January": 10},
                }
            )
        ],
    )

    (concert,) = service.load("2025")
    assert concert.role == ItemRole.static_expense
    assert concert.is_static_expense
    assert concert.months["July"] == 42
    assert all(concert.months[m] == 0 for m in MONTHS if m != "July")


def test_role_is_derived_once_from_legacy_flags() -> None:
    linked = LineItem.model_validate(
        {"id": "a", "type": "expense", "linkedLoanId": "1700000000000"}
    )
    assert linked.role == ItemRole.loan_payment

    explicit = LineItem.model_validate(
        {
            "id": "b",
            "type": "expense",
            "role": "regular",
            "staticExpenseDate": "2025-01-01",
            "linkedLoanId": "123",
        }
    )
    assert explicit.role == ItemRole.regular
    assert explicit.static_expense_date is None
    assert explicit.linked_loan_id is None

    with pytest.raises(ValueError):
        LineItem.model_validate({"id": "c", "type": "income", "isLoan": True})
    with pytest.raises(ValueError):
        LineItem.model_validate({"id": "d", "type": "expense", "role": "loan_payment"})


def test_replace_all_drops_items_missing_from_new_list() -> None:
    session = make_session()
    service = BudgetItemService(session, "user-a")
    service.replace_all(
        "2025",
        [
            LineItem(id="a", name="A", type=ItemKind.expense),
            LineItem(id="b", name="B", type=ItemKind.expense),
        ],
    )
    service.replace_all("2025", [LineItem(id="b", name="B2", type=ItemKind.expense)])

    loaded = service.load("2025")
    assert [(i.id, i.name) for i in loaded] == [("b", "B2")]


def test_failed_replace_leaves_previous_items_intact(monkeypatch) -> None:
    session = make_session()
    service = BudgetItemService(session, "user-a")
    service.replace_all(
        "2025", [LineItem(id="keep", name="Keep", type=ItemKind.income)]
    )

    real_encode = services.encode_months

    def failing_encode(item):
        if item.id == "boom":
            raise RuntimeError("storage failure")
        return real_encode(item)

    monkeypatch.setattr(services, "encode_months", failing_encode)
    with pytest.raises(RuntimeError):
        service.replace_all(
            "2025",
            [
                LineItem(id="new", name="New", type=ItemKind.expense),
                LineItem(id="boom", name="Boom", type=ItemKind.expense),
            ],
        )

    assert [i.id for i in service.load("2025")] == ["keep"]


def test_duplicate_item_ids_are_rejected() -> None:
    session = make_session()
    service = BudgetItemService(session, "user-a")
    with pytest.raises(ValueError, match="Duplicate"):
        service.replace_all(
            "2025",
            [
                LineItem(id="a", type=ItemKind.expense),
                LineItem(id="a", type=ItemKind.income),
            ],
        )


def test_items_are_scoped_to_user_and_year() -> None:
    session = make_session()
    BudgetItemService(session, "user-a").replace_all(
        "2025", [LineItem(id="a", type=ItemKind.income)]
    )
    BudgetItemService(session, "user-a").replace_all(
        "2026", [LineItem(id="b", type=ItemKind.income)]
    )
    BudgetItemService(session, "user-b").replace_all(
        "2025", [LineItem(id="c", type=ItemKind.income)]
    )

    grouped = BudgetItemService(session, "user-a").items_by_year()
    assert {year: [i.id for i in items] for year, items in grouped.items()} == {
        "2025": ["a"],
        "2026": ["b"],
    }


def test_summary_totals_and_cumulative_savings() -> None:
    session = make_session()
    service = BudgetItemService(session, "user-a")
    service.replace_all(
        "2025",
        [
            LineItem.model_validate(
                {
                    "id": "pay",
                    "type": "income",
                    "months": {"January": 1000, "March": 500},
                }
            ),
            LineItem.model_validate(
                {
                    "id": "rent",
                    "type": "expense",
                    "months": {"January": 400, "February": 100},
                }
            ),
        ],
    )

    summary = service.summary("2025")
    assert summary["income"][:3] == [1000, 0, 500]
    assert summary["expense"][:3] == [400, 100, 0]
    assert summary["savings"][:3] == [600, -100, 500]
    assert summary["cumulative"][:4] == [600, 500, 1000, 1000]
    assert summary["cumulativeDisplay"][:2] == ["600.00", "500.00"]
