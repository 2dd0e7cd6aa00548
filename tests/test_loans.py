from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import ItemRole
from schemas import LineItem, LoanIn, LoanOut, LoanUpdate
from services import BudgetItemService, LoanService, NotFoundError


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def new_loan(service: LoanService, name: str = "Car", amount: float = 10000):
    return service.create(
        LoanIn.model_validate(
            {"name": name, "amount": amount, "startDate": "2024-03-01"}
        )
    )


def test_create_assigns_unique_ids_and_lists_newest_first() -> None:
    session = make_session()
    service = LoanService(session, "user-a")
    first = new_loan(service, "Car")
    second = new_loan(service, "House")

    assert first.id != second.id
    assert first.id.isdigit()
    assert [loan.name for loan in service.list()] == ["House", "Car"]
    assert LoanService(session, "user-b").list() == []


def test_loan_out_uses_camel_case_keys() -> None:
    session = make_session()
    loan = new_loan(LoanService(session, "user-a"))

    payload = LoanOut.model_validate(loan).to_api()
    assert payload["userId"] == "user-a"
    assert payload["startDate"] == "2024-03-01"
    assert {"id", "name", "amount", "createdAt", "updatedAt"} <= set(payload)


def test_loan_input_is_validated() -> None:
    with pytest.raises(ValueError):
        LoanIn.model_validate({"name": "", "amount": 10, "startDate": "2024-01-01"})
    with pytest.raises(ValueError):
        LoanIn.model_validate({"name": "Car", "amount": 0, "startDate": "2024-01-01"})
    with pytest.raises(ValueError):
        LoanIn.model_validate({"name": "Car", "amount": 10})


def test_update_changes_only_given_fields() -> None:
    session = make_session()
    service = LoanService(session, "user-a")
    loan = new_loan(service)

    updated = service.update(loan.id, LoanUpdate.model_validate({"amount": 8000}))

    assert updated.amount == 8000
    assert updated.name == "Car"
    assert updated.start_date == date(2024, 3, 1)


def test_update_without_fields_is_rejected() -> None:
    session = make_session()
    service = LoanService(session, "user-a")
    loan = new_loan(service)

    with pytest.raises(ValueError, match="No fields to update"):
        service.update(loan.id, LoanUpdate())


def test_other_users_loans_are_not_found() -> None:
    session = make_session()
    loan = new_loan(LoanService(session, "user-a"))
    intruder = LoanService(session, "user-b")

    with pytest.raises(NotFoundError):
        intruder.update(loan.id, LoanUpdate(name="Mine"))
    with pytest.raises(NotFoundError):
        intruder.delete(loan.id)
    with pytest.raises(NotFoundError):
        intruder.delete("does-not-exist")

    assert [row.id for row in LoanService(session, "user-a").list()] == [loan.id]


def test_delete_unlinks_payment_items() -> None:
    session = make_session()
    service = LoanService(session, "user-a")
    loan = new_loan(service)
    items = BudgetItemService(session, "user-a")
    items.replace_all(
        "2024",
        [
            LineItem.model_validate(
                {
                    "id": "car-payment",
                    "name": "Car payment",
                    "type": "expense",
                    "linkedLoanId": loan.id,
                    "months": {"April": 500},
                }
            )
        ],
    )

    service.delete(loan.id)

    (payment,) = items.load("2024")
    assert payment.role == ItemRole.regular
    assert payment.linked_loan_id is None
    assert payment.months["April"] == 500
    assert service.list() == []


def test_ledger_reduces_remaining_by_linked_payments() -> None:
    session = make_session()
    service = LoanService(session, "user-a")
    loan = new_loan(service, amount=1000)
    items = BudgetItemService(session, "user-a")
    for year, monthly in (("2024", 100), ("2025", 200)):
        items.replace_all(
            year,
            [
                LineItem.model_validate(
                    {
                        "id": f"pay-{year}",
                        "type": "expense",
                        "linkedLoanId": loan.id,
                        "months": {"January": monthly, "June": monthly},
                    }
                )
            ],
        )

    rows = [row.to_api() for row in service.ledger()]

    assert rows == [
        {
            "loanId": loan.id,
            "loanName": "Car",
            "year": "2025",
            "totalPayment": 400,
            "remaining": 400,
        },
        {
            "loanId": loan.id,
            "loanName": "Car",
            "year": "2024",
            "totalPayment": 200,
            "remaining": 800,
        },
    ]
