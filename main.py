import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import SessionLocal, ensure_schema
from schemas import BudgetIn, LineItem, LoanIn, LoanOut, LoanUpdate
from services import (
    BudgetExistsError,
    BudgetItemService,
    BudgetService,
    LoanService,
    NotFoundError,
)

app = FastAPI(title="Budget Tracker")
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-User-Id"],
)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized: User ID required")
    return x_user_id.strip()


@app.on_event("startup")
def startup_event():
    logging.info(f"Starting Budget Tracker version={APP_VERSION}")
    ensure_schema(get_settings().auto_migrate)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logging.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "Invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


async def _json_body(request: Request) -> object:
    try:
        return await request.json()
    except Exception as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc


@app.get("/api/health")
def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/budgets")
def list_budgets(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return BudgetService(db, user_id).list_years()


@app.post("/api/budgets")
async def create_budget(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    body = await _json_body(request)
    try:
        data = BudgetIn.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="Year is required") from exc
    try:
        budgets = BudgetService(db, user_id).create_year(data)
    except BudgetExistsError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "budgets": budgets}


@app.delete("/api/budgets/{year}")
def delete_budget(
    year: str, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    year = year.strip()
    if not year:
        raise HTTPException(status_code=400, detail="Year is required")
    try:
        budgets = BudgetService(db, user_id).delete_year(year)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True, "budgets": budgets}


@app.get("/api/budgets/{year}/data")
def get_budget_items(
    year: str, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    items = BudgetItemService(db, user_id).load(year.strip())
    return [item.to_api() for item in items]


@app.put("/api/budgets/{year}/data")
async def save_budget_items(
    year: str,
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    body = await _json_body(request)
    raw_items = body.get("items") if isinstance(body, dict) else None
    if not isinstance(raw_items, list):
        raise HTTPException(
            status_code=400, detail="Invalid request: items array required"
        )
    try:
        items = [LineItem.model_validate(raw) for raw in raw_items]
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=_validation_message(exc)) from exc
    try:
        BudgetItemService(db, user_id).replace_all(year.strip(), items)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True}


@app.get("/api/budgets/{year}/summary")
def get_budget_summary(
    year: str, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return BudgetItemService(db, user_id).summary(year.strip())


@app.get("/api/loans")
def list_loans(user_id: str = Depends(current_user_id), db: Session = Depends(get_db)):
    return [
        LoanOut.model_validate(loan).to_api()
        for loan in LoanService(db, user_id).list()
    ]


@app.get("/api/loans/ledger")
def loan_ledger(
    user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    return [row.to_api() for row in LoanService(db, user_id).ledger()]


@app.post("/api/loans", status_code=201)
async def create_loan(
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    body = await _json_body(request)
    try:
        data = LoanIn.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as exc:
        raise HTTPException(
            status_code=400, detail="Name, amount, and startDate are required"
        ) from exc
    loan = LoanService(db, user_id).create(data)
    return LoanOut.model_validate(loan).to_api()


@app.put("/api/loans/{loan_id}")
async def update_loan(
    loan_id: str,
    request: Request,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    service = LoanService(db, user_id)
    try:
        service.get(loan_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    body = await _json_body(request)
    try:
        data = LoanUpdate.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=_validation_message(exc)) from exc
    try:
        loan = service.update(loan_id, data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return LoanOut.model_validate(loan).to_api()


@app.delete("/api/loans/{loan_id}")
def delete_loan(
    loan_id: str, user_id: str = Depends(current_user_id), db: Session = Depends(get_db)
):
    try:
        LoanService(db, user_id).delete(loan_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
