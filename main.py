import logging
from typing import Any, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from auth import (
    SESSION_COOKIE,
    AuthenticationError,
    AuthProvider,
    SignedTokenAuthProvider,
    build_auth_provider,
)
from config import Settings, get_settings
from csv_utils import export_occurrences
from database import Database
from errors import ValidationError
from models import Bill, Category, Income, User
from periods import Period, resolve_period
from recurrence import local_today
from scheduler import SchedulerManager
from services import (
    BillService,
    CalendarService,
    CategoryService,
    IncomeService,
    ReminderService,
    UserService,
    format_currency,
)
from validation import validate_or_raise

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def get_user_id(request: Request) -> int:
    try:
        return request.app.state.auth.authenticate(request)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def period_from_request(request: Request) -> Period:
    params = request.query_params
    try:
        return resolve_period(
            params.get("period"),
            params.get("start"),
            params.get("end"),
            month=params.get("month"),
            today=local_today(),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _raise_lookup(exc: ValueError) -> NoReturn:
    status = 404 if "not found" in str(exc) else 400
    raise HTTPException(status_code=status, detail=str(exc)) from exc


def category_out(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "icon": category.icon,
        "user_id": category.user_id,
    }


def income_out(income: Income) -> dict[str, object]:
    return {
        "id": income.id,
        "source": income.source,
        "amount": float(income.amount),
        "date": income.date.isoformat(),
        "occurrenceType": income.occurrence_type.value,
        "firstDate": income.first_date,
        "secondDate": income.second_date,
        "category_id": income.category_id,
    }


def bill_out(bill: Bill) -> dict[str, object]:
    return {
        "id": bill.id,
        "name": bill.name,
        "amount": float(bill.amount),
        "day": bill.day,
        "date": bill.date.isoformat() if bill.date else None,
        "category_id": bill.category_id,
        "user_id": bill.user_id,
        "created_at": bill.created_at.isoformat() if bill.created_at else None,
        "isOneTime": bill.is_one_time,
        "isYearly": bill.is_yearly,
        "category_name": bill.category_name,
        "category_color": bill.category_color,
        "reminderEnabled": bill.reminder_enabled,
        "reminderDays": bill.reminder_days,
    }


@router.get("/health")
def health():
    return {"status": "ok"}


def token_provider(request: Request) -> SignedTokenAuthProvider:
    provider = request.app.state.auth
    if not isinstance(provider, SignedTokenAuthProvider):
        raise HTTPException(
            status_code=400, detail="Accounts are disabled in single-user mode"
        )
    return provider


def user_out(user: User) -> dict[str, object]:
    return {"id": user.id, "username": user.username}


def _start_session(
    response: Response, provider: SignedTokenAuthProvider, user: User
) -> dict[str, object]:
    token = provider.issue_token(user.id)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=provider.max_age_secs,
        httponly=True,
        samesite="lax",
    )
    return {**user_out(user), "token": token}


@router.post("/auth/register", status_code=201)
def register(
    response: Response,
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    provider: SignedTokenAuthProvider = Depends(token_provider),
):
    record = validate_or_raise("credentials", payload)
    try:
        user = UserService(db).register(record)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _start_session(response, provider, user)


@router.post("/auth/login")
def login(
    response: Response,
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    provider: SignedTokenAuthProvider = Depends(token_provider),
):
    record = validate_or_raise("credentials", payload)
    try:
        user = UserService(db).authenticate(record)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return _start_session(response, provider, user)


@router.post("/auth/logout")
def logout(response: Response):
    # Tokens are stateless; logging out drops the cookie on this client.
    response.delete_cookie(SESSION_COOKIE)
    return {"message": "Logged out successfully"}


@router.get("/auth/user")
def current_user(db: Session = Depends(get_db), user_id: int = Depends(get_user_id)):
    try:
        return user_out(UserService(db).get(user_id))
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Not authenticated") from exc


@router.get("/categories")
def list_categories(
    db: Session = Depends(get_db), user_id: int = Depends(get_user_id)
):
    return [category_out(c) for c in CategoryService(db, user_id).list_all()]


@router.post("/categories", status_code=201)
def create_category(
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    record = validate_or_raise("category", payload)
    try:
        category = CategoryService(db, user_id).create(record)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return category_out(category)


@router.get("/categories/suggest")
def suggest_category(
    q: str = "",
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    suggestion = CategoryService(db, user_id).suggest(q)
    if suggestion is None:
        return {"category": None, "confidence": 0.0}
    return {
        "category": category_out(suggestion.category),
        "confidence": round(suggestion.confidence, 3),
    }


@router.patch("/categories/{category_id}")
def update_category(
    category_id: int,
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    record = validate_or_raise("category", payload)
    try:
        category = CategoryService(db, user_id).update(category_id, record)
    except ValueError as exc:
        _raise_lookup(exc)
    return category_out(category)


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@router.get("/incomes")
def list_incomes(db: Session = Depends(get_db), user_id: int = Depends(get_user_id)):
    return [income_out(i) for i in IncomeService(db, user_id).list_all()]


@router.post("/incomes", status_code=201)
def create_income(
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    record = validate_or_raise("income", payload)
    try:
        income = IncomeService(db, user_id).create(record)
    except ValueError as exc:
        _raise_lookup(exc)
    return income_out(income)


@router.get("/incomes/{income_id}")
def get_income(
    income_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    try:
        return income_out(IncomeService(db, user_id).get(income_id))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/incomes/{income_id}")
def update_income(
    income_id: str,
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    record = validate_or_raise("income", payload)
    try:
        income = IncomeService(db, user_id).update(income_id, record)
    except ValueError as exc:
        _raise_lookup(exc)
    return income_out(income)


@router.delete("/incomes/{income_id}", status_code=204)
def delete_income(
    income_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    try:
        IncomeService(db, user_id).delete(income_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@router.get("/bills")
def list_bills(db: Session = Depends(get_db), user_id: int = Depends(get_user_id)):
    return [bill_out(b) for b in BillService(db, user_id).list_all()]


@router.post("/bills", status_code=201)
def create_bill(
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    record = validate_or_raise("bill", payload)
    try:
        bill = BillService(db, user_id).create(record)
    except ValueError as exc:
        _raise_lookup(exc)
    return bill_out(bill)


@router.get("/bills/{bill_id}")
def get_bill(
    bill_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    try:
        return bill_out(BillService(db, user_id).get(bill_id))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/bills/{bill_id}")
def update_bill(
    bill_id: str,
    payload: Any = Body(...),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    record = validate_or_raise("bill", payload)
    try:
        bill = BillService(db, user_id).update(bill_id, record)
    except ValueError as exc:
        _raise_lookup(exc)
    return bill_out(bill)


@router.delete("/bills/{bill_id}", status_code=204)
def delete_bill(
    bill_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    try:
        BillService(db, user_id).delete(bill_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@router.get("/occurrences")
def list_occurrences(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    period = period_from_request(request)
    occurrences = CalendarService(db, user_id).occurrences(period)
    return {
        "start": period.start.isoformat(),
        "end": period.end.isoformat(),
        "items": [o.as_dict() for o in occurrences],
    }


@router.get("/occurrences/export.csv")
def export_occurrences_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    period = period_from_request(request)
    occurrences = CalendarService(db, user_id).occurrences(period)
    csv_text = export_occurrences(occurrences)
    filename = f"occurrences_{period.start}_{period.end}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/summary/monthly")
def monthly_summary(
    year: int,
    month: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    try:
        summary = CalendarService(db, user_id).monthly_summary(year, month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "year": summary["year"],
        "month": summary["month"],
        "total_income": float(summary["total_income"]),
        "total_bills": float(summary["total_bills"]),
        "balance": float(summary["balance"]),
        "display": {
            "total_income": format_currency(summary["total_income"]),
            "total_bills": format_currency(summary["total_bills"]),
            "balance": format_currency(summary["balance"]),
        },
        "days": [day.as_dict() for day in summary["days"]],
    }


@router.get("/reports/range")
def range_report(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    period = period_from_request(request)
    report = CalendarService(db, user_id).range_report(period)
    return {
        "start": report["start"].isoformat(),
        "end": report["end"].isoformat(),
        "total_income": float(report["total_income"]),
        "total_bills": float(report["total_bills"]),
        "balance": float(report["balance"]),
        "bill_breakdown": [
            {
                "name": row["name"],
                "amount": float(row["amount"]),
                "percent": round(row["percent"], 2),
            }
            for row in report["bill_breakdown"]
        ],
        "occurrences": [o.as_dict() for o in report["occurrences"]],
    }


@router.get("/reminders")
def upcoming_reminders(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_user_id),
):
    reminders = ReminderService(
        db, user_id, request.app.state.settings.reminder_window_days
    ).upcoming(local_today())
    return [r.as_dict() for r in reminders]


def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info(
        f"validation_failed: path={request.url.path} errors={len(exc.errors)}"
    )
    return JSONResponse(
        status_code=422, content={"detail": [e.as_dict() for e in exc.errors]}
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    auth: Optional[AuthProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Budget Tracker")
    app.state.settings = settings
    app.state.database = database or Database(settings.database_url)
    app.state.auth = auth or build_auth_provider(settings)
    app.state.scheduler = None
    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.include_router(router)

    @app.on_event("startup")
    def startup_event():
        app.state.database.open()
        app.state.database.create_all()
        if settings.scheduler_enabled:
            app.state.scheduler = SchedulerManager(app.state.database, settings)
            app.state.scheduler.start()

    @app.on_event("shutdown")
    def shutdown_event():
        if app.state.scheduler is not None:
            app.state.scheduler.stop()
            app.state.scheduler = None
        app.state.database.close()

    return app


app = create_app()
