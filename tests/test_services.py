from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from auth import AuthenticationError
from database import Base
from models import Bill, Income
from periods import month_period
from schemas import CategoryRecord, CredentialsRecord
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


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _bill(session: Session, category_id: int, **raw) -> Bill:
    payload = {"name": "Rent", "amount": 1200, "day": 1, "category_id": category_id}
    payload.update(raw)
    return BillService(session, 1).create(validate_or_raise("bill", payload))


def _income(session: Session, **raw) -> Income:
    payload = {
        "source": "Salary",
        "amount": 2000,
        "date": "2025-01-01",
        "occurrenceType": "monthly",
    }
    payload.update(raw)
    return IncomeService(session, 1).create(validate_or_raise("income", payload))


def test_category_names_are_unique_case_insensitive() -> None:
    with _session() as session:
        service = CategoryService(session, 1)
        service.create(CategoryRecord(name="Housing"))
        with pytest.raises(ValueError):
            service.create(CategoryRecord(name="housing"))


def test_categories_are_scoped_per_user() -> None:
    with _session() as session:
        mine = CategoryService(session, 1).create(CategoryRecord(name="Food"))
        with pytest.raises(ValueError, match="not found"):
            CategoryService(session, 2).get(mine.id)
        assert CategoryService(session, 2).list_all() == []


def test_deleting_category_keeps_bills_and_clears_reference() -> None:
    with _session() as session:
        category = CategoryService(session, 1).create(CategoryRecord(name="Housing"))
        bill = _bill(session, category.id)
        assert bill.category_name == "Housing"

        CategoryService(session, 1).delete(category.id)
        session.expire_all()

        bill_after = BillService(session, 1).get(bill.id)
        assert bill_after.category_id is None
        assert bill_after.category_name == "Uncategorized"


def test_bill_requires_existing_category() -> None:
    with _session() as session:
        with pytest.raises(ValueError, match="Category not found"):
            _bill(session, 999)


def test_income_update_replaces_fields() -> None:
    with _session() as session:
        income = _income(session)
        updated = IncomeService(session, 1).update(
            income.id,
            validate_or_raise(
                "income",
                {
                    "source": "Salary",
                    "amount": "2100.00",
                    "date": "2025-01-01",
                    "occurrenceType": "twice-monthly",
                    "firstDate": 1,
                    "secondDate": 15,
                },
            ),
        )
        assert updated.amount == Decimal("2100.00")
        assert updated.first_date == 1
        assert updated.second_date == 15


def test_monthly_summary_totals_and_clipped_days() -> None:
    with _session() as session:
        housing = CategoryService(session, 1).create(CategoryRecord(name="Housing"))
        _income(
            session,
            occurrenceType="twice-monthly",
            firstDate=1,
            secondDate=15,
        )
        _bill(session, housing.id, name="Rent", day=31)

        summary = CalendarService(session, 1).monthly_summary(2025, 2)

        assert summary["total_income"] == Decimal("4000.00")
        assert summary["total_bills"] == Decimal("1200.00")
        assert summary["balance"] == Decimal("2800.00")
        days = summary["days"]
        assert len(days) == 28
        assert [o.name for o in days[27].bills] == ["Rent"]
        assert days[0].total_income == Decimal("2000.00")
        assert days[14].balance == Decimal("2000.00")


def test_occurrences_are_sorted_with_income_first_on_shared_days() -> None:
    with _session() as session:
        housing = CategoryService(session, 1).create(CategoryRecord(name="Housing"))
        _bill(session, housing.id, name="Rent", day=1)
        _income(session, date="2025-03-01")
        _bill(
            session,
            housing.id,
            name="Plumber",
            isOneTime=True,
            day=None,
            date="2025-03-10",
        )

        occurrences = CalendarService(session, 1).occurrences(month_period(2025, 3))

        assert [(o.date.day, o.kind, o.name) for o in occurrences] == [
            (1, "income", "Salary"),
            (1, "bill", "Rent"),
            (10, "bill", "Plumber"),
        ]


def test_range_report_breaks_bills_down_by_category() -> None:
    with _session() as session:
        housing = CategoryService(session, 1).create(CategoryRecord(name="Housing"))
        utilities = CategoryService(session, 1).create(CategoryRecord(name="Utilities"))
        _bill(session, housing.id, name="Rent", amount=900, day=1)
        _bill(session, utilities.id, name="Power", amount=100, day=20)
        _income(session)

        report = CalendarService(session, 1).range_report(month_period(2025, 1))

        assert report["total_income"] == Decimal("2000.00")
        assert report["total_bills"] == Decimal("1000.00")
        assert [row["name"] for row in report["bill_breakdown"]] == [
            "Housing",
            "Utilities",
        ]
        assert report["bill_breakdown"][0]["percent"] == pytest.approx(90.0)


def test_reminders_within_window_sorted_by_reminder_date() -> None:
    with _session() as session:
        housing = CategoryService(session, 1).create(CategoryRecord(name="Housing"))
        _bill(
            session,
            housing.id,
            name="Internet",
            day=20,
            reminderEnabled=True,
            reminderDays=7,
        )
        _bill(
            session,
            housing.id,
            name="Rent",
            day=10,
            reminderEnabled=True,
            reminderDays=3,
        )
        _bill(session, housing.id, name="Gym", day=8)
        _bill(
            session,
            housing.id,
            name="Insurance",
            isYearly=True,
            date="2025-12-25",
            reminderEnabled=True,
        )

        reminders = ReminderService(session, 1, window_days=30).upcoming(
            date(2025, 1, 5)
        )

        assert [(r.bill_name, r.due_date, r.reminder_date) for r in reminders] == [
            ("Rent", date(2025, 1, 10), date(2025, 1, 7)),
            ("Internet", date(2025, 1, 20), date(2025, 1, 13)),
        ]


def test_suggest_matches_keywords_typos_and_history() -> None:
    with _session() as session:
        service = CategoryService(session, 1)
        utilities = service.create(CategoryRecord(name="Utilities"))
        food = service.create(CategoryRecord(name="Food"))

        assert service.suggest("Electric bill").category.id == utilities.id
        assert service.suggest("Grocery run").category.id == food.id
        assert service.suggest("electic company").category.id == utilities.id
        assert service.suggest("") is None

        _bill(session, food.id, name="Spotify")
        suggestion = service.suggest("spotify")
        assert suggestion.category.id == food.id
        assert suggestion.confidence == 1.0


def test_format_currency() -> None:
    assert format_currency(Decimal("1234.5")) == "$1,234.50"
    assert format_currency(Decimal("-12")) == "-$12.00"
    assert format_currency(Decimal("1234.49"), include_cents=False) == "$1,234"


def test_explicit_user_zero_is_not_replaced_by_default_user():
    session = _session()
    zero = CategoryService(session, 0)
    assert zero.user_id == 0
    zero.create(CategoryRecord(name="Scratch"))
    assert [c.user_id for c in CategoryService(session, 0).list_all()] == [0]
    assert CategoryService(session, 1).list_all() == []
    assert ReminderService(session, 0, 30).user_id == 0


def test_register_and_authenticate_users():
    session = _session()
    users = UserService(session)
    user = users.register(CredentialsRecord(username=" ana ", password="hunter22"))
    assert user.username == "ana"
    assert user.password_hash and user.password_hash != "hunter22"

    with pytest.raises(ValueError, match="already exists"):
        users.register(CredentialsRecord(username="ana", password="other"))

    assert users.authenticate(CredentialsRecord(username="ana", password="hunter22")).id == user.id
    with pytest.raises(AuthenticationError):
        users.authenticate(CredentialsRecord(username="ana", password="wrong"))
    with pytest.raises(AuthenticationError):
        users.authenticate(CredentialsRecord(username="bob", password="hunter22"))
    with pytest.raises(ValueError, match="User not found"):
        users.get(user.id + 1)
