from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, joinedload

from rapidfuzz.distance import Levenshtein

from auth import AuthenticationError, hash_password, verify_password
from config import get_settings
from errors import ExpansionError
from models import Bill, Category, Income, User
from periods import Period, month_period
from recurrence import expand_bill, expand_income, next_occurrence
from schemas import BillRecord, CategoryRecord, CredentialsRecord, IncomeRecord

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "utilities": [
        "electric", "electricity", "power", "energy", "water", "gas", "utility",
        "internet", "wifi", "broadband", "phone", "cellular", "mobile",
    ],
    "housing": [
        "rent", "mortgage", "hoa", "maintenance", "repair", "property tax",
        "insurance", "home", "house", "apartment",
    ],
    "transportation": [
        "gas", "fuel", "parking", "car", "auto", "vehicle", "maintenance",
        "repair", "insurance", "uber", "lyft", "taxi", "bus", "train",
    ],
    "food": [
        "grocery", "groceries", "restaurant", "dining", "food", "meal",
        "breakfast", "lunch", "dinner", "takeout", "delivery",
    ],
    "entertainment": [
        "movie", "theatre", "concert", "show", "game", "streaming",
        "netflix", "hulu", "spotify", "apple", "subscription",
    ],
    "healthcare": [
        "doctor", "medical", "health", "dental", "vision", "prescription",
        "medicine", "pharmacy", "hospital", "clinic", "insurance",
    ],
}


def get_current_user_id() -> int:
    return get_settings().default_user_id


def format_currency(amount: Decimal, include_cents: bool = True) -> str:
    value = Decimal(amount)
    sign = "-" if value < 0 else ""
    if include_cents:
        return f"{sign}${abs(value):,.2f}"
    return f"{sign}${abs(value):,.0f}"


@dataclass(frozen=True)
class Occurrence:
    date: date
    kind: str
    item_id: str
    name: str
    amount: Decimal
    category_name: Optional[str] = None

    def as_dict(self) -> dict[str, object]:
        return {
            "date": self.date.isoformat(),
            "kind": self.kind,
            "item_id": self.item_id,
            "name": self.name,
            "amount": float(self.amount),
            "category_name": self.category_name,
        }


@dataclass
class DaySummary:
    day: date
    incomes: list[Occurrence] = field(default_factory=list)
    bills: list[Occurrence] = field(default_factory=list)

    @property
    def total_income(self) -> Decimal:
        return sum((o.amount for o in self.incomes), ZERO)

    @property
    def total_bills(self) -> Decimal:
        return sum((o.amount for o in self.bills), ZERO)

    @property
    def balance(self) -> Decimal:
        return self.total_income - self.total_bills

    def as_dict(self) -> dict[str, object]:
        return {
            "day": self.day.isoformat(),
            "incomes": [o.as_dict() for o in self.incomes],
            "bills": [o.as_dict() for o in self.bills],
            "total_income": float(self.total_income),
            "total_bills": float(self.total_bills),
            "balance": float(self.balance),
        }


@dataclass(frozen=True)
class CategorySuggestion:
    category: Category
    confidence: float


@dataclass(frozen=True)
class Reminder:
    bill_id: str
    bill_name: str
    amount: Decimal
    due_date: date
    reminder_date: date

    def as_dict(self) -> dict[str, object]:
        return {
            "bill_id": self.bill_id,
            "bill_name": self.bill_name,
            "amount": float(self.amount),
            "due_date": self.due_date.isoformat(),
            "reminder_date": self.reminder_date.isoformat(),
        }


def _match_confidence(description: str, keyword: str) -> float:
    position = description.find(keyword)
    coverage = min(0.5, (len(keyword) / len(description)) * 0.5)
    return coverage + 0.5 * (1 - position / len(description))


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError("User not found")
        return user

    def register(self, data: CredentialsRecord) -> User:
        username = data.username.strip()
        if self.session.scalar(select(User).where(User.username == username)):
            raise ValueError("Username already exists")
        user = User(username=username, password_hash=hash_password(data.password))
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: id={user.id}")
        return user

    def authenticate(self, data: CredentialsRecord) -> User:
        user = self.session.scalar(
            select(User).where(User.username == data.username.strip())
        )
        if not user or not verify_password(data.password, user.password_hash):
            raise AuthenticationError("Invalid username or password")
        return user


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def _ensure_unique(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Category).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValueError("Category with this name already exists")

    def create(self, data: CategoryRecord) -> Category:
        self._ensure_unique(data.name)
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryRecord) -> Category:
        category = self.get(category_id)
        self._ensure_unique(data.name, exclude_id=category.id)
        category.name = data.name.strip()
        category.color = data.color
        category.icon = data.icon
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        # Bills and incomes only reference categories; they outlive them.
        self.session.execute(
            update(Bill).where(Bill.category_id == category.id).values(category_id=None)
        )
        self.session.execute(
            update(Income)
            .where(Income.category_id == category.id)
            .values(category_id=None)
        )
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: id={category_id} user={self.user_id}")

    def suggest(self, description: str) -> Optional[CategorySuggestion]:
        text = (description or "").strip().lower()
        if not text:
            return None
        categories = self.list_all()
        if not categories:
            return None

        historical = self.session.scalar(
            select(Bill.category_id)
            .where(
                Bill.user_id == self.user_id,
                Bill.category_id.is_not(None),
                func.lower(Bill.name) == text,
            )
            .order_by(Bill.created_at.desc())
            .limit(1)
        )
        if historical:
            for category in categories:
                if category.id == historical:
                    return CategorySuggestion(category, 1.0)

        tokens = re.findall(r"[a-z]+", text)
        best: Optional[CategorySuggestion] = None
        for category in categories:
            name = category.name.strip().lower()
            keywords = [name, *CATEGORY_KEYWORDS.get(name, [])]
            for keyword in keywords:
                if keyword in text:
                    confidence = _match_confidence(text, keyword)
                else:
                    # one-edit typos ("electic") still count, at half weight
                    near = next(
                        (
                            token
                            for token in tokens
                            if len(keyword) >= 4
                            and Levenshtein.distance(token, keyword) <= 1
                        ),
                        None,
                    )
                    if near is None:
                        continue
                    confidence = 0.5 * _match_confidence(text, near)
                if best is None or confidence > best.confidence:
                    best = CategorySuggestion(category, confidence)
        return best


class IncomeService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id

    def list_all(self) -> list[Income]:
        stmt = (
            select(Income)
            .options(joinedload(Income.category))
            .where(Income.user_id == self.user_id)
            .order_by(Income.date, Income.source)
        )
        return self.session.scalars(stmt).all()

    def get(self, income_id: str) -> Income:
        income = self.session.get(Income, income_id)
        if not income or income.user_id != self.user_id:
            raise ValueError("Income not found")
        return income

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None:
            CategoryService(self.session, self.user_id).get(category_id)

    def create(self, data: IncomeRecord) -> Income:
        self._check_category(data.category_id)
        income = Income(
            user_id=self.user_id,
            source=data.source,
            amount=data.amount,
            date=data.date,
            occurrence_type=data.occurrence_type,
            first_date=data.first_date,
            second_date=data.second_date,
            category_id=data.category_id,
        )
        if data.id:
            if self.session.get(Income, data.id):
                raise ValueError("Income with this id already exists")
            income.id = data.id
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def update(self, income_id: str, data: IncomeRecord) -> Income:
        income = self.get(income_id)
        if data.category_id != income.category_id:
            self._check_category(data.category_id)
        for name, value in data.model_dump(exclude={"id"}).items():
            setattr(income, name, value)
        self.session.commit()
        self.session.refresh(income)
        return income

    def delete(self, income_id: str) -> None:
        income = self.get(income_id)
        self.session.delete(income)
        self.session.commit()


class BillService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id

    def list_all(self) -> list[Bill]:
        stmt = (
            select(Bill)
            .options(joinedload(Bill.category))
            .where(Bill.user_id == self.user_id)
            .order_by(Bill.day, Bill.name)
        )
        return self.session.scalars(stmt).all()

    def with_reminders(self) -> list[Bill]:
        return [bill for bill in self.list_all() if bill.reminder_enabled]

    def get(self, bill_id: str) -> Bill:
        bill = self.session.get(Bill, bill_id)
        if not bill or bill.user_id != self.user_id:
            raise ValueError("Bill not found")
        return bill

    def _fields(self, data: BillRecord) -> dict[str, object]:
        CategoryService(self.session, self.user_id).get(data.category_id)
        return {
            "name": data.name,
            "amount": data.amount,
            "day": data.day,
            "date": data.date,
            "is_one_time": data.is_one_time,
            "is_yearly": data.is_yearly,
            "reminder_enabled": data.reminder_enabled,
            "reminder_days": data.reminder_days,
            "category_id": data.category_id,
        }

    def create(self, data: BillRecord) -> Bill:
        bill = Bill(user_id=self.user_id, **self._fields(data))
        if data.id:
            if self.session.get(Bill, data.id):
                raise ValueError("Bill with this id already exists")
            bill.id = data.id
        self.session.add(bill)
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def update(self, bill_id: str, data: BillRecord) -> Bill:
        bill = self.get(bill_id)
        for name, value in self._fields(data).items():
            setattr(bill, name, value)
        self.session.commit()
        self.session.refresh(bill)
        return bill

    def delete(self, bill_id: str) -> None:
        bill = self.get(bill_id)
        self.session.delete(bill)
        self.session.commit()


class CalendarService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id

    def occurrences(self, period: Period) -> list[Occurrence]:
        found: list[Occurrence] = []
        for income in IncomeService(self.session, self.user_id).list_all():
            try:
                dates = expand_income(income, period.start, period.end)
            except ExpansionError as exc:
                logger.warning(f"skipping income {income.id}: {exc}")
                continue
            category_name = income.category.name if income.category else None
            found.extend(
                Occurrence(d, "income", income.id, income.source, income.amount, category_name)
                for d in dates
            )
        for bill in BillService(self.session, self.user_id).list_all():
            try:
                dates = expand_bill(bill, period.start, period.end)
            except ExpansionError as exc:
                logger.warning(f"skipping bill {bill.id}: {exc}")
                continue
            found.extend(
                Occurrence(d, "bill", bill.id, bill.name, bill.amount, bill.category_name)
                for d in dates
            )
        found.sort(key=lambda o: (o.date, o.kind != "income", o.name.lower()))
        return found

    def monthly_summary(self, year: int, month: int) -> dict[str, object]:
        period = month_period(year, month)
        length = (period.end - period.start).days + 1
        days: dict[date, DaySummary] = {}
        for offset in range(length):
            current = period.start + timedelta(days=offset)
            days[current] = DaySummary(current)

        for occ in self.occurrences(period):
            summary = days[occ.date]
            if occ.kind == "income":
                summary.incomes.append(occ)
            else:
                summary.bills.append(occ)

        total_income = sum((d.total_income for d in days.values()), ZERO)
        total_bills = sum((d.total_bills for d in days.values()), ZERO)
        return {
            "year": year,
            "month": month,
            "total_income": total_income,
            "total_bills": total_bills,
            "balance": total_income - total_bills,
            "days": list(days.values()),
        }

    def range_report(self, period: Period) -> dict[str, object]:
        occurrences = self.occurrences(period)
        total_income = ZERO
        total_bills = ZERO
        by_category: dict[str, Decimal] = {}
        for occ in occurrences:
            if occ.kind == "income":
                total_income += occ.amount
            else:
                total_bills += occ.amount
                name = occ.category_name or "Uncategorized"
                by_category[name] = by_category.get(name, ZERO) + occ.amount

        breakdown = [
            {
                "name": name,
                "amount": amount,
                "percent": float(amount / total_bills * 100) if total_bills else 0.0,
            }
            for name, amount in sorted(
                by_category.items(), key=lambda item: item[1], reverse=True
            )
        ]
        return {
            "start": period.start,
            "end": period.end,
            "total_income": total_income,
            "total_bills": total_bills,
            "balance": total_income - total_bills,
            "bill_breakdown": breakdown,
            "occurrences": occurrences,
        }


class ReminderService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        window_days: Optional[int] = None,
    ) -> None:
        self.session = session
        self.user_id = get_current_user_id() if user_id is None else user_id
        if window_days is None:
            window_days = get_settings().reminder_window_days
        self.window_days = window_days

    def upcoming(self, today: date) -> list[Reminder]:
        horizon = today + timedelta(days=self.window_days)
        reminders: list[Reminder] = []
        for bill in BillService(self.session, self.user_id).with_reminders():
            try:
                due = next_occurrence(bill, today)
            except ExpansionError as exc:
                logger.warning(f"skipping reminder for bill {bill.id}: {exc}")
                continue
            if due is None:
                continue
            reminder_date = due - timedelta(days=bill.reminder_days)
            if reminder_date < horizon:
                reminders.append(
                    Reminder(bill.id, bill.name, bill.amount, due, reminder_date)
                )
        reminders.sort(key=lambda r: (r.reminder_date, r.due_date, r.bill_name))
        return reminders


def users_with_reminders(session: Session) -> list[int]:
    stmt = (
        select(Bill.user_id)
        .where(Bill.reminder_enabled.is_(True))
        .distinct()
        .order_by(Bill.user_id)
    )
    return list(session.scalars(stmt).all())
