import uuid
import datetime as dt
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class OccurrenceType(str, Enum):
    once = "once"
    weekly = "weekly"
    monthly = "monthly"
    biweekly = "biweekly"
    twice_monthly = "twice-monthly"


OCCURRENCE_TYPE_ENUM = SAEnum(
    OccurrenceType,
    name="occurrencetype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


def _new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    # bcrypt hash; empty for users that only exist in single-user mode
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(9), nullable=False, default="#6b7280")
    icon: Mapped[Optional[str]] = mapped_column(String(50))

    bills: Mapped[list["Bill"]] = relationship("Bill", back_populates="category")
    incomes: Mapped[list["Income"]] = relationship("Income", back_populates="category")

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    occurrence_type: Mapped[OccurrenceType] = mapped_column(
        OCCURRENCE_TYPE_ENUM, nullable=False, default=OccurrenceType.once
    )
    first_date: Mapped[Optional[int]] = mapped_column(Integer)
    second_date: Mapped[Optional[int]] = mapped_column(Integer)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="incomes"
    )

    __table_args__ = (
        Index("ix_incomes_user_date", "user_id", "date"),
        CheckConstraint("amount > 0", name="ck_incomes_amount_positive"),
        CheckConstraint(
            "first_date IS NULL OR (first_date BETWEEN 1 AND 31)",
            name="ck_incomes_first_date_range",
        ),
        CheckConstraint(
            "second_date IS NULL OR (second_date BETWEEN 1 AND 31)",
            name="ck_incomes_second_date_range",
        ),
    )


class Bill(Base, TimestampMixin):
    __tablename__ = "bills"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    day: Mapped[Optional[int]] = mapped_column(Integer)
    date: Mapped[Optional[dt.date]] = mapped_column(Date)
    is_one_time: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_yearly: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    reminder_days: Mapped[int] = mapped_column(Integer, default=7, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="bills"
    )

    __table_args__ = (
        Index("ix_bills_user_day", "user_id", "day"),
        CheckConstraint("amount > 0", name="ck_bills_amount_positive"),
        CheckConstraint(
            "day IS NULL OR (day BETWEEN 1 AND 31)", name="ck_bills_day_range"
        ),
    )

    @property
    def category_name(self) -> str:
        return self.category.name if self.category else "Uncategorized"

    @property
    def category_color(self) -> Optional[str]:
        return self.category.color if self.category else None
