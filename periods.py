from dataclasses import dataclass
from datetime import date
from typing import Optional

from recurrence import days_in_month


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def month_period(year: int, month: int, slug: str = "month") -> Period:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    return Period(
        slug, date(year, month, 1), date(year, month, days_in_month(year, month))
    )


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    return total // 12, total % 12 + 1


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    month: Optional[str] = None,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "last_month":
        year, mon = _shift_month(today.year, today.month, -1)
        return month_period(year, mon, "last_month")
    if period == "next_month":
        year, mon = _shift_month(today.year, today.month, 1)
        return month_period(year, mon, "next_month")
    if period == "month" or (not period and month):
        if not month:
            raise ValueError("Month period requires month=YYYY-MM")
        try:
            year_text, month_text = month.split("-", 1)
            return month_period(int(year_text), int(month_text))
        except ValueError as exc:
            raise ValueError(f"Invalid month {month!r}, expected YYYY-MM") from exc
    if period == "custom" or (not period and (start or end)):
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        try:
            start_date = date.fromisoformat(start)
            end_date = date.fromisoformat(end)
        except ValueError as exc:
            raise ValueError("Dates must be formatted as YYYY-MM-DD") from exc
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period and period != "this_month":
        raise ValueError(f"Unknown period {period!r}")

    return month_period(today.year, today.month, "this_month")
