from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any, Iterator, Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ExpansionError
from models import OccurrenceType

_CAMEL_ALIASES = {
    "occurrence_type": "occurrenceType",
    "first_date": "firstDate",
    "second_date": "secondDate",
    "is_one_time": "isOneTime",
    "is_yearly": "isYearly",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (date(year, month + 1, 1) - date(year, month, 1)).days


def clip_day(year: int, month: int, day: int) -> date:
    """Return ``day`` of the given month, moved back to the month's last day
    when the month is too short (31 -> Feb 28/29)."""
    return date(year, month, min(day, days_in_month(year, month)))


def parse_calendar_date(value: Any, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ExpansionError(field, f"Invalid date: {value!r}")
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ExpansionError(field, f"Invalid date: {value!r}") from exc


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        if name in item:
            return item[name]
        return item.get(_CAMEL_ALIASES.get(name, name))
    return getattr(item, name, None)


def coerce_bool(value: Any) -> Optional[bool]:
    """Read a JSON-ish flag: a real bool or one of the usual true/false words."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _flag(item: Any, name: str, field: str) -> bool:
    value = _field(item, name)
    if value is None:
        return False
    flag = coerce_bool(value)
    if flag is None:
        raise ExpansionError(field, f"Expected true or false, got {value!r}")
    return flag


def _check_day(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ExpansionError(field, f"Day must be a whole number, got {value!r}")
    if not 1 <= value <= 31:
        raise ExpansionError(field, f"Day must be between 1 and 31, got {value}")
    return value


def _months(start: date, end: date) -> Iterator[tuple[int, int]]:
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield year, month
        if month == 12:
            year, month = year + 1, 1
        else:
            month += 1


def _stepped(anchor: date, step_days: int, start: date, end: date) -> list[date]:
    gap = (anchor - start).days % step_days
    if (end - start).days < gap:
        return []
    current = start + timedelta(days=gap)
    dates = [current]
    # never step past `end`, which may sit next to date.max
    while (end - current).days >= step_days:
        current += timedelta(days=step_days)
        dates.append(current)
    return dates


def _monthly(days: list[int], start: date, end: date) -> list[date]:
    dates: list[date] = []
    for year, month in _months(start, end):
        in_month = sorted({clip_day(year, month, d) for d in days})
        dates.extend(d for d in in_month if start <= d <= end)
    return dates


def _resolve_range(range_start: Any, range_end: Any) -> tuple[date, date]:
    start = parse_calendar_date(range_start, "range_start")
    end = parse_calendar_date(range_end, "range_end")
    if start > end:
        raise ExpansionError("range_start", "Range start must not be after range end")
    return start, end


def expand_income(income: Any, range_start: Any, range_end: Any) -> list[date]:
    start, end = _resolve_range(range_start, range_end)
    raw_type = _field(income, "occurrence_type")
    try:
        occurrence_type = OccurrenceType(raw_type)
    except ValueError as exc:
        raise ExpansionError(
            "occurrenceType", f"Unknown occurrence type {raw_type!r}"
        ) from exc

    if occurrence_type == OccurrenceType.twice_monthly:
        first = _check_day(_field(income, "first_date"), "firstDate")
        second = _check_day(_field(income, "second_date"), "secondDate")
        return _monthly([first, second], start, end)

    anchor = parse_calendar_date(_field(income, "date"))
    if occurrence_type == OccurrenceType.once:
        return [anchor] if start <= anchor <= end else []
    if occurrence_type == OccurrenceType.weekly:
        return _stepped(anchor, 7, start, end)
    if occurrence_type == OccurrenceType.biweekly:
        return _stepped(anchor, 14, start, end)
    return _monthly([anchor.day], start, end)


def expand_bill(bill: Any, range_start: Any, range_end: Any) -> list[date]:
    start, end = _resolve_range(range_start, range_end)
    if _flag(bill, "is_one_time", "isOneTime"):
        due = parse_calendar_date(_field(bill, "date"))
        return [due] if start <= due <= end else []
    if _flag(bill, "is_yearly", "isYearly"):
        anchor = parse_calendar_date(_field(bill, "date"))
        dates = []
        for year in range(start.year, end.year + 1):
            due = clip_day(year, anchor.month, anchor.day)
            if start <= due <= end:
                dates.append(due)
        return dates
    day = _check_day(_field(bill, "day"), "day")
    return _monthly([day], start, end)


def expand(item: Any, range_start: Any, range_end: Any) -> list[date]:
    """Concrete dates, ascending, on which an income or bill falls within
    ``[range_start, range_end]`` (both inclusive).

    Items carrying an occurrence type are treated as incomes, everything
    else as bills. Recurring items are phase-aligned with their stored date
    but are not bounded by it.
    """
    if _field(item, "occurrence_type") is not None:
        return expand_income(item, range_start, range_end)
    return expand_bill(item, range_start, range_end)


def next_occurrence(
    item: Any, on_or_after: date, *, horizon_days: int = 366
) -> Optional[date]:
    horizon_days = min(horizon_days, (date.max - on_or_after).days)
    dates = expand(item, on_or_after, on_or_after + timedelta(days=horizon_days))
    return dates[0] if dates else None
