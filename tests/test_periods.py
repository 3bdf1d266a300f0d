from datetime import date

import pytest

from periods import month_period, resolve_period


def test_this_month_is_default() -> None:
    period = resolve_period(None, None, None, today=date(2024, 2, 10))
    assert (period.slug, period.start, period.end) == (
        "this_month",
        date(2024, 2, 1),
        date(2024, 2, 29),
    )


def test_last_and_next_month_cross_year_boundaries() -> None:
    last = resolve_period("last_month", None, None, today=date(2025, 1, 15))
    assert (last.start, last.end) == (date(2024, 12, 1), date(2024, 12, 31))
    upcoming = resolve_period("next_month", None, None, today=date(2024, 12, 15))
    assert (upcoming.start, upcoming.end) == (date(2025, 1, 1), date(2025, 1, 31))


def test_explicit_month() -> None:
    period = resolve_period(None, None, None, month="2023-02")
    assert (period.start, period.end) == (date(2023, 2, 1), date(2023, 2, 28))


def test_custom_range_validation() -> None:
    period = resolve_period("custom", "2025-01-05", "2025-02-10")
    assert (period.start, period.end) == (date(2025, 1, 5), date(2025, 2, 10))
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-10", "2025-01-05")
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-10", None)


def test_invalid_inputs() -> None:
    with pytest.raises(ValueError):
        resolve_period(None, None, None, month="2025-13")
    with pytest.raises(ValueError):
        resolve_period("fortnight", None, None)
    with pytest.raises(ValueError):
        month_period(2025, 0)
