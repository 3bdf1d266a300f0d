"""Rule-table validation of raw (JSON-decoded) income, bill and category records.

Each kind has an ordered table of fields; each field has an ordered list of
``Rule(check, message)`` pairs. Every field is checked, in declaration order,
and contributes at most one ``FieldError`` (its first failing rule), so the
caller gets the complete list of problems in a stable order.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from csv_utils import MAX_AMOUNT, parse_amount, parse_decimal
from errors import ExpansionError, FieldError, ValidationError
from models import OccurrenceType
from recurrence import coerce_bool, parse_calendar_date
from schemas import BillRecord, CategoryRecord, CredentialsRecord, IncomeRecord

MISSING: Any = object()

Check = Callable[[Any, Mapping[str, Any]], bool]
Message = Union[str, Callable[[Any], str]]

_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


@dataclass(frozen=True)
class Rule:
    check: Check
    message: Message

    def render(self, value: Any) -> str:
        if callable(self.message):
            return self.message(value)
        return self.message


@dataclass(frozen=True)
class FieldSpec:
    name: str
    attr: str
    rules: tuple[Rule, ...]
    convert: Callable[[Any], Any] = lambda value: value
    aliases: tuple[str, ...] = ()

    def lookup(self, raw: Mapping[str, Any]) -> Any:
        for key in (self.name, self.attr, *self.aliases):
            if key in raw and raw[key] is not None:
                return raw[key]
        return MISSING


@dataclass(frozen=True)
class ValidationResult:
    record: Optional[BaseModel] = None
    errors: tuple[FieldError, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> BaseModel:
        if self.errors:
            raise ValidationError(self.errors)
        return self.record


# -- value helpers ---------------------------------------------------------


def _is_blank(value: Any) -> bool:
    return value is MISSING or (isinstance(value, str) and not value.strip())


def _amount_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    return None


def _to_number(value: Any) -> Optional[Decimal]:
    text = _amount_text(value)
    if text is None:
        return None
    try:
        return parse_decimal(text)
    except ValueError:
        return None


def _to_decimal(value: Any) -> Optional[Decimal]:
    text = _amount_text(value)
    if text is None:
        return None
    try:
        return parse_amount(text)
    except ValueError:
        return None


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _to_date(value: Any):
    return parse_calendar_date(value)


def _is_date(value: Any) -> bool:
    try:
        _to_date(value)
    except ExpansionError:
        return False
    return True


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


# -- rule builders ---------------------------------------------------------


def required(label: str) -> Rule:
    return Rule(lambda value, _raw: not _is_blank(value), f"{label} is required")


def required_when(condition: Callable[[Mapping[str, Any]], bool], message: str) -> Rule:
    return Rule(
        lambda value, raw: not (_is_blank(value) and condition(raw)),
        message,
    )


def optional(check: Callable[[Any], bool], message: Message) -> Rule:
    return Rule(lambda value, _raw: value is MISSING or check(value), message)


def is_text(label: str, max_length: int) -> tuple[Rule, ...]:
    return (
        optional(lambda v: isinstance(v, str), f"{label} must be text"),
        optional(
            lambda v: len(v.strip()) <= max_length,
            f"{label} must be at most {max_length} characters",
        ),
    )


def _rounds_positive(value: Any) -> bool:
    amount = _to_number(value)
    if amount <= 0:
        return False
    # too large to round; reported by the bound rule instead
    if amount > MAX_AMOUNT:
        return True
    return _to_decimal(value) > 0


def is_positive_amount(label: str) -> tuple[Rule, ...]:
    return (
        optional(lambda v: _to_number(v) is not None, f"{label} must be a number"),
        optional(_rounds_positive, f"{label} must be positive"),
        optional(
            lambda v: _to_number(v) <= MAX_AMOUNT,
            f"{label} must be at most {MAX_AMOUNT:,}",
        ),
    )


def is_int_between(label: str, low: int, high: int) -> tuple[Rule, ...]:
    return (
        optional(lambda v: _to_int(v) is not None, f"{label} must be a whole number"),
        optional(
            lambda v: low <= _to_int(v) <= high,
            f"{label} must be between {low} and {high}",
        ),
    )


def is_int(label: str) -> Rule:
    return optional(lambda v: _to_int(v) is not None, f"{label} must be a whole number")


def is_bool(label: str) -> Rule:
    return optional(lambda v: coerce_bool(v) is not None, f"{label} must be true or false")


def is_date(label: str) -> Rule:
    return optional(_is_date, lambda v: f"{label} must be a valid date, got {v!r}")


def is_one_of(label: str, enum_cls: type) -> Rule:
    allowed = [member.value for member in enum_cls]

    def check(value: Any) -> bool:
        return isinstance(value, str) and value in allowed

    return optional(
        check,
        lambda v: f"Invalid {label} {v!r}; expected one of: {', '.join(allowed)}",
    )


def _occurrence_type(raw: Mapping[str, Any]) -> Any:
    return raw.get("occurrenceType", raw.get("occurrence_type"))


def _is_twice_monthly(raw: Mapping[str, Any]) -> bool:
    return _occurrence_type(raw) == OccurrenceType.twice_monthly.value


def _flag(raw: Mapping[str, Any], *keys: str) -> bool:
    for key in keys:
        if key in raw and raw[key] is not None:
            return bool(coerce_bool(raw[key]))
    return False


def _is_one_time(raw: Mapping[str, Any]) -> bool:
    return _flag(raw, "isOneTime", "is_one_time")


def _needs_date(raw: Mapping[str, Any]) -> bool:
    return _is_one_time(raw) or _flag(raw, "isYearly", "is_yearly")


def _differs_from_first_date(value: Any, raw: Mapping[str, Any]) -> bool:
    if value is MISSING or not _is_twice_monthly(raw):
        return True
    first = raw.get("firstDate", raw.get("first_date"))
    return first is None or _to_int(first) != _to_int(value)


def _strip(value: str) -> str:
    return value.strip()


# -- field tables ----------------------------------------------------------


INCOME_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("id", "id", (optional(lambda v: isinstance(v, str), "Id must be text"),)),
    FieldSpec("source", "source", (required("Source"), *is_text("Source", 200)), _strip),
    FieldSpec("amount", "amount", (required("Amount"), *is_positive_amount("Amount")), _to_decimal),
    FieldSpec("date", "date", (required("Date"), is_date("Date")), _to_date),
    FieldSpec(
        "occurrenceType",
        "occurrence_type",
        (required("Occurrence type"), is_one_of("occurrence type", OccurrenceType)),
        OccurrenceType,
    ),
    FieldSpec(
        "firstDate",
        "first_date",
        (
            required_when(_is_twice_monthly, "First date is required for twice-monthly income"),
            *is_int_between("First date", 1, 31),
        ),
        _to_int,
    ),
    FieldSpec(
        "secondDate",
        "second_date",
        (
            required_when(_is_twice_monthly, "Second date is required for twice-monthly income"),
            *is_int_between("Second date", 1, 31),
            Rule(_differs_from_first_date, "Second date must differ from first date"),
        ),
        _to_int,
    ),
    FieldSpec("category_id", "category_id", (is_int("Category"),), _to_int, ("categoryId",)),
)

BILL_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("id", "id", (optional(lambda v: isinstance(v, str), "Id must be text"),)),
    FieldSpec("name", "name", (required("Name"), *is_text("Name", 200)), _strip),
    FieldSpec("amount", "amount", (required("Amount"), *is_positive_amount("Amount")), _to_decimal),
    FieldSpec(
        "day",
        "day",
        (
            required_when(lambda raw: not _is_one_time(raw), "Day is required for recurring bills"),
            *is_int_between("Day", 1, 31),
        ),
        _to_int,
    ),
    FieldSpec(
        "date",
        "date",
        (
            required_when(_needs_date, "Date is required for one-time and yearly bills"),
            is_date("Date"),
        ),
        _to_date,
    ),
    FieldSpec("category_id", "category_id", (required("Category"), is_int("Category")), _to_int, ("categoryId",)),
    FieldSpec("user_id", "user_id", (is_int("User"),), _to_int, ("userId",)),
    FieldSpec(
        "created_at",
        "created_at",
        (optional(lambda v: _to_datetime(v) is not None, "Created at must be a timestamp"),),
        _to_datetime,
        ("createdAt",),
    ),
    FieldSpec("isOneTime", "is_one_time", (is_bool("One-time flag"),), coerce_bool),
    FieldSpec("category_name", "category_name", is_text("Category name", 100), _strip, ("categoryName",)),
    FieldSpec("isYearly", "is_yearly", (is_bool("Yearly flag"),), coerce_bool),
    FieldSpec("category_color", "category_color", is_text("Category color", 9), _strip, ("categoryColor",)),
    FieldSpec("reminderEnabled", "reminder_enabled", (is_bool("Reminder flag"),), coerce_bool),
    FieldSpec("reminderDays", "reminder_days", is_int_between("Reminder days", 0, 365), _to_int),
)

CATEGORY_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("name", "name", (required("Name"), *is_text("Name", 100)), _strip),
    FieldSpec(
        "color",
        "color",
        (
            optional(
                lambda v: isinstance(v, str) and bool(_COLOR_RE.match(v.strip())),
                lambda v: f"Color must be a hex value like #1f2937, got {v!r}",
            ),
        ),
        _strip,
    ),
    FieldSpec("icon", "icon", is_text("Icon", 50), _strip),
)

# bcrypt only looks at the first 72 bytes of a password
PASSWORD_MAX_BYTES = 72

CREDENTIALS_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("username", "username", (required("Username"), *is_text("Username", 100)), _strip),
    FieldSpec(
        "password",
        "password",
        (
            required("Password"),
            optional(lambda v: isinstance(v, str), "Password must be text"),
            optional(
                lambda v: len(v.encode("utf-8")) <= PASSWORD_MAX_BYTES,
                f"Password must be at most {PASSWORD_MAX_BYTES} bytes",
            ),
        ),
    ),
)

SCHEMAS: dict[str, tuple[tuple[FieldSpec, ...], type[BaseModel]]] = {
    "income": (INCOME_FIELDS, IncomeRecord),
    "bill": (BILL_FIELDS, BillRecord),
    "category": (CATEGORY_FIELDS, CategoryRecord),
    "credentials": (CREDENTIALS_FIELDS, CredentialsRecord),
}


def _field_name_for(specs: tuple[FieldSpec, ...], attr: str) -> str:
    for spec in specs:
        if spec.attr == attr:
            return spec.name
    return attr


def validate(kind: str, raw: Any) -> ValidationResult:
    try:
        specs, record_cls = SCHEMAS[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown record kind {kind!r}") from exc

    if not isinstance(raw, Mapping):
        return ValidationResult(errors=(FieldError("body", "Expected a JSON object"),))

    errors: list[FieldError] = []
    cleaned: dict[str, Any] = {}
    for spec in specs:
        value = spec.lookup(raw)
        failed = next((rule for rule in spec.rules if not rule.check(value, raw)), None)
        if failed is not None:
            errors.append(FieldError(spec.name, failed.render(value)))
        elif value is not MISSING:
            cleaned[spec.attr] = spec.convert(value)

    if errors:
        return ValidationResult(errors=tuple(errors))

    try:
        record = record_cls(**cleaned)
    except PydanticValidationError as exc:
        return ValidationResult(
            errors=tuple(
                FieldError(
                    _field_name_for(specs, str(err["loc"][0]) if err["loc"] else "body"),
                    err["msg"],
                )
                for err in exc.errors()
            )
        )
    return ValidationResult(record=record)


def validate_or_raise(kind: str, raw: Any) -> BaseModel:
    return validate(kind, raw).unwrap()
