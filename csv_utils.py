import csv
import re
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from services import Occurrence


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


# Largest value a Numeric(12, 2) amount column holds.
MAX_AMOUNT = Decimal("9999999999.99")

_GROUPED_RE = re.compile(r"^[+-]?\d{1,3}(?:,\d{3})+(?:\.\d*)?$")


def parse_decimal(value: str) -> Decimal:
    """Parse a user-typed dollar amount such as ``$1,234.50`` without rounding.

    Commas are only accepted as thousands separators; anything else
    (``1,5``, ``12,34.00``) is rejected rather than guessed at.
    """
    clean = value.strip().replace("$", "").replace(" ", "")
    if "," in clean:
        if not _GROUPED_RE.match(clean):
            raise ValueError(f"Ambiguous amount {value!r}")
        clean = clean.replace(",", "")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    return amount


def parse_amount(value: str) -> Decimal:
    """Like ``parse_decimal`` but rounded to cents and bounded by ``MAX_AMOUNT``."""
    amount = parse_decimal(value)
    if abs(amount) > MAX_AMOUNT:
        raise ValueError("Amount is too large")
    try:
        return amount.quantize(Decimal("0.01"))
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc


def export_occurrences(occurrences: Sequence["Occurrence"]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Kind", "Name", "Amount", "Category"])
    for occ in occurrences:
        writer.writerow(
            [
                occ.date.isoformat(),
                occ.kind,
                sanitize_csv_value(occ.name),
                f"{occ.amount:.2f}",
                sanitize_csv_value(occ.category_name or ""),
            ]
        )
    return output.getvalue()
