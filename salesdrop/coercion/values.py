from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

"""Value coercion for locale-ambiguous cells.

Pure functions, no I/O. Numeric text may use either the US convention
(55,000.50) or the European/Indonesian convention (55.000,50); dates arrive as
"25 Nov 2025", "25-11-2025", ISO text or native date objects.
"""

__all__ = [
    "coerce_numeric",
    "coerce_date",
    "normalize_dmy_date",
    "render_text",
    "is_blank",
    "is_iso_date",
    "looks_scientific",
]

MONTHS = {
    "jan": "01", "feb": "02", "mar": "03", "apr": "04",
    "may": "05", "mei": "05", "jun": "06", "jul": "07",
    "aug": "08", "agu": "08", "sep": "09", "oct": "10",
    "okt": "10", "nov": "11", "dec": "12", "des": "12",
}

_SCIENTIFIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)[eE][+-]?\d+$")
_DAY_MONTH_YEAR_RE = re.compile(r"(\d{1,2})[\s\-/]*([A-Za-z]{3,})\.?[\s\-/]*(\d{4})")
_DMY_NUMERIC_RE = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_blank(raw: Any) -> bool:
    """None, NaN-like floats and whitespace-only strings are blank."""
    if raw is None:
        return True
    if isinstance(raw, float) and raw != raw:  # NaN
        return True
    if isinstance(raw, str) and raw.strip() == "":
        return True
    return False


def looks_scientific(raw: Any) -> bool:
    return isinstance(raw, str) and bool(_SCIENTIFIC_RE.match(raw.strip()))


def _finite(value: Decimal) -> Decimal | None:
    return value if value.is_finite() else None


def coerce_numeric(raw: Any) -> Decimal | None:
    """Convert a raw cell into a Decimal, or None. Never raises.

    Separator heuristic (text input only):
    - last '.' after last ','  -> '.' is decimal, strip ','   ("55,000.50")
    - last ',' after last '.'  -> ',' is decimal, strip '.'   ("55.000,50")
    - neither present          -> parse as-is
    Native numbers and scientific-notation strings skip the heuristic.
    """
    if is_blank(raw):
        return None
    if isinstance(raw, bool):
        return Decimal(int(raw))
    if isinstance(raw, (int, float, Decimal)):
        try:
            return _finite(Decimal(str(raw)))
        except InvalidOperation:
            return None

    text = str(raw).strip()
    if looks_scientific(text):
        try:
            return _finite(Decimal(text))
        except InvalidOperation:
            return None

    last_dot = text.rfind(".")
    last_comma = text.rfind(",")
    if last_dot > last_comma:
        text = text.replace(",", "")
    elif last_comma > last_dot:
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "").replace(".", "")

    try:
        return _finite(Decimal(text))
    except InvalidOperation:
        return None


def normalize_dmy_date(text: str) -> str | None:
    """Rewrite strict DD-MM-YYYY to YYYY-MM-DD; None when the pattern does not match."""
    m = _DMY_NUMERIC_RE.match(text.strip())
    if not m:
        return None
    day, month, year = m.groups()
    return f"{year}-{month}-{day}"


def coerce_date(raw: Any) -> str | None:
    """Normalize a raw date cell.

    Returns an ISO YYYY-MM-DD string when the value is a native date or matches
    "<day> <month-name> <year>" / DD-MM-YYYY. Any other text is returned
    trimmed and unchanged so the database can interpret it.
    """
    if is_blank(raw):
        return None
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()

    text = str(raw).strip()
    m = _DAY_MONTH_YEAR_RE.search(text)
    if m:
        day, month_name, year = m.groups()
        month = MONTHS.get(month_name[:3].lower())
        if month:
            return f"{year}-{month}-{day.zfill(2)}"

    dmy = normalize_dmy_date(text)
    if dmy is not None:
        return dmy
    return text


def is_iso_date(text: str | None) -> bool:
    """True for a calendar-valid YYYY-MM-DD string."""
    if not text or not _ISO_DATE_RE.match(text):
        return False
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def render_text(raw: Any) -> str:
    """Render a value bound for a text column.

    Numbers and scientific-notation strings (e.g. phone numbers exported as
    8.13E+10) are rendered with zero decimal places.
    """
    if isinstance(raw, bool):
        return str(raw)
    if isinstance(raw, (int, float, Decimal)) or looks_scientific(raw):
        try:
            num = Decimal(str(raw).strip())
        except InvalidOperation:
            return str(raw)
        if num.is_finite():
            return f"{num:.0f}"
    return str(raw)
