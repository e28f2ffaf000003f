"""
Module: cashbox_kernel.domain.normalize
Responsibility: Turn the text found in Arabic bank exports and in edit
    inputs into Decimals and datetimes.
Architecture position: Kernel > Domain.  Pure functions, zero I/O.  Used by
    the statement parser (cashbox_ingestion) and by the lifecycle controller
    when coercing edit input.

Invariants enforced:
    - Amounts are Decimal; no float ever enters a sum.
    - Unparsable amounts become Decimal("0"), unparsable dates become None.
      Neither function raises on bad input.

Amount heuristics:
    Bank exports mix conventions.  "10.000" is ten thousand (dot as
    thousands separator) while "695,99" is 695.99 (comma as decimal
    separator).  The rules, applied in order:

    1. ``^-?\\d+,\\d{1,3}$``            comma is the decimal separator
    2. otherwise                        commas are removed
    3. last dot group is 3 digits       all dots are removed
    4. otherwise                        last dot is the decimal point
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

_ARABIC_INDIC = "٠١٢٣٤٥٦٧٨٩"
_EASTERN_ARABIC_INDIC = "۰۱۲۳۴۵۶۷۸۹"
_DIGIT_TABLE = str.maketrans(
    _ARABIC_INDIC + _EASTERN_ARABIC_INDIC, "0123456789" * 2
)

ARABIC_DECIMAL_SEPARATOR = "\u066b"
ARABIC_THOUSANDS_SEPARATOR = "\u066c"

# Edit inputs beyond 15 integer digits are treated as garbage; money is
# quantized under the default 28-digit decimal context.
MAX_AMOUNT_DIGITS = 15

# LRM, RLM, LRE, RLE, PDF, ZWSP, ZWNJ, ZWJ, BOM, tatweel, Arabic percent
_MARKS_RE = re.compile("[\u200e\u200f\u202a\u202b\u202c\u200b\u200c\u200d\ufeff\u0640\u066a]")
_WHITESPACE_RE = re.compile(r"\s+")
_CURRENCY_RE = re.compile(r"SAR|ر\.?\s*س\.?|ريال\s*(?:سعودي)?", re.IGNORECASE)
_COMMA_DECIMAL_RE = re.compile(r"^-?\d+,\d{1,3}$")
_NON_NUMERIC_RE = re.compile(r"[^\d.,\-]")

# Spreadsheet serials between 1990-01-01 and ~2042; smaller numbers are
# amounts or ids, not dates.
EXCEL_SERIAL_MIN = 32874
EXCEL_SERIAL_MAX = 52100
_EXCEL_EPOCH = datetime(1899, 12, 30)

_MORNING = {"ص", "am"}
_EVENING = {"م", "pm"}

_MERIDIEM = r"(?:\s*(ص|م|AM|PM|am|pm))?"
_DATE_FIRST_RE = re.compile(
    r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?" + _MERIDIEM
)
_TIME_FIRST_YMD_RE = re.compile(
    r"^(\d{1,2}):(\d{2})(?::(\d{2}))?" + _MERIDIEM + r"\s+(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})"
)
_TIME_FIRST_DMY_RE = re.compile(
    r"^(\d{1,2}):(\d{2})(?::(\d{2}))?" + _MERIDIEM + r"\s+(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})"
)
_DATE_ONLY_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")


def to_latin_digits(text: str) -> str:
    """Map Arabic-Indic and Eastern Arabic-Indic digits to ASCII."""
    return text.translate(_DIGIT_TABLE)


def strip_marks(text: str) -> str:
    """Remove bidi/control marks, tatweel and the Arabic percent sign."""
    return _MARKS_RE.sub("", text)


def normalize_header_cell(value: object) -> str:
    """Canonical form of a header cell for vocabulary matching."""
    if value is None:
        return ""
    text = strip_marks(str(value))
    text = _CURRENCY_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_amount(text: object) -> Decimal:
    """
    Parse an amount as it appears in a bank export.

    >>> parse_amount("10.000")
    Decimal('10000')
    >>> parse_amount("695,99")
    Decimal('695.99')
    """
    if text is None:
        return Decimal("0")
    raw = strip_marks(str(text)).strip()
    raw = _CURRENCY_RE.sub(" ", raw).strip()
    raw = to_latin_digits(raw)
    raw = raw.replace(ARABIC_DECIMAL_SEPARATOR, ".").replace(
        ARABIC_THOUSANDS_SEPARATOR, ""
    )
    num = _NON_NUMERIC_RE.sub("", raw)
    if not num:
        return Decimal("0")

    if _COMMA_DECIMAL_RE.match(num):
        num = num.replace(",", ".")
    else:
        num = num.replace(",", "")

    if "." in num:
        head, _, last = num.rpartition(".")
        if len(last) == 3 and last.isdigit():
            num = num.replace(".", "")
        else:
            num = head.replace(".", "") + "." + last

    try:
        value = Decimal(num)
    except InvalidOperation:
        return Decimal("0")
    if not value.is_finite():
        return Decimal("0")
    return value


def coerce_amount(value: object) -> Decimal:
    """Coerce an edit input to Decimal; anything non-numeric or oversized becomes 0."""
    amount = _coerce(value)
    if not amount.is_finite() or amount.adjusted() >= MAX_AMOUNT_DIGITS:
        return Decimal("0")
    return amount


def _coerce(value: object) -> Decimal:
    if isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return Decimal("0")
    if isinstance(value, str):
        return parse_amount(value)
    return Decimal("0")


def _to_24h(hour: int, meridiem: str | None) -> int:
    if meridiem is None:
        return hour
    marker = meridiem.lower()
    if marker in _EVENING and hour != 12:
        return hour + 12
    if marker in _MORNING and hour == 12:
        return 0
    return hour


def _build(year, month, day, hour, minute, second, meridiem) -> datetime | None:
    try:
        return datetime(
            int(year),
            int(month),
            int(day),
            _to_24h(int(hour), meridiem),
            int(minute),
            int(second or 0),
        )
    except ValueError:
        return None


def parse_report_datetime(text: object) -> datetime | None:
    """
    Parse a free-text report timestamp into a naive local datetime.

    Accepts "dd/mm/yyyy hh:mm م", "hh:mm ص yyyy/mm/dd" and
    "hh:mm ص dd/mm/yyyy" with ``/``, ``-`` or ``.`` as date separators and
    Arabic or Latin meridiem markers.  A bare "dd/mm/yyyy" is midnight.
    """
    if text is None:
        return None
    raw = strip_marks(str(text))
    raw = re.sub(r"/\s*", "/", raw).strip()
    if not raw:
        return None
    normalized = _WHITESPACE_RE.sub(" ", to_latin_digits(raw))

    m = _TIME_FIRST_YMD_RE.match(normalized)
    if m:
        hour, minute, second, mer, year, month, day = m.groups()
        return _build(year, month, day, hour, minute, second, mer)

    m = _TIME_FIRST_DMY_RE.match(normalized)
    if m:
        hour, minute, second, mer, day, month, year = m.groups()
        return _build(year, month, day, hour, minute, second, mer)

    m = _DATE_FIRST_RE.match(normalized)
    if m:
        day, month, year, hour, minute, second, mer = m.groups()
        return _build(year, month, day, hour, minute, second, mer)

    m = _DATE_ONLY_RE.match(normalized)
    if m:
        day, month, year = m.groups()
        return _build(year, month, day, 0, 0, 0, None)

    return None


def parse_date_cell(value: object) -> datetime | None:
    """Parse a spreadsheet date cell: native, serial number, or text."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float, Decimal)):
        serial = float(value)
        if serial < EXCEL_SERIAL_MIN or serial > EXCEL_SERIAL_MAX:
            return None
        return _EXCEL_EPOCH + timedelta(days=serial)
    if isinstance(value, str):
        return parse_report_datetime(value)
    return None
