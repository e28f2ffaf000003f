"""
Module: cashbox_kernel.db.types
Responsibility: Annotated column types and the single sanctioned rounding
    helper for monetary values.
Architecture position: Kernel > DB.  May be imported by models/, domain/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money is Decimal end to end.  Cash counts, card totals and program
      balances never pass through float.
    - round_money() is the ONLY rounding function for money; variance
      computations and row normalization delegate to it.
    - Timestamps are persisted as naive UTC and returned as aware UTC
      (UTCDateTime), so keyset pagination compares consistently on both
      SQLite and PostgreSQL.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

# Monetary amount: 18 digits, 2 decimal places (drawer amounts are SAR/halala)
Money = Annotated[Decimal, Numeric(18, 2)]

# Short identifier strings (branch codes, statuses)
ShortCode = Annotated[str, String(50)]

# Free text (notes, employee names)
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Equivalent to "multiply by 100, round to nearest integer, divide by 100"
    with half-up rounding, without the float error of doing it literally.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


class UTCDateTime(TypeDecorator):
    """
    Timestamp stored as naive UTC, loaded as timezone-aware UTC.

    Contract:
        - process_bind_param: aware datetimes are converted to UTC and
          stripped of tzinfo; naive datetimes are assumed to be UTC already.
        - process_result_value: attaches timezone.utc.
    """

    impl = DateTime(timezone=False)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
