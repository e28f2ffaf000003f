"""
Statement parse result types.

ParseResult is the parser's only output.  A failed parse is still a
ParseResult: zero sums, empty details and a non-None ``error``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

# Shown in place of a name when the accepted rows were entered by several
# employees ("more than one employee").
MULTIPLE_EMPLOYEES = "أكثر من موظف"


class PaymentMethod(str, Enum):
    CASH = "cash"
    MADA = "mada"
    VISA = "visa"
    MASTERCARD = "mastercard"
    BANK_TRANSFER = "bank_transfer"


NON_CASH_METHODS: tuple[PaymentMethod, ...] = (
    PaymentMethod.MADA,
    PaymentMethod.VISA,
    PaymentMethod.MASTERCARD,
    PaymentMethod.BANK_TRANSFER,
)


def _zero_sums() -> dict[PaymentMethod, Decimal]:
    return {method: Decimal("0") for method in PaymentMethod}


def _zero_counts() -> dict[PaymentMethod, int]:
    return {method: 0 for method in PaymentMethod}


def _empty_details() -> dict[PaymentMethod, tuple[TransactionDetail, ...]]:
    return {method: () for method in NON_CASH_METHODS}


@dataclass(frozen=True)
class TransactionDetail:
    """One accepted non-cash transaction."""

    date: datetime
    amount: Decimal
    employee_name: str | None = None
    purpose: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "amount": str(self.amount),
            "employeeName": self.employee_name,
            "purpose": self.purpose,
        }


@dataclass(frozen=True)
class ParseResult:
    """
    Totals extracted from one bank statement.

    ``employee_name`` is None when no employee column (or no names) was
    found, the single name when all accepted rows share one, otherwise
    MULTIPLE_EMPLOYEES.  ``employee_names`` lists every distinct name in
    first-seen order.
    """

    sums: dict[PaymentMethod, Decimal] = field(default_factory=_zero_sums)
    counts: dict[PaymentMethod, int] = field(default_factory=_zero_counts)
    details: dict[PaymentMethod, tuple[TransactionDetail, ...]] = field(
        default_factory=_empty_details
    )
    employee_name: str | None = None
    employee_names: tuple[str, ...] = ()
    error: str | None = None

    @classmethod
    def empty(cls, error: str | None = None) -> ParseResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def has_multiple_employees(self) -> bool:
        return self.employee_name == MULTIPLE_EMPLOYEES

    def to_dict(self) -> dict[str, Any]:
        return {
            "sums": {m.value: str(v) for m, v in self.sums.items()},
            "counts": {m.value: n for m, n in self.counts.items()},
            "details": {
                m.value: [d.to_dict() for d in items]
                for m, items in self.details.items()
            },
            "employeeName": self.employee_name,
            "employeeNames": list(self.employee_names),
            "error": self.error,
        }
