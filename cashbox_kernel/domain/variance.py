"""
Variance -- drawer reconciliation arithmetic.

Responsibility:
    Compares what the employee counted against what the property system
    ("program") reports, separately for the cash drawer and for card /
    transfer receipts.

Architecture position:
    Kernel > Domain -- pure functions over ClosureRow, zero I/O.

Invariants enforced:
    - Variances are rounded to 2 places with halves toward positive
      infinity (0.005 -> 0.01, -0.005 -> 0.00); totals use round_money.
    - cash_variance == 0 exactly when
      cash + sent_to_treasury + max(0, expenses - compensation)
      equals program_balance_cash.

Sign convention:
    Positive variance is a surplus, negative a shortfall, zero reconciled.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal

from cashbox_kernel.db.types import ZERO, round_money
from cashbox_kernel.domain.rows import ClosureRow

DEFAULT_SWAP_TOLERANCE = Decimal("2")


def round_variance(value: Decimal) -> Decimal:
    """Round to cents, halves toward positive infinity."""
    rounding = ROUND_HALF_UP if value >= ZERO else ROUND_HALF_DOWN
    return round_money(value, rounding=rounding)


def effective_expenses(row: ClosureRow) -> Decimal:
    """Expenses not reimbursed by compensation, never negative."""
    return max(ZERO, row.expenses - row.expense_compensation)


def card_total(row: ClosureRow) -> Decimal:
    """Card receipts only (mada + visa + mastercard)."""
    return round_money(row.mada + row.visa + row.mastercard)


def bank_total(row: ClosureRow) -> Decimal:
    """Card receipts plus bank transfers."""
    return round_money(row.mada + row.visa + row.mastercard + row.bank_transfer)


def cash_variance(row: ClosureRow) -> Decimal:
    return round_variance(
        row.cash
        + row.sent_to_treasury
        + effective_expenses(row)
        - row.program_balance_cash
    )


def bank_variance(row: ClosureRow) -> Decimal:
    return round_variance(
        row.mada
        + row.visa
        + row.mastercard
        + row.bank_transfer
        - row.program_balance_bank
    )


def total_variance(row: ClosureRow) -> Decimal:
    """
    Counted takings against both program balances.

    This is the figure stored on the row as ``variance``.  It deliberately
    ignores treasury transfers and expenses; use cash_variance for the
    drawer-level check.
    """
    return round_variance(
        row.cash
        + row.mada
        + row.visa
        + row.mastercard
        + row.bank_transfer
        - row.program_balance_cash
        - row.program_balance_bank
    )


def is_reconciled(row: ClosureRow) -> bool:
    return cash_variance(row) == ZERO and bank_variance(row) == ZERO


def carried_expense_total(row: ClosureRow) -> Decimal:
    return round_money(sum((item.amount for item in row.carried_items), ZERO))


@dataclass(frozen=True)
class VarianceSwapHint:
    """
    Cash and bank variances that nearly cancel each other out.

    Usually an amount typed into the cash field that belongs to a card
    field (or the reverse).
    """

    cash_variance: Decimal
    bank_variance: Decimal
    difference: Decimal


def detect_variance_swap(
    row: ClosureRow,
    tolerance: Decimal = DEFAULT_SWAP_TOLERANCE,
) -> VarianceSwapHint | None:
    cash = cash_variance(row)
    bank = bank_variance(row)
    if cash == ZERO or bank == ZERO:
        return None
    if (cash > ZERO) == (bank > ZERO):
        return None
    difference = round_money(abs(abs(cash) - abs(bank)))
    if difference > tolerance:
        return None
    return VarianceSwapHint(
        cash_variance=cash,
        bank_variance=bank,
        difference=difference,
    )
