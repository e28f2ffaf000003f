"""Pure domain core: rows, normalization, variance and time."""

from cashbox_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from cashbox_kernel.domain.rows import (
    EDITABLE_FIELDS,
    MONEY_FIELDS,
    Branch,
    CarryOver,
    ClosureRow,
    ExpenseItem,
    RowStatus,
    new_row,
    row_from_dict,
    row_to_dict,
)
from cashbox_kernel.domain.variance import (
    VarianceSwapHint,
    bank_total,
    bank_variance,
    card_total,
    carried_expense_total,
    cash_variance,
    detect_variance_swap,
    effective_expenses,
    is_reconciled,
    total_variance,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "EDITABLE_FIELDS",
    "MONEY_FIELDS",
    "Branch",
    "CarryOver",
    "ClosureRow",
    "ExpenseItem",
    "RowStatus",
    "new_row",
    "row_from_dict",
    "row_to_dict",
    "VarianceSwapHint",
    "bank_total",
    "bank_variance",
    "card_total",
    "carried_expense_total",
    "cash_variance",
    "detect_variance_swap",
    "effective_expenses",
    "is_reconciled",
    "total_variance",
]
