"""
Rows -- closure-row value objects and their JSON form.

Responsibility:
    Defines the immutable ClosureRow (one shift's drawer figures), its
    ExpenseItem lines, the Branch partition key and the CarryOver seed used
    when a closed shift hands unresolved expenses to its successor.  Also
    owns the dict/JSON serialization both storage tiers share.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Services receive and return these
    objects; ORM models convert to and from them at the storage boundary.

Invariants enforced:
    - All money fields are Decimal.
    - carried_expense_count <= len(expense_items) after load normalization.
    - Rows are frozen; edits produce a new row via ``dataclasses.replace``.

Failure modes:
    - row_from_dict raises ValueError when the id or created_at is missing
      or malformed.  Numeric fields and expense items never raise; they
      degrade to 0 / are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from cashbox_kernel.db.types import ZERO, round_money


class Branch(str, Enum):
    """Hotel branch.  Every row and both storage tiers are partitioned by it."""

    CORNICHE = "corniche"
    ANDALUSIA = "andalusia"


class RowStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


# The ten user-entered money fields, in display order.
MONEY_FIELDS: tuple[str, ...] = (
    "cash",
    "sent_to_treasury",
    "expense_compensation",
    "expenses",
    "mada",
    "visa",
    "mastercard",
    "bank_transfer",
    "program_balance_cash",
    "program_balance_bank",
)

TEXT_FIELDS: tuple[str, ...] = ("employee_name", "notes")

EDITABLE_FIELDS: frozenset[str] = frozenset(MONEY_FIELDS + TEXT_FIELDS)

_CAMEL_KEYS: dict[str, str] = {
    "id": "id",
    "employee_name": "employeeName",
    "cash": "cash",
    "sent_to_treasury": "sentToTreasury",
    "expense_compensation": "expenseCompensation",
    "expenses": "expenses",
    "mada": "mada",
    "visa": "visa",
    "mastercard": "mastercard",
    "bank_transfer": "bankTransfer",
    "program_balance_cash": "programBalanceCash",
    "program_balance_bank": "programBalanceBank",
    "variance": "variance",
    "carried_expense_count": "carriedExpenseCount",
    "expense_items": "expenseItems",
    "status": "status",
    "notes": "notes",
    "closed_at": "closedAt",
    "created_at": "createdAt",
}


@dataclass(frozen=True)
class ExpenseItem:
    """One expense line paid out of the drawer."""

    amount: Decimal
    description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"amount": str(self.amount), "description": self.description}


@dataclass(frozen=True)
class CarryOver:
    """
    Expenses a closed shift hands to its successor.

    ``items`` become the first ``len(items)`` (locked) expense lines of the
    new row, and ``expenses`` its starting expense total.
    """

    expenses: Decimal = ZERO
    items: tuple[ExpenseItem, ...] = ()

    @property
    def carried_expense_count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class ClosureRow:
    """
    One shift's drawer record.

    ``variance`` is a stored convenience: it is recomputed from the source
    fields on every edit and at close, and never read back as authority.
    """

    id: UUID
    employee_name: str
    created_at: datetime
    cash: Decimal = ZERO
    sent_to_treasury: Decimal = ZERO
    expense_compensation: Decimal = ZERO
    expenses: Decimal = ZERO
    mada: Decimal = ZERO
    visa: Decimal = ZERO
    mastercard: Decimal = ZERO
    bank_transfer: Decimal = ZERO
    program_balance_cash: Decimal = ZERO
    program_balance_bank: Decimal = ZERO
    variance: Decimal = ZERO
    carried_expense_count: int = 0
    expense_items: tuple[ExpenseItem, ...] = field(default_factory=tuple)
    status: RowStatus = RowStatus.ACTIVE
    notes: str = ""
    closed_at: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == RowStatus.CLOSED

    @property
    def carried_items(self) -> tuple[ExpenseItem, ...]:
        return self.expense_items[: self.carried_expense_count]

    @property
    def own_items(self) -> tuple[ExpenseItem, ...]:
        return self.expense_items[self.carried_expense_count :]


def new_row(
    employee_name: str,
    now: datetime,
    carry: CarryOver | None = None,
) -> ClosureRow:
    """Create a fresh ACTIVE row, optionally seeded with carried expenses."""
    if carry is None:
        return ClosureRow(id=uuid4(), employee_name=employee_name, created_at=now)
    return ClosureRow(
        id=uuid4(),
        employee_name=employee_name,
        created_at=now,
        expenses=round_money(carry.expenses),
        expense_items=tuple(carry.items),
        carried_expense_count=carry.carried_expense_count,
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def row_to_dict(row: ClosureRow) -> dict[str, Any]:
    """JSON-compatible dict with camelCase keys and money as strings."""
    data: dict[str, Any] = {
        "id": str(row.id),
        "employeeName": row.employee_name,
        "createdAt": row.created_at.isoformat(),
        "status": row.status.value,
        "notes": row.notes,
        "carriedExpenseCount": row.carried_expense_count,
        "expenseItems": [item.to_dict() for item in row.expense_items],
        "closedAt": row.closed_at.isoformat() if row.closed_at else None,
    }
    for name in MONEY_FIELDS + ("variance",):
        data[_CAMEL_KEYS[name]] = str(getattr(row, name))
    return data


def _decimal_or_zero(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return ZERO
    return result if result.is_finite() else ZERO


def _expense_items_from(raw: Any) -> tuple[ExpenseItem, ...]:
    if not isinstance(raw, list):
        return ()
    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        amount = entry.get("amount")
        description = entry.get("description", "")
        if amount is None or isinstance(amount, bool) or not isinstance(description, str):
            continue
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            continue
        if not value.is_finite():
            continue
        items.append(ExpenseItem(amount=value, description=description))
    return tuple(items)


def _carried_count_from(raw: Any, item_count: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        return 0
    return min(raw, item_count)


def _datetime_or_none(raw: Any) -> datetime | None:
    if not raw:
        return None
    return datetime.fromisoformat(str(raw))


def row_from_dict(data: dict[str, Any]) -> ClosureRow:
    """
    Rebuild a row from its stored form, normalizing what older writers left.

    Missing money fields load as 0, malformed expense items are dropped and
    the carried count is clamped into ``[0, len(items)]``.
    """
    row_id = UUID(str(data["id"]))
    created_at = _datetime_or_none(data.get("createdAt"))
    if created_at is None:
        raise ValueError(f"row {row_id} has no createdAt")

    items = _expense_items_from(data.get("expenseItems"))
    money = {
        name: _decimal_or_zero(data.get(_CAMEL_KEYS[name]))
        for name in MONEY_FIELDS + ("variance",)
    }
    status_raw = data.get("status", RowStatus.ACTIVE.value)
    status = RowStatus(status_raw) if status_raw in ("active", "closed") else RowStatus.ACTIVE
    employee = data.get("employeeName")
    notes = data.get("notes")

    return ClosureRow(
        id=row_id,
        employee_name=employee if isinstance(employee, str) else "",
        created_at=created_at,
        expense_items=items,
        carried_expense_count=_carried_count_from(
            data.get("carriedExpenseCount"), len(items)
        ),
        status=status,
        notes=notes if isinstance(notes, str) else "",
        closed_at=_datetime_or_none(data.get("closedAt")),
        **money,
    )
