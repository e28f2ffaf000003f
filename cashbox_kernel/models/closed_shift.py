"""
Module: cashbox_kernel.models.closed_shift
Responsibility: ORM persistence for archived (closed) shifts, the remote tier
    of the row store.
Architecture position: Kernel > Models.  May import from db/ and domain/rows.

Invariants enforced:
    - (branch, row_id) is unique: a row is archived at most once per branch,
      and re-archiving overwrites.
    - Money columns are Numeric(18, 2); expense amounts inside the JSON
      column are stored as decimal strings.
    - closed_at is never NULL for an archived shift.

Failure modes:
    - IntegrityError on a duplicate (branch, row_id) insert.  ArchiveStore
      upserts instead of inserting blindly.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cashbox_kernel.db.base import Base, UUIDString
from cashbox_kernel.domain.rows import (
    MONEY_FIELDS,
    ClosureRow,
    ExpenseItem,
    RowStatus,
)


class ClosedShiftRecord(Base):
    """
    One archived shift.

    Contract:
        Rows enter this table only through ArchiveStore.put(), which the
        lifecycle controller calls at finalization.  Closed rows are not
        edited afterwards; the only other writes are privileged deletes.

    Guarantees:
        - to_domain() returns a ClosureRow with status CLOSED.
    """

    __tablename__ = "closed_shifts"

    __table_args__ = (
        UniqueConstraint("branch", "row_id", name="uq_closed_shift_branch_row"),
        Index("idx_closed_shift_branch_closed_at", "branch", "closed_at"),
    )

    branch: Mapped[str] = mapped_column(String(50), nullable=False)
    row_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    cash: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    sent_to_treasury: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    expense_compensation: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    expenses: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    mada: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    visa: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    mastercard: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    bank_transfer: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    program_balance_cash: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    program_balance_bank: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    variance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    carried_expense_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expense_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    closed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ClosedShiftRecord {self.branch}/{self.row_id} closed_at={self.closed_at}>"

    def apply(self, row: ClosureRow) -> None:
        """Copy every field of ``row`` onto this record."""
        self.row_id = row.id
        self.employee_name = row.employee_name
        for name in MONEY_FIELDS + ("variance",):
            setattr(self, name, getattr(row, name))
        self.carried_expense_count = row.carried_expense_count
        self.expense_items = [item.to_dict() for item in row.expense_items]
        self.notes = row.notes
        self.created_at = row.created_at
        self.closed_at = row.closed_at

    def to_domain(self) -> ClosureRow:
        money = {
            name: Decimal(str(getattr(self, name)))
            for name in MONEY_FIELDS + ("variance",)
        }
        items = tuple(
            ExpenseItem(
                amount=Decimal(str(entry["amount"])),
                description=entry.get("description", ""),
            )
            for entry in (self.expense_items or [])
        )
        return ClosureRow(
            id=self.row_id,
            employee_name=self.employee_name,
            created_at=self.created_at,
            carried_expense_count=self.carried_expense_count,
            expense_items=items,
            status=RowStatus.CLOSED,
            notes=self.notes or "",
            closed_at=self.closed_at,
            **money,
        )
