"""
cashbox_services.shift_lifecycle -- Shift lifecycle controller.

Responsibility:
    Owns the in-memory snapshot of a branch's active rows and drives each
    row through ACTIVE -> PENDING_CLOSE -> CLOSED.  Field edits apply to the
    snapshot at once and reach the local tier through a debounced writer.
    A close request opens a cancellable grace window; when it expires,
    tick() archives the row and opens the next shift with any unresolved
    expenses carried over.

Architecture position:
    Services -- stateful orchestration over the kernel.  Composes RowStore,
    DebouncedWriter and the variance calculator.  Time comes only from the
    injected Clock; nothing here sleeps or starts threads.

Invariants enforced:
    - At most one row per branch is pending close, and at most one
      finalization runs at a time.
    - The archive write completes before the row leaves the local tier.  A
      failed archive write leaves the row ACTIVE in snapshot and local tier.
    - expense_compensation never exceeds expenses, and expenses never drop
      below the carried-item total.
    - ``variance`` is recomputed on every change.

Failure modes:
    - RowNotFoundError / InvalidRowFieldError on bad edit targets.
    - CloseNotAllowedError when cash or a program balance is not entered.
    - ClosePendingError when another row is already in its grace window.
    - ShiftCloseFailedError from tick() when archiving fails.
    - SuccessorRowError from tick() when the shift was archived but the
      next row could not be written; the next load() opens it with the
      carried expenses.
    - PrivilegedActionDeniedError on a wrong or unconfigured admin code.

Audit relevance:
    Every transition is logged (shift_close_requested, shift_close_undone,
    shift_closed, shift_close_failed) with branch and row id bound through
    LogContext.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from cashbox_kernel.db.types import ZERO, round_money
from cashbox_kernel.domain.clock import Clock
from cashbox_kernel.domain.normalize import coerce_amount
from cashbox_kernel.domain.rows import (
    EDITABLE_FIELDS,
    MONEY_FIELDS,
    Branch,
    CarryOver,
    ClosureRow,
    ExpenseItem,
    RowStatus,
)
from cashbox_kernel.domain.variance import (
    DEFAULT_SWAP_TOLERANCE,
    bank_variance,
    carried_expense_total,
    cash_variance,
    detect_variance_swap,
    total_variance,
)
from cashbox_kernel.exceptions import (
    ArchiveWriteError,
    CarriedItemIndexError,
    CarriedItemLockedError,
    CloseInProgressError,
    CloseNotAllowedError,
    ClosePendingError,
    ExpenseDescriptionRequiredError,
    InvalidRowFieldError,
    NoPendingCloseError,
    PrivilegedActionDeniedError,
    RowNotFoundError,
    ShiftCloseFailedError,
    StatementImportError,
    SuccessorRowError,
)
from cashbox_kernel.logging_config import LogContext, get_logger
from cashbox_kernel.services.row_store import RowStore

from cashbox_ingestion.domain.types import ParseResult, PaymentMethod

from cashbox_services._lifecycle_types import (
    CloseCountdown,
    ClosedShift,
    CloseRequest,
    FieldUpdate,
    ShiftState,
    TickResult,
    VarianceReport,
)
from cashbox_services.debounce import DebouncedWriter

logger = get_logger("services.shift_lifecycle")

GRACE_PERIOD_SECONDS = 10
DEBOUNCE_SECONDS = 0.4

# Description of the single line carried forward when compensation was
# paid: "carried (net after compensation)".
NET_CARRY_DESCRIPTION = "مرحّل (صافي بعد التعويض)"

# Fields that must be positive before a shift may close.
CLOSE_REQUIRED_FIELDS: tuple[str, ...] = (
    "program_balance_cash",
    "program_balance_bank",
    "cash",
)

_STATEMENT_FIELDS: dict[PaymentMethod, str] = {
    PaymentMethod.MADA: "mada",
    PaymentMethod.VISA: "visa",
    PaymentMethod.MASTERCARD: "mastercard",
    PaymentMethod.BANK_TRANSFER: "bank_transfer",
}


def _deny_all(code: str | None) -> bool:
    return False


def carry_over_for(row: ClosureRow) -> CarryOver:
    """
    Expenses the next shift inherits from ``row``.

    With compensation paid, only the unreimbursed remainder carries over,
    as one line (or nothing when fully reimbursed).  Without compensation
    every expense line carries over unchanged.
    """
    if row.expense_compensation > ZERO:
        net = round_money(max(ZERO, row.expenses - row.expense_compensation))
        if net == ZERO:
            return CarryOver()
        return CarryOver(
            expenses=net,
            items=(ExpenseItem(amount=net, description=NET_CARRY_DESCRIPTION),),
        )
    items = tuple(row.expense_items)
    total = round_money(sum((item.amount for item in items), ZERO))
    return CarryOver(expenses=total, items=items)


@dataclass(frozen=True)
class _PendingClose:
    row_id: UUID
    deadline: datetime
    correlation_id: str


class ShiftLifecycleController:
    """
    Per-branch shift lifecycle state machine.

    Contract:
        Single-threaded.  The caller invokes tick() periodically (once a
        second); tick() is where debounced writes land and where an expired
        grace window is finalized.

    Guarantees:
        - rows reflects every edit immediately, before it is persisted.
        - undo_close() within the grace window has no persisted effect.

    Non-goals:
        - Does not render anything or read configuration; pass values in
          (or use from_config()).
    """

    def __init__(
        self,
        store: RowStore,
        clock: Clock,
        branch: Branch,
        employee_name: str,
        *,
        grace_period_seconds: float = GRACE_PERIOD_SECONDS,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        swap_tolerance: Decimal = DEFAULT_SWAP_TOLERANCE,
        admin_verifier: Callable[[str | None], bool] | None = None,
    ):
        self._store = store
        self._clock = clock
        self._branch = Branch(branch)
        self._employee_name = employee_name
        self._grace = timedelta(seconds=grace_period_seconds)
        self._swap_tolerance = Decimal(swap_tolerance)
        self._verify_admin = admin_verifier or _deny_all
        self._writer = DebouncedWriter(clock, debounce_seconds, self._flush_row)
        self._rows: dict[UUID, ClosureRow] = {}
        self._pending: _PendingClose | None = None
        self._finalizing = False
        self._now = clock.now()
        # Carry-over of a closed shift whose successor row was never written.
        self._unplaced: dict[Branch, tuple[str, CarryOver]] = {}

    @classmethod
    def from_config(
        cls,
        store: RowStore,
        clock: Clock,
        branch: Branch,
        employee_name: str,
        config,
    ) -> ShiftLifecycleController:
        """Build a controller from a cashbox_config.CashboxConfig."""
        return cls(
            store,
            clock,
            branch,
            employee_name,
            grace_period_seconds=config.grace_period_seconds,
            debounce_seconds=config.debounce_seconds,
            swap_tolerance=config.variance_swap_tolerance,
            admin_verifier=config.verify_admin_code,
        )

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    @property
    def branch(self) -> Branch:
        return self._branch

    @property
    def employee_name(self) -> str:
        return self._employee_name

    @property
    def now(self) -> datetime:
        """The live "now" as of the last tick or operation."""
        return self._now

    @property
    def rows(self) -> list[ClosureRow]:
        """Active rows, newest first."""
        return sorted(self._rows.values(), key=lambda r: r.created_at, reverse=True)

    def get_row(self, row_id: UUID) -> ClosureRow:
        row = self._rows.get(row_id)
        if row is None:
            raise RowNotFoundError(str(row_id), self._branch.value)
        return row

    def state_of(self, row_id: UUID) -> ShiftState:
        self.get_row(row_id)
        if self._pending is not None and self._pending.row_id == row_id:
            return ShiftState.PENDING_CLOSE
        return ShiftState.ACTIVE

    def is_pending_write(self, row_id: UUID) -> bool:
        return self._writer.is_pending(row_id)

    def load(self) -> list[ClosureRow]:
        """Discard in-memory state and reload the branch's active rows."""
        self._writer.cancel_all()
        self._pending = None
        self._now = self._clock.now()
        self._rows = {
            row.id: dataclasses.replace(row, variance=total_variance(row))
            for row in self._store.list_active(self._branch)
        }
        unplaced = self._unplaced.get(self._branch)
        if unplaced is not None:
            employee_name, carry = unplaced
            row = self._store.add(self._branch, employee_name, self._now, carry)
            del self._unplaced[self._branch]
            self._rows[row.id] = row
            logger.info(
                "successor_row_restored",
                extra={"branch": self._branch.value, "row_id": str(row.id)},
            )
        if not self._rows:
            row = self._store.add(self._branch, self._employee_name, self._now)
            self._rows[row.id] = row
        logger.info(
            "rows_loaded",
            extra={"branch": self._branch.value, "row_count": len(self._rows)},
        )
        return self.rows

    def switch_branch(self, branch: Branch) -> list[ClosureRow]:
        """Drop pending writes and any pending close, then load ``branch``."""
        if self._finalizing:
            raise CloseInProgressError(str(self._pending.row_id) if self._pending else "")
        previous = self._branch
        self._branch = Branch(branch)
        rows = self.load()
        logger.info(
            "branch_switched",
            extra={"from_branch": previous.value, "to_branch": self._branch.value},
        )
        return rows

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def _commit(self, row: ClosureRow, *, immediate: bool) -> ClosureRow:
        row = dataclasses.replace(row, variance=total_variance(row))
        self._rows[row.id] = row
        if immediate:
            self._writer.cancel(row.id)
            self._store.save_active(self._branch, row)
        else:
            self._writer.schedule(row.id)
        return row

    def _flush_row(self, row_id: UUID) -> None:
        row = self._rows.get(row_id)
        if row is not None:
            self._store.save_active(self._branch, row)

    def update_field(self, row_id: UUID, field: str, value: object) -> FieldUpdate:
        """
        Apply one edit to the snapshot and schedule its write.

        Money input that does not parse becomes 0.  Lowering expenses below
        the compensation lowers the compensation with it.
        """
        row = self.get_row(row_id)
        if field not in EDITABLE_FIELDS:
            raise InvalidRowFieldError(field)
        self._now = self._clock.now()

        if field not in MONEY_FIELDS:
            text = "" if value is None else str(value)
            updated = self._commit(
                dataclasses.replace(row, **{field: text}), immediate=False
            )
            return FieldUpdate(row=updated)

        amount = round_money(coerce_amount(value))
        clamped = False
        max_allowed = None
        min_allowed = None
        changes: dict[str, Decimal] = {}

        if field == "expenses":
            floor = carried_expense_total(row)
            if amount < floor:
                amount = floor
                clamped = True
                min_allowed = floor
            changes["expenses"] = amount
            if row.expense_compensation > amount:
                changes["expense_compensation"] = amount
        elif field == "expense_compensation":
            if amount < ZERO:
                amount = ZERO
                clamped = True
                min_allowed = ZERO
            if amount > row.expenses:
                amount = row.expenses
                clamped = True
                max_allowed = row.expenses
            changes["expense_compensation"] = amount
        else:
            changes[field] = amount

        updated = self._commit(dataclasses.replace(row, **changes), immediate=False)
        if clamped:
            logger.info(
                "row_value_clamped",
                extra={
                    "branch": self._branch.value,
                    "row_id": str(row_id),
                    "field": field,
                    "value": str(amount),
                },
            )
        return FieldUpdate(
            row=updated,
            clamped=clamped,
            max_allowed=max_allowed,
            min_allowed=min_allowed,
        )

    def set_expense_items(
        self, row_id: UUID, items: Sequence[ExpenseItem]
    ) -> ClosureRow:
        """
        Replace the row's expense lines and write at once.

        The carried lines must come back unchanged and first.  Blank lines
        (no amount, no description) are dropped.
        """
        row = self.get_row(row_id)
        carried = row.carried_items
        items = tuple(items)
        for index, item in enumerate(carried):
            if index >= len(items) or items[index] != item:
                raise CarriedItemLockedError(str(row_id), index)

        own: list[ExpenseItem] = []
        for offset, item in enumerate(items[len(carried):]):
            amount = round_money(coerce_amount(item.amount))
            description = (item.description or "").strip()
            if amount == ZERO and not description:
                continue
            if amount > ZERO and not description:
                raise ExpenseDescriptionRequiredError(
                    str(row_id), len(carried) + offset, amount
                )
            own.append(ExpenseItem(amount=amount, description=description))

        all_items = carried + tuple(own)
        expenses = round_money(sum((item.amount for item in all_items), ZERO))
        updated = self._commit(
            dataclasses.replace(
                row,
                expense_items=all_items,
                expenses=expenses,
                expense_compensation=min(row.expense_compensation, expenses),
            ),
            immediate=True,
        )
        logger.info(
            "expense_items_updated",
            extra={
                "branch": self._branch.value,
                "row_id": str(row_id),
                "item_count": len(all_items),
                "expenses": str(expenses),
            },
        )
        return updated

    def clear_expenses(self, row_id: UUID) -> ClosureRow:
        """Drop the row's own expense lines; carried lines stay."""
        row = self.get_row(row_id)
        expenses = carried_expense_total(row)
        return self._commit(
            dataclasses.replace(
                row,
                expense_items=row.carried_items,
                expenses=expenses,
                expense_compensation=min(row.expense_compensation, expenses),
            ),
            immediate=True,
        )

    def remove_carried_item(
        self, row_id: UUID, index: int, admin_code: str | None
    ) -> ClosureRow:
        """Privileged removal of one carried (locked) expense line."""
        self._require_privilege("remove_carried_item", admin_code)
        row = self.get_row(row_id)
        if not 0 <= index < row.carried_expense_count:
            raise CarriedItemIndexError(str(row_id), index, row.carried_expense_count)
        removed = row.expense_items[index]
        items = row.expense_items[:index] + row.expense_items[index + 1:]
        carried_count = row.carried_expense_count - 1
        carried_total = round_money(
            sum((item.amount for item in items[:carried_count]), ZERO)
        )
        expenses = max(carried_total, round_money(row.expenses - removed.amount))
        updated = self._commit(
            dataclasses.replace(
                row,
                expense_items=items,
                carried_expense_count=carried_count,
                expenses=expenses,
                expense_compensation=min(row.expense_compensation, expenses),
            ),
            immediate=True,
        )
        logger.info(
            "carried_item_removed",
            extra={
                "branch": self._branch.value,
                "row_id": str(row_id),
                "amount": str(removed.amount),
            },
        )
        return updated

    def clear_row(self, row_id: UUID) -> ClosureRow:
        """Zero every money input.  Carried expense lines are kept."""
        row = self.get_row(row_id)
        zeroed = {name: ZERO for name in MONEY_FIELDS}
        zeroed["expenses"] = carried_expense_total(row)
        updated = self._commit(
            dataclasses.replace(row, expense_items=row.carried_items, **zeroed),
            immediate=True,
        )
        logger.info(
            "row_cleared",
            extra={"branch": self._branch.value, "row_id": str(row_id)},
        )
        return updated

    def apply_statement(
        self, result: ParseResult, row_id: UUID | None = None
    ) -> ClosureRow:
        """
        Fill the card and transfer fields from a parsed bank statement.

        Cash is never touched.  The employee name is adopted only when the
        statement attributes every accepted row to one person.
        """
        if result.error is not None:
            raise StatementImportError(result.error)
        if row_id is None:
            if not self._rows:
                raise RowNotFoundError("<active>", self._branch.value)
            row = self.rows[0]
        else:
            row = self.get_row(row_id)

        changes: dict[str, object] = {
            name: round_money(result.sums.get(method, ZERO))
            for method, name in _STATEMENT_FIELDS.items()
        }
        if result.employee_name and not result.has_multiple_employees:
            changes["employee_name"] = result.employee_name

        updated = self._commit(dataclasses.replace(row, **changes), immediate=True)
        logger.info(
            "statement_applied",
            extra={
                "branch": self._branch.value,
                "row_id": str(row.id),
                "sums": {m.value: str(v) for m, v in result.sums.items()},
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Close lifecycle
    # ------------------------------------------------------------------

    def _countdown_for(self, pending: _PendingClose, now: datetime) -> CloseCountdown:
        remaining = (pending.deadline - now).total_seconds()
        return CloseCountdown(
            row_id=pending.row_id,
            deadline=pending.deadline,
            seconds_left=max(0, math.ceil(remaining)),
        )

    def countdown(self) -> CloseCountdown | None:
        if self._pending is None:
            return None
        return self._countdown_for(self._pending, self._now)

    def request_close(
        self, row_id: UUID, confirm_variance: bool = False
    ) -> CloseRequest:
        """
        Start the grace window for ``row_id``.

        A row with a non-zero cash or bank variance is only moved to
        PENDING_CLOSE when ``confirm_variance`` is True; otherwise the
        variances are returned for the caller to show.
        """
        if self._finalizing:
            raise CloseInProgressError(str(row_id))
        row = self.get_row(row_id)
        self._now = self._clock.now()
        cash_var = cash_variance(row)
        bank_var = bank_variance(row)

        if self._pending is not None:
            if self._pending.row_id != row_id:
                raise ClosePendingError(str(self._pending.row_id), str(row_id))
            return CloseRequest(
                row_id=row_id,
                needs_confirmation=False,
                cash_variance=cash_var,
                bank_variance=bank_var,
                countdown=self.countdown(),
            )

        missing = tuple(
            name for name in CLOSE_REQUIRED_FIELDS if getattr(row, name) <= ZERO
        )
        if missing:
            raise CloseNotAllowedError(str(row_id), missing)

        if (cash_var != ZERO or bank_var != ZERO) and not confirm_variance:
            return CloseRequest(
                row_id=row_id,
                needs_confirmation=True,
                cash_variance=cash_var,
                bank_variance=bank_var,
            )

        self._pending = _PendingClose(
            row_id=row_id,
            deadline=self._now + self._grace,
            correlation_id=str(uuid4()),
        )
        with LogContext.bind(
            correlation_id=self._pending.correlation_id,
            branch=self._branch.value,
            row_id=str(row_id),
        ):
            logger.info(
                "shift_close_requested",
                extra={
                    "deadline": self._pending.deadline,
                    "cash_variance": str(cash_var),
                    "bank_variance": str(bank_var),
                    "confirmed_variance": confirm_variance,
                },
            )
        return CloseRequest(
            row_id=row_id,
            needs_confirmation=False,
            cash_variance=cash_var,
            bank_variance=bank_var,
            countdown=self.countdown(),
        )

    def undo_close(self) -> UUID:
        """Cancel the grace window; returns the row id that stays ACTIVE."""
        if self._pending is None:
            raise NoPendingCloseError(self._branch.value)
        if self._finalizing:
            raise CloseInProgressError(str(self._pending.row_id))
        pending = self._pending
        row_id = pending.row_id
        self._pending = None
        with LogContext.bind(
            correlation_id=pending.correlation_id,
            branch=self._branch.value,
            row_id=str(row_id),
        ):
            logger.info("shift_close_undone")
        return row_id

    def tick(self) -> TickResult:
        """
        Advance the live clock: flush due writes, finalize an expired close.

        Raises:
            ShiftCloseFailedError: the archive write failed; the row is
                still ACTIVE and no close is pending any more.
            SuccessorRowError: the row was archived but its successor
                could not be added; the next load() adds it.
        """
        now = self._clock.now()
        self._now = now
        flushed = tuple(self._writer.flush_due())
        closed = None
        if (
            self._pending is not None
            and not self._finalizing
            and now >= self._pending.deadline
        ):
            closed = self._finalize(self._pending, now)
        return TickResult(
            now=now,
            flushed=flushed,
            countdown=self.countdown(),
            closed=closed,
        )

    def _finalize(self, pending: _PendingClose, now: datetime) -> ClosedShift:
        self._finalizing = True
        row_id = pending.row_id
        try:
            with LogContext.bind(
                correlation_id=pending.correlation_id,
                branch=self._branch.value,
                row_id=str(row_id),
            ):
                row = self._rows.get(row_id)
                if row is None:
                    self._pending = None
                    raise ShiftCloseFailedError(
                        str(row_id), self._branch.value, "row no longer exists"
                    )

                # Outstanding edits reach the local tier before the move.
                self._writer.cancel(row_id)
                self._store.save_active(self._branch, row)

                closed = dataclasses.replace(
                    row,
                    variance=total_variance(row),
                    status=RowStatus.CLOSED,
                    closed_at=now,
                )
                try:
                    self._store.close(self._branch, closed)
                except ArchiveWriteError as exc:
                    self._pending = None
                    logger.error(
                        "shift_close_failed",
                        extra={"reason": exc.reason},
                    )
                    raise ShiftCloseFailedError(
                        str(row_id), self._branch.value, exc.reason
                    ) from exc

                # Archived: the row is gone from both snapshot and local tier.
                del self._rows[row_id]
                self._pending = None

                carry = carry_over_for(row)
                employee_name = row.employee_name or self._employee_name
                try:
                    successor = self._store.add(self._branch, employee_name, now, carry)
                except Exception as exc:
                    self._unplaced[self._branch] = (employee_name, carry)
                    logger.error(
                        "successor_row_failed",
                        extra={
                            "carried_expenses": str(carry.expenses),
                            "reason": str(exc),
                        },
                    )
                    raise SuccessorRowError(
                        str(row_id), self._branch.value, carry, str(exc)
                    ) from exc
                self._rows[successor.id] = successor

                logger.info(
                    "shift_closed",
                    extra={
                        "successor_row_id": str(successor.id),
                        "variance": str(closed.variance),
                        "carried_expense_count": successor.carried_expense_count,
                        "carried_expenses": str(successor.expenses),
                    },
                )
                return ClosedShift(closed=closed, successor=successor)
        finally:
            self._finalizing = False

    # ------------------------------------------------------------------
    # Privileged operations
    # ------------------------------------------------------------------

    def _require_privilege(self, action: str, admin_code: str | None) -> None:
        if not self._verify_admin(admin_code):
            logger.warning(
                "privileged_action_denied",
                extra={"branch": self._branch.value, "action": action},
            )
            raise PrivilegedActionDeniedError(action)

    def delete_row(
        self, row_id: UUID, is_closed: bool, admin_code: str | None
    ) -> bool:
        """Delete an active row (local tier) or a closed row (archive)."""
        self._require_privilege("delete_row", admin_code)
        if not is_closed:
            if self._finalizing:
                raise CloseInProgressError(str(row_id))
            if self._pending is not None and self._pending.row_id == row_id:
                self._pending = None
            self._writer.cancel(row_id)
            self._rows.pop(row_id, None)
        removed = self._store.delete(self._branch, row_id, is_closed)
        logger.info(
            "row_deleted",
            extra={
                "branch": self._branch.value,
                "row_id": str(row_id),
                "is_closed": is_closed,
                "removed": removed,
            },
        )
        return removed

    def delete_all_closed(self, admin_code: str | None) -> int:
        self._require_privilege("delete_all_closed", admin_code)
        return self._store.delete_all_closed(self._branch)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def variance_report(self, row_id: UUID) -> VarianceReport:
        row = self.get_row(row_id)
        return VarianceReport(
            row_id=row_id,
            cash_variance=cash_variance(row),
            bank_variance=bank_variance(row),
            total_variance=total_variance(row),
            swap_hint=detect_variance_swap(row, self._swap_tolerance),
        )
