"""
Typed Exception Hierarchy for the Cashbox Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A cash-drawer close touches two storage tiers and a countdown. Callers (the
presentation layer, the CLI, tests) must react differently to "the row is not
balanced enough to close" and "the archive is unreachable". Every error here:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (row_id, branch, amounts)

Example:
    try:
        controller.tick()
    except ShiftCloseFailedError as e:
        notify(f"Close of {e.row_id} not completed: {e.reason}")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CashboxKernelError (base)
    |
    +-- RowError
    |   +-- RowNotFoundError
    |   +-- RowClosedError
    |   +-- InvalidRowFieldError
    |
    +-- ExpenseError
    |   +-- CarriedItemLockedError
    |   +-- CarriedItemIndexError
    |   +-- ExpenseDescriptionRequiredError
    |
    +-- LifecycleError
    |   +-- CloseNotAllowedError
    |   +-- ClosePendingError
    |   +-- NoPendingCloseError
    |   +-- CloseInProgressError
    |   +-- ShiftCloseFailedError
    |   +-- SuccessorRowError
    |
    +-- StorageError
    |   +-- ArchiveWriteError
    |   +-- ArchiveReadError
    |   +-- InvalidCursorError
    |
    +-- PrivilegeError
    |   +-- PrivilegedActionDeniedError
    |
    +-- StatementImportError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                         | When Raised
-----------|------------------------------|------------------------------------------
Row        | ROW_NOT_FOUND                | Row id unknown in the current branch
           | ROW_CLOSED                   | Edit attempted on an archived row
           | INVALID_ROW_FIELD            | Field is not user-editable
-----------|------------------------------|------------------------------------------
Expense    | CARRIED_ITEM_LOCKED          | Carried-over item modified without privilege
           | EXPENSE_DESCRIPTION_REQUIRED | Expense line with amount but no description
           | CARRIED_ITEM_INDEX_INVALID   | No carried item at the given position
-----------|------------------------------|------------------------------------------
Lifecycle  | CLOSE_NOT_ALLOWED            | Cash / program balances not entered
           | CLOSE_PENDING                | Another row is already in its grace window
           | NO_PENDING_CLOSE             | Undo without a pending close
           | CLOSE_IN_PROGRESS            | Finalization already running
           | SHIFT_CLOSE_FAILED           | Archive write failed; row stays active
           | SUCCESSOR_ROW_FAILED         | Shift archived but the next row was not created
-----------|------------------------------|------------------------------------------
Storage    | ARCHIVE_WRITE_FAILED         | Remote tier rejected a write/delete
           | ARCHIVE_READ_FAILED          | Remote tier query failed
           | INVALID_CURSOR               | Pagination cursor cannot be decoded
-----------|------------------------------|------------------------------------------
Privilege  | PRIVILEGED_ACTION_DENIED     | Admin code missing or wrong
-----------|------------------------------|------------------------------------------
Import     | STATEMENT_IMPORT_FAILED      | Applying a ParseResult that carries an error

Parser failures are NOT exceptions: the statement parser returns them as data
(ParseResult.error) so a bad upload never interrupts an editing session.
"""

from decimal import Decimal


class CashboxKernelError(Exception):
    """
    Base exception for all cashbox kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CASHBOX_KERNEL_ERROR"


# Row-related exceptions


class RowError(CashboxKernelError):
    """Base exception for closure-row errors."""

    code: str = "ROW_ERROR"


class RowNotFoundError(RowError):
    """Row with given id does not exist in the branch."""

    code: str = "ROW_NOT_FOUND"

    def __init__(self, row_id: str, branch: str):
        self.row_id = row_id
        self.branch = branch
        super().__init__(f"Row not found: {row_id} (branch: {branch})")


class RowClosedError(RowError):
    """Closed rows are immutable."""

    code: str = "ROW_CLOSED"

    def __init__(self, row_id: str):
        self.row_id = row_id
        super().__init__(f"Row {row_id} is closed and cannot be modified")


class InvalidRowFieldError(RowError):
    """Field name is not one of the user-editable fields."""

    code: str = "INVALID_ROW_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Field is not editable: {field_name}")


# Expense-item exceptions


class ExpenseError(CashboxKernelError):
    """Base exception for expense-item errors."""

    code: str = "EXPENSE_ERROR"


class CarriedItemLockedError(ExpenseError):
    """Items carried over from the previous shift cannot be edited or dropped."""

    code: str = "CARRIED_ITEM_LOCKED"

    def __init__(self, row_id: str, item_index: int):
        self.row_id = row_id
        self.item_index = item_index
        super().__init__(
            f"Expense item {item_index} of row {row_id} was carried over "
            f"and is locked"
        )


class CarriedItemIndexError(ExpenseError):
    """No carried expense line exists at the requested position."""

    code: str = "CARRIED_ITEM_INDEX_INVALID"

    def __init__(self, row_id: str, item_index: int, carried_count: int):
        self.row_id = row_id
        self.item_index = item_index
        self.carried_count = carried_count
        super().__init__(
            f"Row {row_id} has {carried_count} carried expense items; "
            f"index {item_index} is out of range"
        )


class ExpenseDescriptionRequiredError(ExpenseError):
    """An expense line with a positive amount needs a description."""

    code: str = "EXPENSE_DESCRIPTION_REQUIRED"

    def __init__(self, row_id: str, item_index: int, amount: Decimal):
        self.row_id = row_id
        self.item_index = item_index
        self.amount = amount
        super().__init__(
            f"Expense item {item_index} of row {row_id} "
            f"(amount {amount}) has no description"
        )


# Lifecycle exceptions


class LifecycleError(CashboxKernelError):
    """Base exception for shift lifecycle errors."""

    code: str = "LIFECYCLE_ERROR"


class CloseNotAllowedError(LifecycleError):
    """Close preconditions (cash and program balances entered) not met."""

    code: str = "CLOSE_NOT_ALLOWED"

    def __init__(self, row_id: str, missing: tuple[str, ...]):
        self.row_id = row_id
        self.missing = missing
        super().__init__(
            f"Row {row_id} cannot be closed; required values missing: "
            f"{', '.join(missing)}"
        )


class ClosePendingError(LifecycleError):
    """Another row of the branch is already inside its grace window."""

    code: str = "CLOSE_PENDING"

    def __init__(self, pending_row_id: str, requested_row_id: str):
        self.pending_row_id = pending_row_id
        self.requested_row_id = requested_row_id
        super().__init__(
            f"Row {pending_row_id} is already pending close; "
            f"cannot start closing {requested_row_id}"
        )


class NoPendingCloseError(LifecycleError):
    """Undo requested while no close is pending."""

    code: str = "NO_PENDING_CLOSE"

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"No close is pending in branch {branch}")


class CloseInProgressError(LifecycleError):
    """A finalization for the branch is already running."""

    code: str = "CLOSE_IN_PROGRESS"

    def __init__(self, row_id: str):
        self.row_id = row_id
        super().__init__(f"Close of row {row_id} is already in progress")


class ShiftCloseFailedError(LifecycleError):
    """Finalization aborted; the row remains active and nothing was archived."""

    code: str = "SHIFT_CLOSE_FAILED"

    def __init__(self, row_id: str, branch: str, reason: str):
        self.row_id = row_id
        self.branch = branch
        self.reason = reason
        super().__init__(
            f"Close of row {row_id} (branch: {branch}) not completed: {reason}"
        )



class SuccessorRowError(LifecycleError):
    """
    The shift was archived but its successor row could not be created.

    ``carry`` holds the expenses the successor should have inherited; the
    controller keeps it and seeds the next row it opens for the branch.
    """

    code: str = "SUCCESSOR_ROW_FAILED"

    def __init__(self, closed_row_id: str, branch: str, carry, reason: str):
        self.closed_row_id = closed_row_id
        self.branch = branch
        self.carry = carry
        self.reason = reason
        super().__init__(
            f"Row {closed_row_id} (branch: {branch}) was archived but the next "
            f"shift could not be opened: {reason}"
        )


# Storage exceptions


class StorageError(CashboxKernelError):
    """Base exception for storage-tier errors."""

    code: str = "STORAGE_ERROR"


class ArchiveWriteError(StorageError):
    """The remote (archive) tier rejected a write or delete."""

    code: str = "ARCHIVE_WRITE_FAILED"

    def __init__(self, branch: str, row_id: str | None, reason: str):
        self.branch = branch
        self.row_id = row_id
        self.reason = reason
        target = row_id if row_id is not None else "<all>"
        super().__init__(
            f"Archive write failed for {target} (branch: {branch}): {reason}"
        )


class ArchiveReadError(StorageError):
    """The remote (archive) tier query failed."""

    code: str = "ARCHIVE_READ_FAILED"

    def __init__(self, branch: str, reason: str):
        self.branch = branch
        self.reason = reason
        super().__init__(f"Archive read failed (branch: {branch}): {reason}")


class InvalidCursorError(StorageError):
    """Pagination cursor is not one this store issued."""

    code: str = "INVALID_CURSOR"

    def __init__(self, cursor: str):
        self.cursor = cursor
        super().__init__(f"Invalid pagination cursor: {cursor!r}")


# Privilege exceptions


class PrivilegeError(CashboxKernelError):
    """Base exception for privileged-operation errors."""

    code: str = "PRIVILEGE_ERROR"


class PrivilegedActionDeniedError(PrivilegeError):
    """Admin code missing, wrong, or not configured."""

    code: str = "PRIVILEGED_ACTION_DENIED"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Privileged action denied: {action}")


# Statement import


class StatementImportError(CashboxKernelError):
    """A failed statement parse cannot be applied to a row."""

    code: str = "STATEMENT_IMPORT_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Statement cannot be imported: {reason}")
