"""
cashbox_services._lifecycle_types -- DTOs returned by the shift lifecycle
controller.

Responsibility:
    Frozen results for field edits, close requests, the grace-window
    countdown, ticks, finalized closes and variance reports.

Architecture position:
    Services.  Produced by ShiftLifecycleController, consumed by the
    presentation collaborator and tests.  No behaviour beyond derived
    properties.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Hashable
from uuid import UUID

from cashbox_kernel.domain.rows import ClosureRow
from cashbox_kernel.domain.variance import VarianceSwapHint


class ShiftState(str, Enum):
    """Lifecycle state of a row as seen by the controller."""
    ACTIVE = "active"
    PENDING_CLOSE = "pending_close"
    CLOSED = "closed"


@dataclass(frozen=True)
class FieldUpdate:
    """Result of one field edit.

    ``clamped`` is True when the entered value was adjusted: compensation
    above expenses (``max_allowed`` is the ceiling used) or expenses below
    the carried-item total (``min_allowed`` is the floor used).
    """
    row: ClosureRow
    clamped: bool = False
    max_allowed: Decimal | None = None
    min_allowed: Decimal | None = None


@dataclass(frozen=True)
class CloseCountdown:
    row_id: UUID
    deadline: datetime
    seconds_left: int


@dataclass(frozen=True)
class CloseRequest:
    """Outcome of request_close().

    ``needs_confirmation`` means nothing happened: the row has a non-zero
    variance and the caller must ask again with confirm_variance=True.
    """
    row_id: UUID
    needs_confirmation: bool
    cash_variance: Decimal
    bank_variance: Decimal
    countdown: CloseCountdown | None = None

    @property
    def state(self) -> ShiftState:
        if self.countdown is not None:
            return ShiftState.PENDING_CLOSE
        return ShiftState.ACTIVE


@dataclass(frozen=True)
class ClosedShift:
    """A finalized close: the archived row and the row that replaced it."""
    closed: ClosureRow
    successor: ClosureRow


@dataclass(frozen=True)
class TickResult:
    now: datetime
    flushed: tuple[Hashable, ...] = ()
    countdown: CloseCountdown | None = None
    closed: ClosedShift | None = None


@dataclass(frozen=True)
class VarianceReport:
    row_id: UUID
    cash_variance: Decimal
    bank_variance: Decimal
    total_variance: Decimal
    swap_hint: VarianceSwapHint | None = None

    @property
    def reconciled(self) -> bool:
        return self.cash_variance == 0 and self.bank_variance == 0
