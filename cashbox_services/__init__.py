"""
Cashbox services: stateful orchestration over the kernel.

- ShiftLifecycleController: edits, close grace window, carry-over
- DebouncedWriter: clock-driven write coalescing
- ClosedShiftHistory: cached pager over archived rows
"""

from cashbox_services._lifecycle_types import (
    CloseCountdown,
    ClosedShift,
    CloseRequest,
    FieldUpdate,
    ShiftState,
    TickResult,
    VarianceReport,
)
from cashbox_services.closed_history import (
    ClosedShiftHistory,
    FilterPreset,
    filter_closed,
)
from cashbox_services.debounce import DebouncedWriter
from cashbox_services.shift_lifecycle import (
    NET_CARRY_DESCRIPTION,
    ShiftLifecycleController,
    carry_over_for,
)

__all__ = [
    "CloseCountdown",
    "ClosedShift",
    "CloseRequest",
    "ClosedShiftHistory",
    "DebouncedWriter",
    "FieldUpdate",
    "FilterPreset",
    "NET_CARRY_DESCRIPTION",
    "ShiftLifecycleController",
    "ShiftState",
    "TickResult",
    "VarianceReport",
    "carry_over_for",
    "filter_closed",
]
