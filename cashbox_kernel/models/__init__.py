"""ORM models for the cashbox kernel."""

from cashbox_kernel.models.closed_shift import ClosedShiftRecord
from cashbox_kernel.models.kv_entry import KeyValueEntry

__all__ = [
    "ClosedShiftRecord",
    "KeyValueEntry",
]
