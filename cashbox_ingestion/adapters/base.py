"""
Grid adapter protocol and cell DTOs.

Contract:
    GridAdapter.read() turns raw spreadsheet bytes into a SheetGrid: a
    rectangular-ish tuple of rows of SheetCell, first worksheet only.

Architecture: cashbox_ingestion/adapters. Byte decoding only, no DB or
kernel service imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class SheetCell:
    """
    One spreadsheet cell.

    ``value`` is the raw typed value (str, int, float, datetime or None).
    ``display`` is the literal text when the cell is text-typed, else None.
    Bank exports often store amounts as text ("10.000"), and that text must
    win over any numeric coercion.
    """

    value: Any = None
    display: str | None = None

    @property
    def is_empty(self) -> bool:
        if self.value is None:
            return True
        return isinstance(self.value, str) and not self.value.strip()

    def text(self) -> str:
        """Display text when present, else the raw value as text."""
        if self.display is not None:
            return self.display
        if self.value is None:
            return ""
        return str(self.value)


EMPTY_CELL = SheetCell()


@dataclass(frozen=True)
class SheetGrid:
    """Rows of cells from the first worksheet."""

    rows: tuple[tuple[SheetCell, ...], ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def cell(self, row: int, col: int) -> SheetCell:
        if row < 0 or col < 0 or row >= len(self.rows):
            return EMPTY_CELL
        cells = self.rows[row]
        if col >= len(cells):
            return EMPTY_CELL
        return cells[col]

    def text_grid(self, max_rows: int | None = None, max_cols: int | None = None) -> list[list[str]]:
        """Text view of the grid, optionally bounded, for header discovery."""
        rows = self.rows if max_rows is None else self.rows[:max_rows]
        out = []
        for cells in rows:
            bounded = cells if max_cols is None else cells[:max_cols]
            out.append([cell.text() for cell in bounded])
        return out


@runtime_checkable
class GridAdapter(Protocol):
    """Protocol for decoding spreadsheet bytes into a SheetGrid."""

    def read(self, data: bytes) -> SheetGrid:
        ...
