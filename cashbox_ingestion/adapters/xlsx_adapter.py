"""
XLSX grid adapter for bank transaction exports.

Reads the first worksheet with openpyxl in read-only, values-only mode
(``data_only=True`` so formula cells yield their cached result).  Text cells
keep their literal text in ``SheetCell.display``; numeric and date cells keep
only their typed value.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any

import openpyxl

from cashbox_ingestion.adapters.base import SheetCell, SheetGrid


def _to_cell(value: Any) -> SheetCell:
    if value is None:
        return SheetCell()
    if isinstance(value, str):
        return SheetCell(value=value, display=value)
    return SheetCell(value=value)


class XlsxGridAdapter:
    """
    Read .xlsx bytes into a SheetGrid.

    Trailing empty cells are dropped from each row; fully empty rows are
    kept so row indices match the sheet.
    """

    def __init__(self, max_rows: int = 100_000):
        self.max_rows = max_rows

    def read(self, data: bytes) -> SheetGrid:
        wb = openpyxl.load_workbook(BytesIO(data), read_only=True, data_only=True)
        try:
            if not wb.worksheets:
                return SheetGrid()
            sheet = wb.worksheets[0]
            rows = []
            for values in sheet.iter_rows(max_row=self.max_rows, values_only=True):
                cells = [_to_cell(v) for v in values]
                while cells and cells[-1].is_empty:
                    cells.pop()
                rows.append(tuple(cells))
            while rows and not rows[-1]:
                rows.pop()
            return SheetGrid(rows=tuple(rows))
        finally:
            wb.close()
