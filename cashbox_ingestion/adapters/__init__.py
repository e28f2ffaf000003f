"""Spreadsheet adapters: bytes -> SheetGrid (first worksheet)."""

from cashbox_ingestion.adapters.base import GridAdapter, SheetCell, SheetGrid
from cashbox_ingestion.adapters.csv_adapter import CsvGridAdapter
from cashbox_ingestion.adapters.xlsx_adapter import XlsxGridAdapter

ZIP_MAGIC = b"PK\x03\x04"


def get_adapter(data: bytes, filename: str | None = None) -> GridAdapter:
    """Pick the adapter for ``data``: ZIP container means XLSX, else CSV."""
    if data[:4] == ZIP_MAGIC:
        return XlsxGridAdapter()
    if filename and filename.lower().endswith((".xlsx", ".xlsm")):
        return XlsxGridAdapter()
    return CsvGridAdapter()


def load_grid(data: bytes, filename: str | None = None) -> SheetGrid:
    """Decode spreadsheet bytes with the matching adapter."""
    if not data:
        return SheetGrid()
    return get_adapter(data, filename).read(data)


__all__ = [
    "CsvGridAdapter",
    "GridAdapter",
    "SheetCell",
    "SheetGrid",
    "XlsxGridAdapter",
    "get_adapter",
    "load_grid",
]
