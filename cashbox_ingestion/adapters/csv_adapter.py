"""
CSV grid adapter for bank exports saved as text.

Decodes utf-8 (BOM stripped via utf-8-sig), falling back to cp1256 for
exports written by Arabic Windows installs.  The delimiter is sniffed among
comma, semicolon, tab and pipe.  Every cell is text, so every cell carries
its display text.
"""

from __future__ import annotations

import csv
import io

from cashbox_ingestion.adapters.base import SheetCell, SheetGrid

_ENCODINGS = ("utf-8-sig", "cp1256")
_DELIMITERS = ",;\t|"


def _decode(data: bytes) -> str:
    for encoding in _ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace")


def _sniff_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=_DELIMITERS).delimiter
    except csv.Error:
        return ","


class CsvGridAdapter:
    """Read CSV bytes into a SheetGrid of text cells."""

    def __init__(self, delimiter: str | None = None):
        self.delimiter = delimiter

    def read(self, data: bytes) -> SheetGrid:
        text = _decode(data)
        if not text.strip():
            return SheetGrid()
        delimiter = self.delimiter or _sniff_delimiter(text[:4096])
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
        rows = []
        for record in reader:
            rows.append(tuple(SheetCell(value=v, display=v) for v in record))
        return SheetGrid(rows=tuple(rows))
