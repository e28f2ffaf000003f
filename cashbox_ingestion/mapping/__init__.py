"""Header and column-role discovery for bank exports."""

from cashbox_ingestion.mapping.schema import (
    ColumnRole,
    ColumnRoles,
    discover_columns,
    find_header_row,
    is_header_row,
)

__all__ = [
    "ColumnRole",
    "ColumnRoles",
    "discover_columns",
    "find_header_row",
    "is_header_row",
]
