"""Ingestion services."""

from cashbox_ingestion.services.statement_parser import (
    MAX_SINGLE_AMOUNT,
    StatementParser,
    parse_bank_statement,
)

__all__ = [
    "MAX_SINGLE_AMOUNT",
    "StatementParser",
    "parse_bank_statement",
]
