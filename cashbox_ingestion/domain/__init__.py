"""Ingestion domain types."""

from cashbox_ingestion.domain.types import (
    MULTIPLE_EMPLOYEES,
    NON_CASH_METHODS,
    ParseResult,
    PaymentMethod,
    TransactionDetail,
)

__all__ = [
    "MULTIPLE_EMPLOYEES",
    "NON_CASH_METHODS",
    "ParseResult",
    "PaymentMethod",
    "TransactionDetail",
]
