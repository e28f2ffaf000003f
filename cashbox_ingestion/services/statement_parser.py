"""
Statement parser: bank transaction export -> per-method totals.

Reads the first worksheet of an uploaded statement, discovers the header row
and column roles, and sums the inbound transactions recorded after a cutoff
instant per payment method.  Uses structured logging
(get_logger("ingestion.statement_parser")).

Failure policy: parse() never raises.  Malformed or empty input produces a
zero-valued ParseResult whose ``error`` describes the problem.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from cashbox_kernel.db.types import ZERO, round_money
from cashbox_kernel.domain.normalize import (
    normalize_header_cell,
    parse_amount,
    parse_date_cell,
    strip_marks,
)
from cashbox_kernel.logging_config import get_logger

from cashbox_ingestion.adapters import load_grid
from cashbox_ingestion.adapters.base import SheetCell, SheetGrid
from cashbox_ingestion.domain.types import (
    MULTIPLE_EMPLOYEES,
    NON_CASH_METHODS,
    ParseResult,
    PaymentMethod,
    TransactionDetail,
)
from cashbox_ingestion.mapping.schema import (
    HEADER_SCAN_COLUMNS,
    HEADER_SCAN_ROWS,
    ColumnRoles,
    discover_columns,
    find_header_row,
)

logger = get_logger("ingestion.statement_parser")

MAX_SINGLE_AMOUNT = Decimal("999999")

ERROR_EMPTY = "file contains no rows"
ERROR_HEADER_NOT_FOUND = "header not found"
ERROR_COLUMNS_PREFIX = "required columns not found: "

INBOUND_MARKERS = frozenset({"داخل", "in", "inbound", "incoming"})

TOTAL_WORDS: tuple[str, ...] = ("إجمالي", "اجمالي", "مجموع", "total", "subtotal")

# Exact labels first; see _FALLBACK_FRAGMENTS for partial matches.
METHOD_LABELS: dict[str, PaymentMethod] = {
    "مدى": PaymentMethod.MADA,
    "mada": PaymentMethod.MADA,
    "فيزا": PaymentMethod.VISA,
    "visa": PaymentMethod.VISA,
    "ماستر كارد": PaymentMethod.MASTERCARD,
    "ماستركارد": PaymentMethod.MASTERCARD,
    "mastercard": PaymentMethod.MASTERCARD,
    "master card": PaymentMethod.MASTERCARD,
    "تحويل بنكي": PaymentMethod.BANK_TRANSFER,
    "تحويل": PaymentMethod.BANK_TRANSFER,
    "bank transfer": PaymentMethod.BANK_TRANSFER,
    "transfer": PaymentMethod.BANK_TRANSFER,
    "نقدا": PaymentMethod.CASH,
    "نقداً": PaymentMethod.CASH,
    "كاش": PaymentMethod.CASH,
    "cash": PaymentMethod.CASH,
}

# Cheques and American Express are settled outside the drawer figures.
UNSUPPORTED_METHODS: tuple[str, ...] = (
    "شيك",
    "أمريكان إكسبريس",
    "امريكان اكسبريس",
    "american express",
    "amex",
    "cheque",
)

_FALLBACK_FRAGMENTS: tuple[tuple[str, PaymentMethod], ...] = (
    ("مدى", PaymentMethod.MADA),
    ("mada", PaymentMethod.MADA),
    ("ماستر", PaymentMethod.MASTERCARD),
    ("master", PaymentMethod.MASTERCARD),
    ("فيزا", PaymentMethod.VISA),
    ("visa", PaymentMethod.VISA),
    ("تحويل", PaymentMethod.BANK_TRANSFER),
    ("transfer", PaymentMethod.BANK_TRANSFER),
    ("نقد", PaymentMethod.CASH),
    ("cash", PaymentMethod.CASH),
)


def map_method(label: str) -> PaymentMethod | None:
    """Canonical payment method for a method-cell label, or None."""
    text = normalize_header_cell(label).lower()
    if not text:
        return None
    if any(word in text for word in UNSUPPORTED_METHODS):
        return None
    method = METHOD_LABELS.get(text)
    if method is not None:
        return method
    for fragment, candidate in _FALLBACK_FRAGMENTS:
        if fragment in text:
            return candidate
    return None


def is_total_label(label: str) -> bool:
    text = normalize_header_cell(label).lower()
    return any(word in text for word in TOTAL_WORDS)


def is_inbound(direction: str) -> bool:
    return strip_marks(direction).strip().lower() in INBOUND_MARKERS


def cell_amount(cell: SheetCell) -> Decimal:
    """Amount of a cell: display text first, then numeric value, then raw text."""
    if cell.display is not None and cell.display.strip():
        return parse_amount(cell.display)
    value = cell.value
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        try:
            result = Decimal(str(value))
        except ArithmeticError:
            return ZERO
        return result if result.is_finite() else ZERO
    return parse_amount(value)


def _cell_text(cell: SheetCell) -> str | None:
    text = strip_marks(cell.text()).strip()
    return text or None


def _local_cutoff(cutoff: datetime) -> datetime:
    """Sheet timestamps are naive wall-clock times; compare like with like."""
    if cutoff.tzinfo is None:
        return cutoff
    return cutoff.astimezone().replace(tzinfo=None)


def _as_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


class StatementParser:
    """
    Parser for bank transaction exports.

    Contract:
        parse() returns a ParseResult for any input bytes and never raises.

    Guarantees:
        - Only inbound rows dated at or after the cutoff contribute.
        - Summary rows (totals) and unsupported methods never contribute.
        - Single amounts outside (0, max_single_amount] are ignored.
    """

    def __init__(
        self,
        max_single_amount: Decimal = MAX_SINGLE_AMOUNT,
        header_scan_rows: int = HEADER_SCAN_ROWS,
        header_scan_columns: int = HEADER_SCAN_COLUMNS,
    ):
        self.max_single_amount = Decimal(max_single_amount)
        self.header_scan_rows = header_scan_rows
        self.header_scan_columns = header_scan_columns

    def parse(
        self,
        data: bytes,
        cutoff: datetime,
        filename: str | None = None,
    ) -> ParseResult:
        try:
            grid = load_grid(data, filename)
            result = self.parse_grid(grid, cutoff)
        except Exception as exc:
            logger.warning(
                "statement_parse_failed",
                extra={"reason": f"{type(exc).__name__}: {exc}", "source_file": filename},
            )
            return ParseResult.empty(f"could not read file: {exc}")

        if result.error is not None:
            logger.warning(
                "statement_parse_failed",
                extra={"reason": result.error, "source_file": filename},
            )
        else:
            logger.info(
                "statement_parsed",
                extra={
                    "source_file": filename,
                    "sums": {m.value: str(v) for m, v in result.sums.items()},
                    "counts": {m.value: n for m, n in result.counts.items()},
                    "employee_count": len(result.employee_names),
                },
            )
        return result

    def parse_grid(self, grid: SheetGrid, cutoff: datetime) -> ParseResult:
        if len(grid) == 0:
            return ParseResult.empty(ERROR_EMPTY)

        text_grid = grid.text_grid(self.header_scan_rows, self.header_scan_columns)
        header_index = find_header_row(
            text_grid, self.header_scan_rows, self.header_scan_columns
        )
        if header_index is None:
            return ParseResult.empty(ERROR_HEADER_NOT_FOUND)

        roles = discover_columns(text_grid[header_index], self.header_scan_columns)
        missing = roles.missing_required()
        if missing:
            return ParseResult.empty(ERROR_COLUMNS_PREFIX + ", ".join(missing))

        return self._extract(grid, header_index, roles, _local_cutoff(cutoff))

    def _extract(
        self,
        grid: SheetGrid,
        header_index: int,
        roles: ColumnRoles,
        cutoff: datetime,
    ) -> ParseResult:
        sums = {method: ZERO for method in PaymentMethod}
        counts = {method: 0 for method in PaymentMethod}
        details: dict[PaymentMethod, list[TransactionDetail]] = {
            method: [] for method in NON_CASH_METHODS
        }
        names: dict[str, None] = {}

        for r in range(header_index + 1, len(grid)):
            method_label = grid.cell(r, roles.method).text().strip()
            if not method_label:
                continue

            when = parse_date_cell(grid.cell(r, roles.date).value)
            if when is None:
                continue
            when = _as_naive(when)
            if when < cutoff:
                continue

            if not is_inbound(grid.cell(r, roles.direction).text()):
                continue

            if is_total_label(method_label):
                continue

            amount = cell_amount(grid.cell(r, roles.amount))
            if amount <= ZERO or amount > self.max_single_amount:
                continue

            method = map_method(method_label)
            if method is None:
                continue

            employee = (
                _cell_text(grid.cell(r, roles.employee))
                if roles.employee is not None
                else None
            )
            if employee:
                names.setdefault(employee, None)

            sums[method] += amount
            counts[method] += 1
            if method != PaymentMethod.CASH:
                purpose = (
                    _cell_text(grid.cell(r, roles.purpose))
                    if roles.purpose is not None
                    else None
                )
                details[method].append(
                    TransactionDetail(
                        date=when,
                        amount=amount,
                        employee_name=employee,
                        purpose=purpose,
                    )
                )

        employee_names = tuple(names)
        if not employee_names:
            employee_name = None
        elif len(employee_names) == 1:
            employee_name = employee_names[0]
        else:
            employee_name = MULTIPLE_EMPLOYEES

        return ParseResult(
            sums={method: round_money(total) for method, total in sums.items()},
            counts=counts,
            details={method: tuple(items) for method, items in details.items()},
            employee_name=employee_name,
            employee_names=employee_names,
        )


def parse_bank_statement(
    data: bytes,
    cutoff: datetime,
    *,
    filename: str | None = None,
    max_single_amount: Decimal = MAX_SINGLE_AMOUNT,
    header_scan_rows: int = HEADER_SCAN_ROWS,
    header_scan_columns: int = HEADER_SCAN_COLUMNS,
) -> ParseResult:
    """Parse ``data`` with a one-off StatementParser."""
    parser = StatementParser(
        max_single_amount=max_single_amount,
        header_scan_rows=header_scan_rows,
        header_scan_columns=header_scan_columns,
    )
    return parser.parse(data, cutoff, filename)
