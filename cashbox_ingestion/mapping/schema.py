"""
Schema discovery: locate the header row of a bank export and assign column
roles from its labels.

Bank exports have no fixed layout.  Report titles, branch banners and blank
rows precede the table, and column order differs between exports.  Discovery
works purely on a 2D grid of text (no openpyxl types) through a declarative
table of label rules per role.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cashbox_kernel.domain.normalize import normalize_header_cell

HEADER_SCAN_ROWS = 50
HEADER_SCAN_COLUMNS = 60


class ColumnRole(str, Enum):
    DATE = "date"
    METHOD = "method"
    AMOUNT = "amount"
    DIRECTION = "direction"
    EMPLOYEE = "employee"
    PURPOSE = "purpose"


REQUIRED_ROLES: tuple[ColumnRole, ...] = (
    ColumnRole.DATE,
    ColumnRole.METHOD,
    ColumnRole.AMOUNT,
    ColumnRole.DIRECTION,
)


@dataclass(frozen=True)
class LabelRule:
    """A header label matches when it contains ``fragment``, is no longer
    than ``max_length`` and contains none of ``unless``."""

    fragment: str
    unless: tuple[str, ...] = ()
    max_length: int | None = None

    def matches(self, label: str) -> bool:
        if self.fragment not in label:
            return False
        if self.max_length is not None and len(label) >= self.max_length:
            return False
        return not any(word in label for word in self.unless)


@dataclass(frozen=True)
class RoleMatcher:
    """
    Label vocabulary for one column role.

    ``excluded`` labels never match unless they also contain one of
    ``rescued_by`` ("voucher number" is not an amount column, but a label
    that also says "voucher value" is).
    """

    role: ColumnRole
    rules: tuple[LabelRule, ...]
    excluded: tuple[str, ...] = ()
    rescued_by: tuple[str, ...] = ()

    def matches(self, label: str) -> bool:
        if not label:
            return False
        if any(word in label for word in self.excluded) and not any(
            word in label for word in self.rescued_by
        ):
            return False
        return any(rule.matches(label) for rule in self.rules)


def _rules(*fragments: str) -> tuple[LabelRule, ...]:
    return tuple(LabelRule(fragment) for fragment in fragments)


AMOUNT_MATCHER = RoleMatcher(
    role=ColumnRole.AMOUNT,
    rules=_rules(
        "المبلغ",
        "مبلغ",
        "قيمة السند",
        "قيمةالسند",
        "قبوضات",
        "مصروفات",
        "صافي",
        "amount",
        "receipts",
    )
    + (LabelRule("قيمة", unless=("رقم",), max_length=35),),
    excluded=("رقم السند",),
    rescued_by=("قيمة السند",),
)

# Receipts ("المقبوضات") beat any other amount column in the same header.
RECEIPTS_MATCHER = RoleMatcher(
    role=ColumnRole.AMOUNT,
    rules=_rules("قبوضات", "receipts"),
)

METHOD_MATCHER = RoleMatcher(
    role=ColumnRole.METHOD,
    rules=_rules("طريقة الدفع", "طريقةالدفع", "payment method", "method")
    + (LabelRule("الدفع", max_length=30),),
)

DATE_MATCHER = RoleMatcher(
    role=ColumnRole.DATE,
    rules=_rules("التاريخ", "الوقت", "تاريخ", "date", "time"),
)

DIRECTION_MATCHER = RoleMatcher(
    role=ColumnRole.DIRECTION,
    rules=_rules("الإتجاه", "الاتجاه", "اتجاه", "direction"),
)

EMPLOYEE_MATCHER = RoleMatcher(
    role=ColumnRole.EMPLOYEE,
    rules=_rules(
        "موظف",
        "كاشير",
        "محاسب",
        "المستخدم",
        "المسؤول",
        "اسم",
        "employee",
        "cashier",
        "user",
    ),
)

PURPOSE_MATCHER = RoleMatcher(
    role=ColumnRole.PURPOSE,
    rules=_rules(
        "الغرض",
        "الوصف",
        "البيان",
        "وصف",
        "تفاصيل",
        "ملاحظات",
        "purpose",
        "description",
        "details",
        "notes",
    ),
)

ROLE_MATCHERS: tuple[RoleMatcher, ...] = (
    DATE_MATCHER,
    METHOD_MATCHER,
    AMOUNT_MATCHER,
    DIRECTION_MATCHER,
    EMPLOYEE_MATCHER,
    PURPOSE_MATCHER,
)


def normalize_label(value: object) -> str:
    return normalize_header_cell(value).lower()


def is_header_row(cells: list[str], max_cols: int = HEADER_SCAN_COLUMNS) -> bool:
    """True when the row has an amount label and a method/date/time label."""
    has_amount = False
    has_anchor = False
    for raw in cells[:max_cols]:
        label = normalize_label(raw)
        if not label:
            continue
        if AMOUNT_MATCHER.matches(label):
            has_amount = True
        if METHOD_MATCHER.matches(label) or DATE_MATCHER.matches(label):
            has_anchor = True
        if has_amount and has_anchor:
            return True
    return False


def find_header_row(
    grid: list[list[str]],
    max_rows: int = HEADER_SCAN_ROWS,
    max_cols: int = HEADER_SCAN_COLUMNS,
) -> int | None:
    """Index of the first qualifying header row within the scan window."""
    for index, cells in enumerate(grid[:max_rows]):
        if is_header_row(cells, max_cols):
            return index
    return None


@dataclass(frozen=True)
class ColumnRoles:
    """Column index per role; None when the role was not found."""

    date: int | None = None
    method: int | None = None
    amount: int | None = None
    direction: int | None = None
    employee: int | None = None
    purpose: int | None = None

    def missing_required(self) -> tuple[str, ...]:
        return tuple(
            role.value for role in REQUIRED_ROLES if getattr(self, role.value) is None
        )

    @property
    def complete(self) -> bool:
        return not self.missing_required()


def discover_columns(
    header: list[str],
    max_cols: int = HEADER_SCAN_COLUMNS,
) -> ColumnRoles:
    """
    Assign each role the first column whose label matches it.

    A receipts column, when present, replaces the first generic amount
    column.
    """
    found: dict[str, int] = {}
    receipts: int | None = None
    for index, raw in enumerate(header[:max_cols]):
        label = normalize_label(raw)
        if not label:
            continue
        for matcher in ROLE_MATCHERS:
            if matcher.role.value not in found and matcher.matches(label):
                found[matcher.role.value] = index
        if receipts is None and RECEIPTS_MATCHER.matches(label):
            receipts = index
    if receipts is not None:
        found[ColumnRole.AMOUNT.value] = receipts
    return ColumnRoles(**found)
