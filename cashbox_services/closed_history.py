"""
Closed-shift history browser.

Pages through a branch's archived rows newest first.  The first page is
shorter than the rest (it sits under the active rows on screen).  Each page
and the cursor that follows it are cached until refresh(), so stepping back
and forth does not re-query the archive.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from cashbox_kernel.domain.rows import Branch, ClosureRow
from cashbox_kernel.logging_config import get_logger
from cashbox_kernel.services.row_store import RowStore

logger = get_logger("services.closed_history")

FIRST_PAGE_SIZE = 4
PAGE_SIZE = 5


class FilterPreset(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_WEEK = "last_week"


@dataclass(frozen=True)
class _CachedPage:
    rows: tuple[ClosureRow, ...]
    next_cursor: str | None
    has_more: bool


class ClosedShiftHistory:
    """
    Cached, forward-walking pager over ArchiveStore.list_page().

    Pages are numbered from 1.  Requesting page n loads every uncached page
    before it, because a page's cursor is only known once the previous page
    has been read.
    """

    def __init__(
        self,
        store: RowStore,
        branch: Branch,
        first_page_size: int = FIRST_PAGE_SIZE,
        page_size: int = PAGE_SIZE,
    ):
        if first_page_size < 1 or page_size < 1:
            raise ValueError("page sizes must be at least 1")
        self._store = store
        self._branch = Branch(branch)
        self._first_page_size = first_page_size
        self._page_size = page_size
        self._pages: list[_CachedPage] = []

    @property
    def branch(self) -> Branch:
        return self._branch

    @property
    def loaded_pages(self) -> int:
        return len(self._pages)

    def _size_of(self, page_number: int) -> int:
        return self._first_page_size if page_number == 1 else self._page_size

    def _load_next(self) -> bool:
        cursor = None
        if self._pages:
            last = self._pages[-1]
            if not last.has_more:
                return False
            cursor = last.next_cursor
        page_number = len(self._pages) + 1
        result = self._store.list_closed(
            self._branch, self._size_of(page_number), cursor
        )
        self._pages.append(
            _CachedPage(
                rows=tuple(result.rows),
                next_cursor=result.next_cursor,
                has_more=result.has_more,
            )
        )
        logger.debug(
            "closed_page_loaded",
            extra={
                "branch": self._branch.value,
                "page": page_number,
                "row_count": len(result.rows),
                "has_more": result.has_more,
            },
        )
        return True

    def page(self, page_number: int) -> list[ClosureRow]:
        """Rows of ``page_number``; empty past the last page."""
        if page_number < 1:
            raise ValueError(f"page number must be at least 1, got {page_number}")
        while len(self._pages) < page_number:
            if not self._load_next():
                return []
        return list(self._pages[page_number - 1].rows)

    def has_next(self, page_number: int) -> bool:
        self.page(page_number)
        if len(self._pages) < page_number:
            return False
        return self._pages[page_number - 1].has_more

    def refresh(self) -> None:
        """Forget every cached page, e.g. after a close or delete."""
        self._pages.clear()

    def switch_branch(self, branch: Branch) -> None:
        self._branch = Branch(branch)
        self.refresh()


def filter_closed(
    rows: Iterable[ClosureRow],
    preset: FilterPreset,
    now: datetime,
) -> list[ClosureRow]:
    """
    Keep rows whose closed_at falls in ``preset``.

    Calendar days are taken in ``now``'s timezone.  LAST_WEEK means closed
    within the 7 days before ``now``.
    """
    preset = FilterPreset(preset)
    tz = now.tzinfo
    today = now.date()
    kept: list[ClosureRow] = []
    for row in rows:
        if row.closed_at is None:
            continue
        closed_at = row.closed_at.astimezone(tz) if tz is not None else row.closed_at
        if preset is FilterPreset.TODAY:
            match = closed_at.date() == today
        elif preset is FilterPreset.YESTERDAY:
            match = closed_at.date() == today - timedelta(days=1)
        else:
            match = now - timedelta(days=7) <= closed_at <= now
        if match:
            kept.append(row)
    return kept
