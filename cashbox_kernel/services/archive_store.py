"""
ArchiveStore -- the closed-shift tier.

Responsibility:
    Persists CLOSED rows per branch in the ``closed_shifts`` table and pages
    through them newest first.

Architecture position:
    Kernel > Services.  Owns its transactions: each public call runs in one
    session_scope() so a failed write leaves nothing behind.

Invariants enforced:
    - Rows are keyed by (branch, row id); put() overwrites.
    - Listing order is closed_at descending, then id descending, so the
      keyset cursor is total even when two shifts close in the same instant.
    - Every SQLAlchemyError leaves this module as ArchiveWriteError or
      ArchiveReadError.

Failure modes:
    - ArchiveWriteError from put/remove/remove_all.
    - ArchiveReadError from get/list_page/list_recent.
    - InvalidCursorError when a continuation cursor was not issued here.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cashbox_kernel.db.engine import session_scope
from cashbox_kernel.domain.rows import Branch, ClosureRow
from cashbox_kernel.exceptions import (
    ArchiveReadError,
    ArchiveWriteError,
    InvalidCursorError,
)
from cashbox_kernel.logging_config import get_logger
from cashbox_kernel.models.closed_shift import ClosedShiftRecord

logger = get_logger("services.archive_store")


@dataclass(frozen=True)
class ArchivePage:
    """One page of closed rows plus the cursor for the next page."""

    rows: tuple[ClosureRow, ...]
    next_cursor: str | None
    has_more: bool


def _encode_cursor(record: ClosedShiftRecord) -> str:
    payload = json.dumps(
        {"closed_at": record.closed_at.isoformat(), "id": str(record.row_id)}
    )
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def _decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return datetime.fromisoformat(payload["closed_at"]), UUID(payload["id"])
    except (ValueError, KeyError, TypeError, UnicodeEncodeError) as exc:
        raise InvalidCursorError(cursor) from exc


class ArchiveStore:
    """
    Branch-scoped archive of closed shifts.

    Contract:
        Accepts only rows whose status is CLOSED and whose closed_at is set;
        the lifecycle controller stamps both before calling put().

    Non-goals:
        - Does not remove the row from the local tier.  RowStore.close()
          sequences the two tiers.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def put(self, branch: Branch, row: ClosureRow) -> ClosureRow:
        """Add or overwrite the archived copy of ``row``."""
        branch = Branch(branch)
        if not row.is_closed or row.closed_at is None:
            raise ArchiveWriteError(branch.value, str(row.id), "row is not closed")
        try:
            with session_scope(self._session_factory) as session:
                record = session.execute(
                    select(ClosedShiftRecord).where(
                        ClosedShiftRecord.branch == branch.value,
                        ClosedShiftRecord.row_id == row.id,
                    )
                ).scalar_one_or_none()
                if record is None:
                    record = ClosedShiftRecord(branch=branch.value)
                    session.add(record)
                record.apply(row)
        except SQLAlchemyError as exc:
            logger.error(
                "archive_write_failed",
                extra={"branch": branch.value, "row_id": str(row.id), "reason": str(exc)},
            )
            raise ArchiveWriteError(branch.value, str(row.id), str(exc)) from exc

        logger.info(
            "row_archived",
            extra={"branch": branch.value, "row_id": str(row.id)},
        )
        return row

    def get(self, branch: Branch, row_id: UUID) -> ClosureRow | None:
        branch = Branch(branch)
        try:
            with session_scope(self._session_factory) as session:
                record = session.execute(
                    select(ClosedShiftRecord).where(
                        ClosedShiftRecord.branch == branch.value,
                        ClosedShiftRecord.row_id == row_id,
                    )
                ).scalar_one_or_none()
                return record.to_domain() if record is not None else None
        except SQLAlchemyError as exc:
            raise ArchiveReadError(branch.value, str(exc)) from exc

    def list_page(
        self,
        branch: Branch,
        page_size: int,
        cursor: str | None = None,
    ) -> ArchivePage:
        """
        Return up to ``page_size`` rows after ``cursor``, newest first.

        One extra row is fetched to tell whether another page exists.
        """
        branch = Branch(branch)
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        stmt = select(ClosedShiftRecord).where(ClosedShiftRecord.branch == branch.value)
        if cursor is not None:
            closed_at, row_id = _decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    ClosedShiftRecord.closed_at < closed_at,
                    and_(
                        ClosedShiftRecord.closed_at == closed_at,
                        ClosedShiftRecord.row_id < row_id,
                    ),
                )
            )
        stmt = stmt.order_by(
            ClosedShiftRecord.closed_at.desc(),
            ClosedShiftRecord.row_id.desc(),
        ).limit(page_size + 1)

        try:
            with session_scope(self._session_factory) as session:
                records = list(session.execute(stmt).scalars())
                has_more = len(records) > page_size
                records = records[:page_size]
                rows = tuple(record.to_domain() for record in records)
                next_cursor = _encode_cursor(records[-1]) if has_more else None
        except SQLAlchemyError as exc:
            logger.error(
                "archive_read_failed",
                extra={"branch": branch.value, "reason": str(exc)},
            )
            raise ArchiveReadError(branch.value, str(exc)) from exc

        return ArchivePage(rows=rows, next_cursor=next_cursor, has_more=has_more)

    def list_recent(self, branch: Branch, limit: int) -> list[ClosureRow]:
        return list(self.list_page(branch, limit).rows)

    def remove(self, branch: Branch, row_id: UUID) -> bool:
        """Delete one archived row; returns False when it did not exist."""
        branch = Branch(branch)
        try:
            with session_scope(self._session_factory) as session:
                result = session.execute(
                    delete(ClosedShiftRecord).where(
                        ClosedShiftRecord.branch == branch.value,
                        ClosedShiftRecord.row_id == row_id,
                    )
                )
                removed = result.rowcount > 0
        except SQLAlchemyError as exc:
            logger.error(
                "archive_write_failed",
                extra={"branch": branch.value, "row_id": str(row_id), "reason": str(exc)},
            )
            raise ArchiveWriteError(branch.value, str(row_id), str(exc)) from exc

        if removed:
            logger.info(
                "row_removed_archive",
                extra={"branch": branch.value, "row_id": str(row_id)},
            )
        return removed

    def remove_all(self, branch: Branch) -> int:
        """Delete every archived row of the branch; returns the count."""
        branch = Branch(branch)
        try:
            with session_scope(self._session_factory) as session:
                result = session.execute(
                    delete(ClosedShiftRecord).where(
                        ClosedShiftRecord.branch == branch.value
                    )
                )
                count = result.rowcount
        except SQLAlchemyError as exc:
            logger.error(
                "archive_write_failed",
                extra={"branch": branch.value, "reason": str(exc)},
            )
            raise ArchiveWriteError(branch.value, None, str(exc)) from exc

        logger.info(
            "archive_cleared",
            extra={"branch": branch.value, "removed": count},
        )
        return count
